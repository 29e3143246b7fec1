"""Unauthenticated callbacks from n8n and the SendGrid Inbound Parse webhook."""

from __future__ import annotations

import logging
from typing import Any, Optional

import orjson
from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from sqlalchemy.orm import Session

from powerbrief.db.deps import get_session
from powerbrief.db.models import is_uuid
from powerbrief.db.repositories.automation import AutomationRepository
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.services.inbound_email import InboundEmail, InboundEmailError, process_inbound_email
from powerbrief.services.n8n import N8nService, verify_signature

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-n8n-signature"
_REQUIRED_N8N_FIELDS = ("executionId", "workflowId", "stepName", "status")


@router.get("/n8n/{brand_id}")
def n8n_webhook_status(brand_id: str):
    return {"message": "n8n webhook endpoint is active", "brandId": brand_id}


@router.post("/n8n/{brand_id}")
async def receive_n8n_webhook(
    brand_id: str,
    request: Request,
    session: Session = Depends(get_session),
):
    raw_body = await request.body()
    try:
        payload = orjson.loads(raw_body or b"{}")
    except orjson.JSONDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.")

    missing = [name for name in _REQUIRED_N8N_FIELDS if not payload.get(name)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}",
        )

    brand = BrandsRepository(session).get(brand_id) if is_uuid(brand_id) else None
    if brand is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")

    automation = AutomationRepository(session).get_settings(brand.id)
    if automation and automation.webhook_secret:
        if not verify_signature(automation.webhook_secret, raw_body, request.headers.get(SIGNATURE_HEADER)):
            logger.warning("Rejected n8n webhook with bad signature", extra={"brand_id": brand.id})
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    creator_id: Optional[str] = payload.get("creatorId") or data.get("creator_id")
    N8nService(session).process_webhook(
        brand_id=brand.id,
        execution_id=str(payload["executionId"]),
        workflow_id=str(payload["workflowId"]),
        step_name=str(payload["stepName"]),
        status=str(payload["status"]),
        creator_id=creator_id,
        data=data,
        error=payload.get("error"),
    )
    return {"success": True, "message": "Webhook processed successfully"}


@router.post("/sendgrid-inbound")
def receive_sendgrid_inbound(
    to: str = Form(default=""),
    sender: str = Form(default="", alias="from"),
    subject: str = Form(default=""),
    text: str = Form(default=""),
    html: str = Form(default=""),
    headers: Optional[str] = Form(default=None),
    attachment_info: Optional[str] = Form(default=None, alias="attachment-info"),
    envelope: Optional[str] = Form(default=None),
    session: Session = Depends(get_session),
):
    email = InboundEmail(
        to=to,
        sender=sender,
        subject=subject,
        text=text,
        html=html,
        headers=headers,
        attachments=attachment_info,
        envelope=envelope,
    )
    try:
        result = process_inbound_email(session, email)
    except InboundEmailError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    response: dict[str, Any] = {
        "success": True,
        "threadId": result.thread_id,
        "creatorId": result.creator_id,
        "actionsTaken": result.actions_taken,
    }
    return response
