from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.enums import EmailMessageStatusEnum
from powerbrief.db.models import is_uuid, utcnow
from powerbrief.db.repositories.ugc import UgcCreatorsRepository, UgcInboxRepository
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.ugc import ComposeEmailRequest, MessageStatusRequest
from powerbrief.services.email import (
    EmailClient,
    EmailConfigError,
    EmailSendError,
    brand_sender,
    normalize_subject,
)

router = APIRouter(prefix="/ugc", tags=["ugc"])
logger = logging.getLogger(__name__)


@router.get("/inbox")
def list_inbox(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)

    inbox = UgcInboxRepository(session)
    creators = {creator.id: creator for creator in UgcCreatorsRepository(session).list(brand.id)}
    threads: list[dict[str, Any]] = []
    for thread in inbox.list_threads(brand.id, status=status_filter):
        messages = inbox.list_messages(thread.id)
        creator = creators.get(thread.creator_id)
        item = serialize_row(thread)
        item["creatorName"] = creator.name if creator else None
        item["creatorEmail"] = creator.email if creator else None
        item["lastMessage"] = serialize_row(messages[-1]) if messages else None
        item["messageCount"] = len(messages)
        item["unreadCount"] = sum(message.status == EmailMessageStatusEnum.received for message in messages)
        threads.append(item)
    return {"threads": threads}


@router.get("/inbox/threads/{thread_id}")
def get_inbox_thread(
    thread_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    inbox = UgcInboxRepository(session)
    thread = inbox.get_thread(thread_id) if is_uuid(thread_id) else None
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    get_brand_or_404(session=session, auth=auth, brand_id=thread.brand_id)
    return {"thread": serialize_row(thread), "messages": serialize_rows(inbox.list_messages(thread.id))}


@router.patch("/inbox/messages/{message_id}")
def update_message_status(
    message_id: str,
    payload: MessageStatusRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    try:
        new_status = EmailMessageStatusEnum(payload.status)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {payload.status}") from exc

    inbox = UgcInboxRepository(session)
    message = inbox.get_message(message_id) if is_uuid(message_id) else None
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    thread = inbox.get_thread(message.thread_id)
    get_brand_or_404(session=session, auth=auth, brand_id=thread.brand_id)

    inbox.update_fields(message, status=new_status)
    return serialize_row(message)


@router.post("/email/compose")
def compose_email(
    payload: ComposeEmailRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or not payload.creatorId or not payload.subject or not payload.htmlContent:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brandId, creatorId, subject and htmlContent are required.",
        )
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    creator = UgcCreatorsRepository(session).get(brand.id, payload.creatorId) if is_uuid(payload.creatorId) else None
    if creator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Creator not found")
    if not creator.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Creator has no email address.")

    try:
        sender = brand_sender(brand)
        message_id = EmailClient.from_settings().send_as_brand(
            brand,
            to=creator.email,
            subject=payload.subject,
            html=payload.htmlContent,
            text=payload.textContent,
        )
    except EmailConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except EmailSendError as exc:
        logger.warning("Compose email failed", extra={"brand_id": brand.id, "creator_id": creator.id})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(exc), "sendgrid": exc.error_payload},
        ) from exc

    inbox = UgcInboxRepository(session)
    thread = inbox.get_or_create_thread(brand.id, creator.id, normalize_subject(payload.subject))
    message = inbox.add_message(
        thread,
        from_email=sender.email,
        to_email=creator.email,
        subject=payload.subject,
        html_content=payload.htmlContent,
        text_content=payload.textContent or "",
        status=EmailMessageStatusEnum.sent,
        variables_used={"sendgrid_message_id": message_id} if message_id else {},
        sent_at=utcnow(),
    )
    logger.info("Compose email sent", extra={"brand_id": brand.id, "creator_id": creator.id, "thread_id": thread.id})
    return {"success": True, "threadId": thread.id, "message": serialize_row(message)}
