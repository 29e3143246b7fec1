from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.models import is_uuid
from powerbrief.db.repositories.automation import AutomationRepository
from powerbrief.db.repositories.ugc import UgcCreatorsRepository
from powerbrief.schemas.automation import (
    AutomationEnableRequest,
    AutomationToggleRequest,
    AutomationTriggerRequest,
)
from powerbrief.schemas.common import serialize_row
from powerbrief.services.n8n import N8nConfigError, N8nError, N8nService

router = APIRouter(prefix="/automation", tags=["automation"])
logger = logging.getLogger(__name__)


@router.get("/workflows")
def list_automation_workflows(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)

    service = N8nService(session)
    try:
        available = service.list_available_workflows()
    except N8nConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except N8nError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(exc), "n8n": exc.error_payload},
        ) from exc

    configured = {row.workflow_name: row for row in service.get_brand_workflow_config(brand.id)}
    workflows: list[dict[str, Any]] = []
    for workflow in available:
        row = configured.get(workflow.get("name"))
        workflows.append(
            {
                "id": workflow.get("id"),
                "name": workflow.get("name"),
                "active": workflow.get("active", False),
                "tags": workflow.get("tags") or [],
                "automationId": row.id if row else None,
                "isEnabledForBrand": bool(row and row.is_active),
                "configuration": row.configuration if row else {},
            }
        )
    return {"workflows": workflows}


@router.post("/enable", status_code=status.HTTP_201_CREATED)
def enable_automation(
    payload: AutomationEnableRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or not payload.templateName:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId and templateName are required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)

    service = N8nService(session)
    if service.is_brand_workflow_enabled(brand.id, payload.templateName):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Automation is already enabled for this brand.")

    repo = AutomationRepository(session)
    if repo.get_settings(brand.id) is None:
        repo.create_settings(brand.id, automation_enabled=True, webhook_secret=secrets.token_hex(32))

    workflow = service.toggle_brand_workflow(
        brand.id,
        payload.templateName,
        True,
        configuration=payload.configuration or {},
    )
    logger.info("Automation enabled", extra={"brand_id": brand.id, "workflow": payload.templateName})
    return serialize_row(workflow)


@router.post("/toggle")
def toggle_automation(
    payload: AutomationToggleRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.automationId or payload.isActive is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="automationId and isActive are required.")
    repo = AutomationRepository(session)
    workflow = repo.get_workflow(payload.automationId) if is_uuid(payload.automationId) else None
    if workflow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Automation not found")
    get_brand_or_404(session=session, auth=auth, brand_id=workflow.brand_id)

    repo.update_fields(workflow, is_active=payload.isActive)
    return serialize_row(workflow)


@router.post("/trigger")
def trigger_automation(
    payload: AutomationTriggerRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or not payload.templateName or payload.triggerData is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brandId, templateName and triggerData are required.",
        )
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)

    workflows = AutomationRepository(session).list_active_workflows(brand.id, payload.templateName)
    if not workflows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active workflow found for this template")

    creator = None
    creator_id = payload.triggerData.get("creatorId")
    if creator_id and is_uuid(creator_id):
        creator = UgcCreatorsRepository(session).get(brand.id, creator_id)

    service = N8nService(session)
    results: list[dict[str, Any]] = []
    for workflow in workflows:
        try:
            service.trigger_workflow(payload.templateName, brand, creator, payload.triggerData)
            results.append({"workflowId": workflow.id, "status": "triggered"})
        except (N8nConfigError, N8nError) as exc:
            logger.warning(
                "Manual n8n trigger failed",
                extra={"brand_id": brand.id, "workflow": payload.templateName},
                exc_info=True,
            )
            results.append({"workflowId": workflow.id, "status": "error", "error": str(exc)})
    return {"results": results}
