from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.models import is_uuid
from powerbrief.db.repositories.ugc import UgcCoordinatorRepository, UgcCreatorsRepository, UgcScriptsRepository
from powerbrief.llm.client import LLMClientConfigError, LLMResponseParseError
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.ugc import CoordinatorEmailRequest, CoordinatorProcessRequest, CoordinatorSettingsRequest
from powerbrief.services.ai_coordinator import UgcAiCoordinatorService
from powerbrief.services.email import EmailConfigError, EmailSendError

router = APIRouter(prefix="/ugc/ai-coordinator", tags=["ugc"])
logger = logging.getLogger(__name__)

_SETTINGS_FIELDS = {
    "name": "name",
    "enabled": "enabled",
    "settings": "settings",
    "systemPrompt": "system_prompt",
    "modelSettings": "model_settings",
    "slackNotificationsEnabled": "slack_notifications_enabled",
    "emailAutomationEnabled": "email_automation_enabled",
}


def _require_brand_id(brand_id: Optional[str]) -> str:
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    return brand_id


@router.get("/settings")
def get_coordinator_settings(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require_brand_id(brand_id))
    coordinator = UgcAiCoordinatorService(session).get_or_create_coordinator(brand, auth.user_id)
    return serialize_row(coordinator)


@router.put("/settings")
def update_coordinator_settings(
    payload: CoordinatorSettingsRequest,
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require_brand_id(brand_id))
    coordinator = UgcAiCoordinatorService(session).get_or_create_coordinator(brand, auth.user_id)

    provided = payload.model_dump(exclude_unset=True)
    fields = {column: provided[key] for key, column in _SETTINGS_FIELDS.items() if provided.get(key) is not None}
    if "settings" in fields:
        # Partial settings updates keep the keys the client did not send.
        fields["settings"] = {**(coordinator.settings or {}), **fields["settings"]}
    if fields:
        UgcCoordinatorRepository(session).update_fields(coordinator, **fields)
    return serialize_row(coordinator)


@router.post("/process")
def process_creator_pipeline(
    payload: CoordinatorProcessRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require_brand_id(payload.brandId))
    creator_ids = [creator_id for creator_id in (payload.creatorIds or []) if is_uuid(creator_id)]
    if payload.creatorIds and not creator_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="creatorIds contains no valid ids.")

    outcome = UgcAiCoordinatorService(session).process_pipeline(brand, auth.user_id, creator_ids or None)
    logger.info(
        "AI coordinator pipeline processed",
        extra={"brand_id": brand.id, "creators": len(outcome["results"])},
    )
    return outcome


@router.get("/actions")
def list_coordinator_actions(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    limit: int = Query(default=50, ge=1, le=500),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require_brand_id(brand_id))
    repo = UgcCoordinatorRepository(session)
    coordinator = repo.get_for_brand(brand.id)
    if coordinator is None:
        return {"actions": []}
    return {"actions": serialize_rows(repo.list_actions(coordinator.id, limit=limit))}


@router.post("/generate-email")
def generate_coordinator_email(
    payload: CoordinatorEmailRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or not payload.creatorId or not payload.purpose:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brandId, creatorId and purpose are required.",
        )
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    creator = UgcCreatorsRepository(session).get(brand.id, payload.creatorId) if is_uuid(payload.creatorId) else None
    if creator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Creator not found")
    script = None
    if payload.scriptId:
        script = UgcScriptsRepository(session).get(brand.id, payload.scriptId) if is_uuid(payload.scriptId) else None
        if script is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Script not found")

    service = UgcAiCoordinatorService(session)
    coordinator = service.get_or_create_coordinator(brand, auth.user_id)
    try:
        email = service.generate_email(
            coordinator,
            creator=creator,
            brand=brand,
            purpose=payload.purpose,
            script=script,
        )
    except LLMClientConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except LLMResponseParseError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    sent = False
    if payload.send:
        try:
            service.send_email(coordinator, creator=creator, brand=brand, email=email)
        except EmailConfigError as exc:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except EmailSendError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        sent = True
    return {"email": email, "sent": sent}
