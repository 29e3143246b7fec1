from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404, resolve_meta_access_token
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.enums import SyncJobStatusEnum
from powerbrief.db.models import Brand, OneSheet, OneSheetAiInstructions, is_uuid
from powerbrief.db.repositories.onesheet import OneSheetRepository
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.onesheet import (
    AiInstructionsUpdateRequest,
    DiscoveredInstructionsRequest,
    NamedDescription,
    OneSheetCreateRequest,
    OneSheetUpdateRequest,
    SyncAdsRequest,
)
from powerbrief.services import onesheet_sync

router = APIRouter(prefix="/onesheet", tags=["onesheet"])
logger = logging.getLogger(__name__)

_SECTION_FIELDS = {
    "title": "title",
    "product": "product",
    "audienceInsights": "audience_insights",
    "personas": "personas",
    "competitorAnalysis": "competitor_analysis",
    "adAccountAudit": "ad_account_audit",
    "creativeBrainstorm": "creative_brainstorm",
    "contextData": "context_data",
}

_AI_INSTRUCTION_FIELDS = {
    "contentVariables": "content_variables",
    "awarenessLevels": "awareness_levels",
    "contentVariablesReturnMultiple": "content_variables_return_multiple",
    "contentVariablesAllowNew": "content_variables_allow_new",
    "awarenessLevelsAllowNew": "awareness_levels_allow_new",
    "contentVariablesSelectionGuidance": "content_variables_selection_guidance",
}

DEFAULT_CONTENT_VARIABLES = (
    {"name": "Podcast", "description": "Usually in a podcast studio. May or may not have multiple speakers - has big mics, etc."},
    {"name": "Man on the Street", "description": "Features a person interviewing someone on the street"},
    {"name": "Testimonial", "description": "Customer or user sharing their experience with the product"},
    {"name": "Product Demo", "description": "Showing the product in use or demonstrating features"},
    {"name": "Seductive Visuals", "description": "Visually appealing or attractive imagery designed to capture attention"},
    {"name": "Product Shots", "description": "Clean, professional shots of the product itself"},
    {"name": "Scientific Research", "description": "References to studies, data, or scientific backing"},
    {"name": "AI Voiceover", "description": "Computer-generated voice narration"},
)

DEFAULT_AWARENESS_LEVELS = (
    {"name": "Unaware", "description": "Audience doesn't know they have a problem"},
    {"name": "Problem Aware", "description": "Knows they have a problem but not aware of solutions"},
    {"name": "Solution Aware", "description": "Knows solutions exist but not aware of your specific product"},
    {"name": "Product Aware", "description": "Knows your product but hasn't decided to purchase"},
    {"name": "Most Aware", "description": "Ready to buy, just needs the right offer"},
)

DEFAULT_SELECTION_GUIDANCE = (
    "When multiple variables are present, prioritize the most prominent or impactful element in the ad."
)


def _load_onesheet(session: Session, auth: AuthContext, onesheet_id: str) -> tuple[Brand, OneSheet]:
    onesheet = OneSheetRepository(session).get(onesheet_id) if is_uuid(onesheet_id) else None
    if onesheet is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="OneSheet not found")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=onesheet.brand_id)
    return brand, onesheet


@router.get("")
def list_onesheets(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    return serialize_rows(OneSheetRepository(session).list(brand.id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_onesheet(
    payload: OneSheetCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    onesheet = OneSheetRepository(session).create(
        brand.id,
        auth.user_id,
        title=payload.title or f"{brand.name} OneSheet",
        product=payload.product,
    )
    logger.info("OneSheet created", extra={"brand_id": brand.id, "onesheet_id": onesheet.id})
    return serialize_row(onesheet)


@router.get("/sync-status")
def get_sync_status(
    job_id: Optional[str] = Query(default=None, alias="jobId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not job_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="jobId is required.")
    job = OneSheetRepository(session).get_sync_job(job_id) if is_uuid(job_id) else None
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync job not found")
    get_brand_or_404(session=session, auth=auth, brand_id=job.brand_id)
    return onesheet_sync.job_status_payload(job)


def _load_ai_instructions(session: Session, onesheet: OneSheet) -> OneSheetAiInstructions:
    repo = OneSheetRepository(session)
    instructions = repo.get_ai_instructions(onesheet.id)
    if instructions is None:
        instructions = repo.create_ai_instructions(
            onesheet_id=onesheet.id,
            brand_id=onesheet.brand_id,
            content_variables=[dict(item) for item in DEFAULT_CONTENT_VARIABLES],
            awareness_levels=[dict(item) for item in DEFAULT_AWARENESS_LEVELS],
            content_variables_return_multiple=False,
            content_variables_allow_new=True,
            awareness_levels_allow_new=True,
            content_variables_selection_guidance=DEFAULT_SELECTION_GUIDANCE,
        )
        logger.info("OneSheet AI instructions created", extra={"onesheet_id": onesheet.id})
    return instructions


def _append_named(items: list[Any], entry: NamedDescription) -> Optional[list[Any]]:
    if any(item.get("name") == entry.name for item in items):
        return None
    return [*items, entry.model_dump(exclude_none=True)]


@router.get("/ai-instructions")
def get_ai_instructions(
    onesheet_id: Optional[str] = Query(default=None, alias="onesheetId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not onesheet_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="onesheetId is required.")
    _, onesheet = _load_onesheet(session, auth, onesheet_id)
    return {"data": serialize_row(_load_ai_instructions(session, onesheet))}


@router.put("/ai-instructions")
def update_ai_instructions(
    payload: AiInstructionsUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.onesheetId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="onesheetId is required.")
    _, onesheet = _load_onesheet(session, auth, payload.onesheetId)
    instructions = _load_ai_instructions(session, onesheet)
    provided = payload.model_dump(exclude_unset=True, exclude_none=True)
    fields = {column: provided[key] for key, column in _AI_INSTRUCTION_FIELDS.items() if key in provided}
    if fields:
        OneSheetRepository(session).update_fields(instructions, **fields)
    return {"data": serialize_row(instructions)}


@router.post("/ai-instructions")
def add_discovered_instructions(
    payload: DiscoveredInstructionsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.onesheetId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="onesheetId is required.")
    _, onesheet = _load_onesheet(session, auth, payload.onesheetId)
    instructions = _load_ai_instructions(session, onesheet)

    fields: dict[str, Any] = {}
    if payload.discoveredVariable:
        updated = _append_named(instructions.discovered_content_variables or [], payload.discoveredVariable)
        if updated is not None:
            fields["discovered_content_variables"] = updated
    if payload.discoveredLevel:
        updated = _append_named(instructions.discovered_awareness_levels or [], payload.discoveredLevel)
        if updated is not None:
            fields["discovered_awareness_levels"] = updated
    if fields:
        OneSheetRepository(session).update_fields(instructions, **fields)
    return {"data": serialize_row(instructions)}


@router.get("/{onesheet_id}")
def get_onesheet(
    onesheet_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, onesheet = _load_onesheet(session, auth, onesheet_id)
    return serialize_row(onesheet)


@router.patch("/{onesheet_id}")
def update_onesheet(
    onesheet_id: str,
    payload: OneSheetUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, onesheet = _load_onesheet(session, auth, onesheet_id)
    provided = payload.model_dump(exclude_unset=True)
    fields = {
        column: provided[key]
        for key, column in _SECTION_FIELDS.items()
        if key in provided and (provided[key] is not None or key == "product")
    }
    if fields:
        OneSheetRepository(session).update_fields(onesheet, **fields)
    return serialize_row(onesheet)


@router.delete("/{onesheet_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_onesheet(
    onesheet_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, onesheet = _load_onesheet(session, auth, onesheet_id)
    OneSheetRepository(session).delete(onesheet)
    return None


@router.post("/{onesheet_id}/sync-ads", status_code=status.HTTP_202_ACCEPTED)
def sync_onesheet_ads(
    onesheet_id: str,
    payload: SyncAdsRequest,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand, onesheet = _load_onesheet(session, auth, onesheet_id)
    ad_account_id = payload.adAccountId or brand.meta_default_ad_account_id
    if not ad_account_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No ad account configured for this brand.")
    access_token = resolve_meta_access_token(brand)
    try:
        start, end = onesheet_sync.resolve_date_range(payload.dateRange)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    job = OneSheetRepository(session).create_sync_job(
        onesheet_id=onesheet.id,
        brand_id=brand.id,
        status=SyncJobStatusEnum.pending,
        date_range_start=start,
        date_range_end=end,
    )
    onesheet_sync.set_progress(job.id, status=SyncJobStatusEnum.pending.value)
    background_tasks.add_task(
        onesheet_sync.run_sync_job,
        job.id,
        onesheet_id=onesheet.id,
        ad_account_id=ad_account_id,
        access_token=access_token,
    )
    logger.info("OneSheet ad sync queued", extra={"onesheet_id": onesheet.id, "job_id": job.id})
    return {"jobId": job.id, "status": SyncJobStatusEnum.pending.value}
