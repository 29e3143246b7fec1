from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.models import AdBatch, is_uuid, utcnow
from powerbrief.db.repositories.ad_batches import AdBatchesRepository
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.meta import AdBatchUpsertRequest

router = APIRouter(prefix="/ad-batches", tags=["ad-batches"])
logger = logging.getLogger(__name__)

_BATCH_FIELDS = {
    "name": "name",
    "adAccountId": "ad_account_id",
    "campaignId": "campaign_id",
    "adSetId": "ad_set_id",
    "fbPageId": "fb_page_id",
    "igAccountId": "ig_account_id",
    "pixelId": "pixel_id",
    "urlParams": "url_params",
    "destinationUrl": "destination_url",
    "callToAction": "call_to_action",
    "status": "status",
    "primaryText": "primary_text",
    "headline": "headline",
    "description": "description",
    "siteLinks": "site_links",
    "advantageCreative": "advantage_plus_creative",
}


@router.get("")
def list_ad_batches(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    active: Optional[bool] = None,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = AdBatchesRepository(session)
    if active:
        batches = repo.list_active_for_user(auth.user_id, limit=1)
        return serialize_row(batches[0]) if batches else None
    if brand_id:
        get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
        return {"batches": serialize_rows(repo.list_active_for_brand(brand_id))}
    return serialize_rows(repo.list_active_for_user(auth.user_id))


@router.post("")
def upsert_ad_batch(
    payload: AdBatchUpsertRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)

    repo = AdBatchesRepository(session)
    batch_id = payload.id if is_uuid(payload.id) else None
    batch = repo.get_for_user(auth.user_id, batch_id) if batch_id else None
    if batch is None and batch_id:
        if session.get(AdBatch, batch_id) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ad batch id is already in use")
        batch = AdBatch(id=batch_id, brand_id=brand.id, user_id=auth.user_id)
    elif batch is None:
        batch = AdBatch(brand_id=brand.id, user_id=auth.user_id)

    provided = payload.model_dump(exclude_unset=True)
    for key, column in _BATCH_FIELDS.items():
        if key in provided:
            setattr(batch, column, provided[key])
    if not batch.name:
        batch.name = f"Ad Batch {utcnow().date().isoformat()}"

    # Only one batch per user stays active.
    repo.deactivate_all(auth.user_id)
    batch.brand_id = brand.id
    batch.is_active = True
    batch.last_accessed_at = utcnow()
    repo.save(batch)
    logger.info("Ad batch saved", extra={"batch_id": batch.id, "brand_id": brand.id})
    return serialize_row(batch)


@router.delete("")
def delete_ad_batch(
    batch_id: Optional[str] = Query(default=None, alias="id"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not batch_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="id is required.")
    repo = AdBatchesRepository(session)
    batch = repo.get_for_user(auth.user_id, batch_id) if is_uuid(batch_id) else None
    if batch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ad batch not found")
    repo.delete(batch)
    return {"success": True}
