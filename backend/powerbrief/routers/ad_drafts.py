from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404, get_meta_client_for_brand
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.enums import AdAppStatusEnum, AdMetaStatusEnum
from powerbrief.db.models import AdDraft, is_uuid
from powerbrief.db.repositories.ad_batches import AdDraftsRepository
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.meta import AdDraftUpsertRequest, PopulateNamesRequest
from powerbrief.services.ad_launch import asset_type_from
from powerbrief.services.meta_ads import MetaAdsClient, MetaAdsError

router = APIRouter(prefix="/ad-drafts", tags=["ad-drafts"])
logger = logging.getLogger(__name__)

_DRAFT_FIELDS = {
    "adBatchId": "ad_batch_id",
    "adName": "ad_name",
    "primaryText": "primary_text",
    "headline": "headline",
    "description": "description",
    "campaignId": "campaign_id",
    "campaignName": "campaign_name",
    "adSetId": "ad_set_id",
    "adSetName": "ad_set_name",
    "destinationUrl": "destination_url",
    "callToAction": "call_to_action",
}


def serialize_draft(draft: AdDraft) -> dict[str, Any]:
    data = serialize_row(draft)
    data["assets"] = serialize_rows(draft.assets)
    return data


def _apply_draft(draft: AdDraft, payload: AdDraftUpsertRequest) -> None:
    # Enum conversion first so an invalid status leaves the row untouched.
    meta_status = AdMetaStatusEnum(payload.status.upper()) if payload.status else None
    app_status = AdAppStatusEnum(payload.appStatus.upper()) if payload.appStatus else None
    provided = payload.model_dump(exclude_unset=True)
    for key, column in _DRAFT_FIELDS.items():
        if key in provided:
            setattr(draft, column, provided[key])
    if meta_status:
        draft.meta_status = meta_status
    if app_status:
        draft.app_status = app_status


@router.get("")
def list_ad_drafts(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    ad_batch_id: Optional[str] = Query(default=None, alias="adBatchId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    drafts = AdDraftsRepository(session).list(brand_id, ad_batch_id=ad_batch_id)
    return [serialize_draft(draft) for draft in drafts]


@router.post("")
def upsert_ad_drafts(
    payload: list[AdDraftUpsertRequest],
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one draft is required.")

    repo = AdDraftsRepository(session)
    brands = BrandsRepository(session)
    accessible: dict[str, bool] = {}
    results: list[dict[str, Any]] = []
    saved: list[tuple[dict[str, Any], AdDraft]] = []
    for item in payload:
        if item.brandId not in accessible:
            accessible[item.brandId] = (
                is_uuid(item.brandId) and brands.get_for_user(auth.user_id, item.brandId) is not None
            )
        if not accessible[item.brandId]:
            results.append({"id": item.id, "success": False, "error": "Brand not found"})
            continue

        draft_id = item.id if is_uuid(item.id) else None
        draft = repo.get(item.brandId, draft_id) if draft_id else None
        if draft is None and draft_id:
            if session.get(AdDraft, draft_id) is not None:
                results.append({"id": item.id, "success": False, "error": "Ad draft belongs to another brand"})
                continue
            draft = AdDraft(id=draft_id, brand_id=item.brandId, user_id=auth.user_id, ad_name=item.adName)
        elif draft is None:
            draft = AdDraft(brand_id=item.brandId, user_id=auth.user_id, ad_name=item.adName)
        try:
            _apply_draft(draft, item)
        except ValueError as exc:
            results.append({"id": item.id, "success": False, "error": str(exc)})
            continue

        repo.replace_assets(
            draft,
            [
                {
                    "name": asset.name,
                    "url": asset.url,
                    "type": asset_type_from(asset.type),
                    "meta_hash": asset.metaHash,
                    "meta_video_id": asset.metaVideoId,
                }
                for asset in item.assets
            ],
        )
        session.add(draft)
        result = {"id": None, "success": True}
        saved.append((result, draft))
        results.append(result)

    # Every accepted draft is written in a single commit.
    session.commit()
    for result, draft in saved:
        result["id"] = draft.id

    logger.info(
        "Ad drafts saved",
        extra={"count": len(payload), "failed": sum(not r["success"] for r in results)},
    )
    return results


@router.post("/populate-names")
def populate_draft_names(
    payload: PopulateNamesRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    if not brand.meta_access_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Brand not connected to Meta")
    client = get_meta_client_for_brand(brand)

    campaign_names: dict[str, Optional[str]] = {}
    ad_set_names: dict[str, Optional[str]] = {}

    def lookup(cache: dict[str, Optional[str]], object_id: str) -> Optional[str]:
        if object_id not in cache:
            cache[object_id] = _object_name(client, object_id)
        return cache[object_id]

    repo = AdDraftsRepository(session)
    drafts = repo.missing_names(brand.id)
    updated = 0
    for draft in drafts:
        fields: dict[str, Any] = {}
        if draft.campaign_id and not draft.campaign_name:
            name = lookup(campaign_names, draft.campaign_id)
            if name:
                fields["campaign_name"] = name
        if draft.ad_set_id and not draft.ad_set_name:
            name = lookup(ad_set_names, draft.ad_set_id)
            if name:
                fields["ad_set_name"] = name
        if fields:
            repo.update_fields(draft, **fields)
            updated += 1
    return {"updated": updated, "total": len(drafts)}


def _object_name(client: MetaAdsClient, object_id: str) -> Optional[str]:
    try:
        return client.get_object_name(object_id)
    except MetaAdsError:
        logger.warning("Meta name lookup failed", extra={"object_id": object_id}, exc_info=True)
        return None


@router.delete("/{draft_id}")
def delete_ad_draft(
    draft_id: str,
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = AdDraftsRepository(session)
    draft = session.get(AdDraft, draft_id) if is_uuid(draft_id) else None
    if draft is None or (brand_id and draft.brand_id != brand_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ad draft not found")
    get_brand_or_404(session=session, auth=auth, brand_id=draft.brand_id)
    repo.delete(draft)
    return {"success": True}
