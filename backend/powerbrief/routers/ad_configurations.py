from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.models import AdBatch, AdConfiguration, is_uuid
from powerbrief.db.repositories.ad_batches import AdBatchesRepository
from powerbrief.db.repositories.ad_configurations import AdConfigurationsRepository
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.meta import AdConfigurationCreateRequest, AdConfigurationUpdateRequest

router = APIRouter(tags=["ad-configurations"])
logger = logging.getLogger(__name__)

ADVANTAGE_CREATIVE_FEATURES = (
    "inline_comment",
    "image_templates",
    "image_touchups",
    "video_auto_crop",
    "image_brightness_and_contrast",
    "enhance_cta",
    "text_optimizations",
    "image_uncrop",
    "adapt_to_placement",
    "media_type_automation",
    "product_extensions",
    "description_automation",
    "add_text_overlay",
    "site_extensions",
    "music",
    "3d_animation",
    "translate_text",
)

DEFAULT_PRIMARY_TEXT = "Check out our latest offer!"
DEFAULT_HEADLINE = "Amazing New Product"
DEFAULT_DESTINATION_URL = "https://example.com"


def upload_settings_from_batch(brand_id: str, batch: Optional[AdBatch]) -> dict[str, Any]:
    """Ad uploader defaults, filled from the user's active batch when there is one."""
    advantage = dict.fromkeys(ADVANTAGE_CREATIVE_FEATURES, False)
    if batch is None:
        return {
            "brandId": brand_id,
            "adAccountId": None,
            "campaignId": None,
            "adSetId": None,
            "fbPage": "",
            "igAccount": "",
            "urlParams": "",
            "pixel": "",
            "status": "PAUSED",
            "primaryText": DEFAULT_PRIMARY_TEXT,
            "headline": DEFAULT_HEADLINE,
            "description": "",
            "destinationUrl": DEFAULT_DESTINATION_URL,
            "callToAction": "LEARN_MORE",
            "siteLinks": [],
            "advantageCreative": advantage,
        }
    return {
        "brandId": batch.brand_id,
        "adAccountId": batch.ad_account_id,
        "campaignId": batch.campaign_id,
        "adSetId": batch.ad_set_id,
        "fbPage": batch.fb_page_id or "",
        "igAccount": batch.ig_account_id or "",
        "urlParams": batch.url_params or "",
        "pixel": batch.pixel_id or "",
        "status": batch.status or "PAUSED",
        "primaryText": batch.primary_text or DEFAULT_PRIMARY_TEXT,
        "headline": batch.headline or DEFAULT_HEADLINE,
        "description": batch.description or "",
        "destinationUrl": batch.destination_url or DEFAULT_DESTINATION_URL,
        "callToAction": batch.call_to_action or "LEARN_MORE",
        "siteLinks": batch.site_links or [],
        "advantageCreative": batch.advantage_plus_creative or advantage,
    }


def _get_configuration_or_404(session: Session, auth: AuthContext, configuration_id: str) -> AdConfiguration:
    repo = AdConfigurationsRepository(session)
    configuration = repo.get_for_user(auth.user_id, configuration_id) if is_uuid(configuration_id) else None
    if configuration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Configuration not found")
    return configuration


def _name_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Configuration name already exists for this brand",
    )


@router.get("/ad-upload-settings")
def get_ad_upload_settings(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    batch = AdBatchesRepository(session).get_active_for_brand(auth.user_id, brand.id)
    return {"settings": upload_settings_from_batch(brand.id, batch)}


@router.get("/ad-configurations")
def list_ad_configurations(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if brand_id:
        get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    return serialize_rows(AdConfigurationsRepository(session).list(auth.user_id, brand_id))


@router.post("/ad-configurations", status_code=status.HTTP_201_CREATED)
def create_ad_configuration(
    payload: AdConfigurationCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or not payload.name or payload.settings is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId, name and settings are required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)

    repo = AdConfigurationsRepository(session)
    if repo.get_by_name(auth.user_id, brand.id, payload.name):
        raise _name_conflict()
    if payload.isDefault:
        repo.clear_default(auth.user_id, brand.id)
    configuration = repo.save(
        AdConfiguration(
            user_id=auth.user_id,
            brand_id=brand.id,
            name=payload.name,
            description=payload.description,
            is_default=payload.isDefault,
            settings=payload.settings,
        )
    )
    logger.info("Ad configuration created", extra={"brand_id": brand.id, "configuration_id": configuration.id})
    return serialize_row(configuration)


@router.get("/ad-configurations/{configuration_id}")
def get_ad_configuration(
    configuration_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return serialize_row(_get_configuration_or_404(session, auth, configuration_id))


@router.put("/ad-configurations/{configuration_id}")
def update_ad_configuration(
    configuration_id: str,
    payload: AdConfigurationUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    configuration = _get_configuration_or_404(session, auth, configuration_id)
    repo = AdConfigurationsRepository(session)
    if payload.name and payload.name != configuration.name:
        if repo.get_by_name(auth.user_id, configuration.brand_id, payload.name):
            raise _name_conflict()

    fields: dict[str, Any] = {}
    if payload.name:
        fields["name"] = payload.name
    if "description" in payload.model_fields_set:
        fields["description"] = payload.description
    if payload.settings is not None:
        fields["settings"] = payload.settings
    if payload.isDefault is not None:
        if payload.isDefault:
            repo.clear_default(auth.user_id, configuration.brand_id)
        fields["is_default"] = payload.isDefault
    repo.update_fields(configuration, **fields)
    return serialize_row(configuration)


@router.delete("/ad-configurations/{configuration_id}")
def delete_ad_configuration(
    configuration_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    configuration = _get_configuration_or_404(session, auth, configuration_id)
    AdConfigurationsRepository(session).delete(configuration)
    return {"message": "Configuration deleted successfully"}
