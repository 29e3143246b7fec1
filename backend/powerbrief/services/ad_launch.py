from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from powerbrief.config import settings
from powerbrief.db.enums import AdAppStatusEnum, AdAssetTypeEnum
from powerbrief.db.models import AdDraft, AdDraftAsset
from powerbrief.db.repositories.ad_batches import AdDraftsRepository
from powerbrief.services.meta_ads import MetaAdsClient, MetaAdsError

logger = logging.getLogger(__name__)

STATUS_NO_ASSET = "NO_VALID_ASSET_FOR_CREATIVE"
STATUS_CREATIVE_FAILED = "CREATIVE_FAILED"
STATUS_AD_FAILED = "AD_CREATION_FAILED"
STATUS_AD_CREATED = "AD_CREATED"


class AssetDownloadError(RuntimeError):
    pass


@dataclass
class LaunchTarget:
    ad_account_id: str
    fb_page_id: str
    instagram_actor_id: Optional[str] = None


def asset_type_from(value: Optional[str]) -> AdAssetTypeEnum:
    """Accepts "image", "video" or a MIME type such as "video/mp4"."""
    if value and value.lower().startswith("video"):
        return AdAssetTypeEnum.video
    return AdAssetTypeEnum.image


def normalize_call_to_action(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    normalized = "_".join(value.strip().upper().split())
    if not normalized or normalized == "NO_BUTTON":
        return None
    return normalized


def build_object_story_spec(
    draft: AdDraft,
    *,
    target: LaunchTarget,
    image_hash: Optional[str] = None,
    video_id: Optional[str] = None,
) -> dict[str, Any]:
    cta_type = normalize_call_to_action(draft.call_to_action)
    spec: dict[str, Any] = {"page_id": target.fb_page_id}
    if target.instagram_actor_id:
        spec["instagram_actor_id"] = target.instagram_actor_id

    if video_id:
        video_data: dict[str, Any] = {
            "video_id": video_id,
            "message": draft.primary_text or "",
            "title": draft.headline or "",
            "link_description": draft.description or "",
        }
        if cta_type and draft.destination_url:
            video_data["call_to_action"] = {"type": cta_type, "value": {"link": draft.destination_url}}
        spec["video_data"] = video_data
        return spec

    link_data: dict[str, Any] = {
        "message": draft.primary_text or "",
        "link": draft.destination_url or "",
        "name": draft.headline or "",
        "description": draft.description or "",
    }
    if image_hash:
        link_data["image_hash"] = image_hash
    if cta_type:
        link_data["call_to_action"] = {"type": cta_type}
    spec["link_data"] = link_data
    return spec


def download_asset(url: str) -> tuple[bytes, Optional[str]]:
    try:
        response = httpx.get(url, timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise AssetDownloadError(f"Failed to download asset ({exc.response.status_code}).") from exc
    except httpx.RequestError as exc:
        raise AssetDownloadError(f"Failed to download asset: {exc}") from exc
    return response.content, response.headers.get("content-type")


def _error_text(exc: Exception) -> str:
    if isinstance(exc, MetaAdsError) and exc.graph_message:
        return exc.graph_message
    return str(exc)


def _upload_asset(client: MetaAdsClient, asset: AdDraftAsset, *, ad_account_id: str) -> None:
    content, content_type = download_asset(asset.url)
    content_type = content_type or mimetypes.guess_type(asset.name)[0]
    if asset.type == AdAssetTypeEnum.video:
        response = client.upload_video(
            ad_account_id=ad_account_id,
            filename=asset.name,
            content=content,
            content_type=content_type,
            name=asset.name,
        )
        video_id = response.get("id")
        if not video_id:
            raise MetaAdsError("Meta did not return a video id.", error_payload=response)
        asset.meta_video_id = str(video_id)
        return

    response = client.upload_image(
        ad_account_id=ad_account_id,
        filename=asset.name,
        content=content,
        content_type=content_type,
    )
    images = response.get("images") or {}
    entry = images.get(asset.name) or next(iter(images.values()), None)
    image_hash = entry.get("hash") if isinstance(entry, dict) else None
    if not image_hash:
        raise MetaAdsError("Meta did not return an image hash.", error_payload=response)
    asset.meta_hash = image_hash


def launch_draft(
    session: Session,
    client: MetaAdsClient,
    draft: AdDraft,
    *,
    target: LaunchTarget,
) -> dict[str, Any]:
    repo = AdDraftsRepository(session)
    repo.update_fields(draft, app_status=AdAppStatusEnum.UPLOADING, error_message=None)

    for asset in draft.assets:
        asset.meta_upload_error = None
        try:
            _upload_asset(client, asset, ad_account_id=target.ad_account_id)
        except (AssetDownloadError, MetaAdsError) as exc:
            asset.meta_upload_error = _error_text(exc)
            logger.warning(
                "Ad asset upload failed",
                extra={"draft_id": draft.id, "asset_id": asset.id, "error": asset.meta_upload_error},
            )
    session.commit()

    result: dict[str, Any] = {"adDraftId": draft.id, "adName": draft.ad_name}
    primary = next((a for a in draft.assets if a.meta_hash or a.meta_video_id), None)
    if primary is None:
        repo.update_fields(
            draft,
            app_status=AdAppStatusEnum.ERROR,
            error_message="No asset could be uploaded to Meta.",
        )
        return {**result, "status": STATUS_NO_ASSET, "error": "No asset could be uploaded to Meta."}

    story_spec = build_object_story_spec(
        draft,
        target=target,
        image_hash=primary.meta_hash,
        video_id=primary.meta_video_id,
    )
    try:
        creative = client.create_adcreative(
            ad_account_id=target.ad_account_id,
            payload={"name": f"{draft.ad_name} Creative", "object_story_spec": story_spec},
        )
        creative_id = creative.get("id")
        if not creative_id:
            raise MetaAdsError("Meta did not return a creative id.", error_payload=creative)
    except MetaAdsError as exc:
        message = _error_text(exc)
        repo.update_fields(draft, app_status=AdAppStatusEnum.ERROR, error_message=message)
        return {**result, "status": STATUS_CREATIVE_FAILED, "error": message}

    try:
        ad = client.create_ad(
            ad_account_id=target.ad_account_id,
            payload={
                "name": draft.ad_name,
                "adset_id": draft.ad_set_id,
                "creative": {"creative_id": creative_id},
                "status": draft.meta_status.value if draft.meta_status else "PAUSED",
            },
        )
        ad_id = ad.get("id")
        if not ad_id:
            raise MetaAdsError("Meta did not return an ad id.", error_payload=ad)
    except MetaAdsError as exc:
        message = _error_text(exc)
        repo.update_fields(
            draft,
            app_status=AdAppStatusEnum.ERROR,
            meta_creative_id=str(creative_id),
            error_message=message,
        )
        return {**result, "status": STATUS_AD_FAILED, "creativeId": str(creative_id), "error": message}

    repo.update_fields(
        draft,
        app_status=AdAppStatusEnum.PUBLISHED,
        meta_creative_id=str(creative_id),
        meta_ad_id=str(ad_id),
        error_message=None,
    )
    return {**result, "status": STATUS_AD_CREATED, "creativeId": str(creative_id), "adId": str(ad_id)}
