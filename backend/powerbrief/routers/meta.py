from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404, get_meta_client_for_brand
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.auth.oauth_state import OAuthStateError, build_oauth_state, verify_oauth_state
from powerbrief.config import settings
from powerbrief.db.deps import get_session
from powerbrief.db.enums import AdMetaStatusEnum
from powerbrief.db.models import as_utc, is_uuid, utcnow
from powerbrief.db.repositories.ad_batches import AdBatchesRepository, AdDraftsRepository
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.schemas.meta import (
    LaunchAdsRequest,
    LaunchDraftPayload,
    MetaBrandConfigRequest,
    MetaRefreshTokenRequest,
)
from powerbrief.services import slack
from powerbrief.services.ad_launch import STATUS_AD_CREATED, LaunchTarget, asset_type_from, launch_draft
from powerbrief.services.meta_ads import (
    MetaAdsClient,
    MetaAdsConfigError,
    MetaAdsError,
    exchange_code_for_token,
    get_token_user_id,
)
from powerbrief.services.token_crypto import TokenEncryptionError, calculate_expiration, encrypt_token

router = APIRouter(prefix="/meta", tags=["meta"])
logger = logging.getLogger(__name__)

REFRESH_WINDOW_DAYS = 7
OAUTH_SCOPES = "ads_management,ads_read,business_management,pages_show_list,pages_read_engagement,instagram_basic"


def raise_meta_error(exc: MetaAdsError) -> None:
    status_code = exc.status_code or status.HTTP_502_BAD_GATEWAY
    detail: Any = {"message": exc.graph_message or str(exc)}
    if exc.error_payload is not None:
        detail = {"message": exc.graph_message or str(exc), "meta": exc.error_payload}
    raise HTTPException(status_code=status_code, detail=detail) from exc


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{name} is required.")
    return value


def _store_token(session: Session, brand, access_token: str, expires_in: Optional[int], **extra: Any) -> None:
    try:
        encrypted = encrypt_token(access_token)
    except TokenEncryptionError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    BrandsRepository(session).update_fields(
        brand,
        meta_access_token=encrypted.encrypted_token,
        meta_access_token_iv=encrypted.iv,
        meta_access_token_auth_tag=encrypted.auth_tag,
        meta_access_token_expires_at=calculate_expiration(expires_in),
        **extra,
    )


@router.get("/connect-url")
def meta_connect_url(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require(brand_id, "brandId"))
    if not settings.META_APP_ID or not settings.META_OAUTH_REDIRECT_URI:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="META_APP_ID and META_OAUTH_REDIRECT_URI are required for Meta OAuth.",
        )
    try:
        state = build_oauth_state(brand.id, auth.user_id)
    except OAuthStateError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    query = urlencode(
        {
            "client_id": settings.META_APP_ID,
            "redirect_uri": settings.META_OAUTH_REDIRECT_URI,
            "state": state,
            "scope": OAUTH_SCOPES,
            "response_type": "code",
        }
    )
    return {"url": f"https://www.facebook.com/{settings.META_GRAPH_API_VERSION}/dialog/oauth?{query}"}


@router.get("/callback")
def meta_oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    session: Session = Depends(get_session),
):
    app_url = settings.APP_BASE_URL.rstrip("/")
    if error or not code or not state:
        reason = error or "missing_code"
        return RedirectResponse(f"{app_url}/app/brands?meta_error={reason}")

    try:
        oauth_state = verify_oauth_state(state)
    except OAuthStateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    brand = (
        BrandsRepository(session).get_for_user(oauth_state.user_id, oauth_state.brand_id)
        if is_uuid(oauth_state.brand_id)
        else None
    )
    if brand is None:
        return RedirectResponse(f"{app_url}/app/brands?meta_error=brand_not_found")

    try:
        short_lived = exchange_code_for_token(code)
        long_lived = MetaAdsClient.for_token(short_lived["access_token"]).exchange_long_lived_token()
        access_token = long_lived.get("access_token") or short_lived["access_token"]
        meta_user_id = get_token_user_id(access_token)
    except (MetaAdsError, MetaAdsConfigError, KeyError):
        logger.exception("Meta OAuth exchange failed", extra={"brand_id": brand.id})
        return RedirectResponse(f"{app_url}/app/brands/{brand.id}?meta_error=token_exchange_failed")

    extra: dict[str, Any] = {"meta_user_id": meta_user_id}
    client = MetaAdsClient.for_token(access_token)
    try:
        extra["meta_ad_accounts"] = client.list_ad_accounts()
        pages = client.list_pages()
        extra["meta_facebook_pages"] = pages
        extra["meta_instagram_accounts"] = [
            page["instagram_business_account"] for page in pages if page.get("instagram_business_account")
        ]
    except MetaAdsError:
        logger.warning("Could not load Meta assets after OAuth", extra={"brand_id": brand.id}, exc_info=True)

    _store_token(session, brand, access_token, long_lived.get("expires_in"), **extra)
    logger.info("Meta connected", extra={"brand_id": brand.id, "meta_user_id": meta_user_id})
    return RedirectResponse(f"{app_url}/app/brands/{brand.id}?meta_connected=true")


@router.get("/ad-accounts")
def list_meta_ad_accounts(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require(brand_id, "brandId"))
    client = get_meta_client_for_brand(brand)
    try:
        return {"adAccounts": client.list_ad_accounts()}
    except MetaAdsError as exc:
        raise_meta_error(exc)


@router.get("/campaigns")
def list_meta_campaigns(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    ad_account_id: Optional[str] = Query(default=None, alias="adAccountId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id or not ad_account_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId and adAccountId are required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    client = get_meta_client_for_brand(brand)
    try:
        return {"campaigns": client.list_campaigns(ad_account_id=ad_account_id)}
    except MetaAdsError as exc:
        raise_meta_error(exc)


@router.get("/adsets")
def list_meta_adsets(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    campaign_id: Optional[str] = Query(default=None, alias="campaignId"),
    ad_account_id: Optional[str] = Query(default=None, alias="adAccountId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id or not (campaign_id or ad_account_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brandId and either campaignId or adAccountId are required.",
        )
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    client = get_meta_client_for_brand(brand)
    try:
        return {"adSets": client.list_adsets(campaign_id=campaign_id, ad_account_id=ad_account_id)}
    except MetaAdsError as exc:
        raise_meta_error(exc)


@router.get("/pages")
def list_meta_pages(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require(brand_id, "brandId"))
    client = get_meta_client_for_brand(brand)
    try:
        return {"pages": client.list_pages()}
    except MetaAdsError as exc:
        raise_meta_error(exc)


@router.get("/pixels")
def list_meta_pixels(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    ad_account_id: Optional[str] = Query(default=None, alias="adAccountId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require(brand_id, "brandId"))
    account = ad_account_id or brand.meta_default_ad_account_id
    if not account:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="adAccountId is required.")
    client = get_meta_client_for_brand(brand)
    try:
        return {"pixels": client.list_pixels(ad_account_id=account)}
    except MetaAdsError as exc:
        raise_meta_error(exc)


def _brand_config(brand) -> dict[str, Any]:
    return {
        "connected": bool(brand.meta_access_token),
        "expiresAt": as_utc(brand.meta_access_token_expires_at).isoformat()
        if brand.meta_access_token_expires_at
        else None,
        "adAccounts": brand.meta_ad_accounts or [],
        "facebookPages": brand.meta_facebook_pages or [],
        "instagramAccounts": brand.meta_instagram_accounts or [],
        "pixels": brand.meta_pixels or [],
        "defaultAdAccountId": brand.meta_default_ad_account_id,
        "defaultFacebookPageId": brand.meta_default_facebook_page_id,
        "defaultInstagramAccountId": brand.meta_default_instagram_account_id,
        "defaultPixelId": brand.meta_default_pixel_id,
        "usePageAsActor": brand.meta_use_page_as_actor,
    }


@router.get("/brand-config")
def get_meta_brand_config(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require(brand_id, "brandId"))
    return _brand_config(brand)


@router.put("/brand-config")
def update_meta_brand_config(
    payload: MetaBrandConfigRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require(payload.brandId, "brandId"))
    mapping = {
        "adAccountId": "meta_default_ad_account_id",
        "facebookPageId": "meta_default_facebook_page_id",
        "instagramAccountId": "meta_default_instagram_account_id",
        "pixelId": "meta_default_pixel_id",
        "usePageAsActor": "meta_use_page_as_actor",
    }
    provided = payload.model_dump(exclude_unset=True)
    fields = {column: provided[key] for key, column in mapping.items() if key in provided}
    if fields:
        BrandsRepository(session).update_fields(brand, **fields)
    return _brand_config(brand)


@router.post("/refresh-token")
def refresh_meta_token(
    payload: MetaRefreshTokenRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=_require(payload.brandId, "brandId"))
    client = get_meta_client_for_brand(brand)

    expires_at = as_utc(brand.meta_access_token_expires_at)
    if expires_at is not None:
        days_left = (expires_at - utcnow()).days
        if days_left > REFRESH_WINDOW_DAYS:
            return {
                "success": True,
                "message": "Token is still valid, no refresh needed",
                "daysUntilExpiration": days_left,
            }

    try:
        refreshed = client.exchange_long_lived_token()
    except MetaAdsConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except MetaAdsError as exc:
        raise_meta_error(exc)

    new_token = refreshed.get("access_token")
    if not new_token:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Meta did not return a new access token.")
    _store_token(session, brand, new_token, refreshed.get("expires_in"))
    new_expiry = as_utc(brand.meta_access_token_expires_at)
    return {
        "success": True,
        "message": "Token refreshed successfully",
        "expiresAt": new_expiry.isoformat() if new_expiry else None,
        "daysUntilExpiration": (new_expiry - utcnow()).days if new_expiry else None,
    }


_DRAFT_PAYLOAD_FIELDS = {
    "adName": "ad_name",
    "primaryText": "primary_text",
    "headline": "headline",
    "description": "description",
    "campaignId": "campaign_id",
    "adSetId": "ad_set_id",
    "destinationUrl": "destination_url",
    "callToAction": "call_to_action",
}


def _apply_launch_payload(drafts_repo: AdDraftsRepository, draft, item: LaunchDraftPayload) -> None:
    provided = item.model_dump(exclude_unset=True)
    fields: dict[str, Any] = {
        column: provided[key] for key, column in _DRAFT_PAYLOAD_FIELDS.items() if provided.get(key) is not None
    }
    if item.status:
        try:
            fields["meta_status"] = AdMetaStatusEnum(item.status.upper())
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid ad status: {item.status}",
            ) from exc
    if item.assets:
        drafts_repo.replace_assets(
            draft,
            [{"name": a.name, "url": a.url, "type": asset_type_from(a.type)} for a in item.assets],
        )
    for key, value in fields.items():
        setattr(draft, key, value)
    drafts_repo.save(draft)


@router.post("/launch-ads")
def launch_ads(
    payload: LaunchAdsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    missing = [
        name
        for name, value in (
            ("drafts", payload.drafts),
            ("brandId", payload.brandId),
            ("adAccountId", payload.adAccountId),
            ("fbPageId", payload.fbPageId),
        )
        if not value
    ]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}",
        )

    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    client = get_meta_client_for_brand(brand)
    target = LaunchTarget(
        ad_account_id=payload.adAccountId,
        fb_page_id=payload.fbPageId,
        instagram_actor_id=payload.instagramActorId,
    )

    drafts_repo = AdDraftsRepository(session)
    results: list[dict[str, Any]] = []
    launched = []
    for item in payload.drafts:
        draft = drafts_repo.get(brand.id, item.id) if is_uuid(item.id) else None
        if draft is None:
            results.append({"adDraftId": item.id, "adName": item.adName, "status": "NOT_FOUND", "error": "Draft not found"})
            continue
        _apply_launch_payload(drafts_repo, draft, item)
        launched.append(draft)
        results.append(launch_draft(session, client, draft, target=target))

    logger.info(
        "Ad launch finished",
        extra={"brand_id": brand.id, "drafts": len(results), "created": sum(r["status"] == STATUS_AD_CREATED for r in results)},
    )

    batch = (
        AdBatchesRepository(session).get_for_user(auth.user_id, payload.adBatchId)
        if is_uuid(payload.adBatchId)
        else None
    )
    first = launched[0] if launched else None
    message = slack.build_ad_launch_message(
        brand_name=brand.name,
        batch_name=batch.name if batch else None,
        campaign_id=first.campaign_id if first else None,
        ad_set_id=first.ad_set_id if first else None,
        campaign_name=first.campaign_name if first else None,
        ad_set_name=first.ad_set_name if first else None,
        results=results,
    )
    slack.notify(brand, message, event="ad_launch")
    return {"results": results}
