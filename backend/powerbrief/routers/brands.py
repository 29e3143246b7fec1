from __future__ import annotations

import logging
import re
import secrets
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404, require_brand_owner
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.config import settings
from powerbrief.db.deps import get_session
from powerbrief.db.enums import BrandShareStatusEnum
from powerbrief.db.models import utcnow
from powerbrief.db.repositories.brands import BrandSharesRepository, BrandsRepository
from powerbrief.schemas.brands import (
    BrandCreateRequest,
    BrandShareAcceptRequest,
    BrandShareRequest,
    BrandUpdateRequest,
    EmailSettingsRequest,
    NamingConventionRequest,
    serialize_brand,
)
from powerbrief.schemas.common import serialize_row
from powerbrief.services.email import EmailClient, EmailConfigError, EmailSendError

router = APIRouter(prefix="/brands", tags=["brands"])
logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[a-z0-9-]+$")
_NON_IDENTIFIER_CHARS = re.compile(r"[^a-z0-9]+")


def derive_email_identifier(name: str) -> str:
    return _NON_IDENTIFIER_CHARS.sub("-", name.lower()).strip("-") or "brand"


def _unique_identifier(repo: BrandsRepository, base: str) -> str:
    candidate = base
    suffix = 2
    while repo.get_by_email_identifier(candidate) is not None:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def _inbound_address(identifier: Optional[str]) -> Optional[str]:
    return f"{identifier}@{settings.INBOUND_EMAIL_DOMAIN}" if identifier else None


@router.get("")
def list_brands(
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brands = BrandsRepository(session).list_for_user(auth.user_id)
    return [serialize_brand(brand) for brand in brands]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_brand(
    payload: BrandCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = BrandsRepository(session)
    if payload.emailIdentifier:
        identifier = payload.emailIdentifier.strip().lower()
        if not _IDENTIFIER_RE.match(identifier):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email identifier may only contain lowercase letters, numbers and hyphens.",
            )
        if repo.get_by_email_identifier(identifier):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email identifier is already in use.")
    else:
        identifier = _unique_identifier(repo, derive_email_identifier(payload.name))

    brand = repo.create(
        auth.user_id,
        payload.name,
        brand_info_data=payload.brandInfoData,
        target_audience_data=payload.targetAudienceData,
        competition_data=payload.competitionData,
        email_identifier=identifier,
        email_sender_name=payload.emailSenderName,
    )
    logger.info("Brand created", extra={"brand_id": brand.id, "user_id": auth.user_id})
    return serialize_brand(brand)


@router.get("/naming-convention")
def get_naming_convention(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    return {"namingConventionSettings": brand.naming_convention_settings}


@router.post("/naming-convention")
def save_naming_convention(
    payload: NamingConventionRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or payload.namingConventionSettings is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brandId and namingConventionSettings are required.",
        )
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    BrandsRepository(session).update_fields(brand, naming_convention_settings=payload.namingConventionSettings)
    return {"success": True, "namingConventionSettings": brand.naming_convention_settings}


@router.post("/share/accept")
def accept_brand_share(
    payload: BrandShareAcceptRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    shares = BrandSharesRepository(session)
    share = shares.get_by_token(payload.token)
    if not share or share.status == BrandShareStatusEnum.revoked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")
    if share.status == BrandShareStatusEnum.accepted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invitation has already been accepted")

    shares.update_fields(
        share,
        status=BrandShareStatusEnum.accepted,
        shared_with_user_id=auth.user_id,
        accepted_at=utcnow(),
    )
    return {"success": True, "brandId": share.brand_id, "role": share.role.value}


@router.get("/{brand_id}")
def get_brand(
    brand_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return serialize_brand(get_brand_or_404(session=session, auth=auth, brand_id=brand_id))


@router.patch("/{brand_id}")
def update_brand(
    brand_id: str,
    payload: BrandUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    fields: dict[str, Any] = {}
    if payload.name is not None:
        if not payload.name.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name must not be empty.")
        fields["name"] = payload.name.strip()
    if payload.brandInfoData is not None:
        fields["brand_info_data"] = payload.brandInfoData
    if payload.targetAudienceData is not None:
        fields["target_audience_data"] = payload.targetAudienceData
    if payload.competitionData is not None:
        fields["competition_data"] = payload.competitionData
    if payload.emailSenderName is not None:
        fields["email_sender_name"] = payload.emailSenderName
    if fields:
        BrandsRepository(session).update_fields(brand, **fields)
    return serialize_brand(brand)


@router.delete("/{brand_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_brand(
    brand_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    require_brand_owner(brand, auth)
    BrandsRepository(session).delete(brand)
    logger.info("Brand deleted", extra={"brand_id": brand_id, "user_id": auth.user_id})
    return None


@router.get("/{brand_id}/email-settings")
def get_email_settings(
    brand_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    return {
        "emailIdentifier": brand.email_identifier,
        "senderName": brand.email_sender_name,
        "inboundAddress": _inbound_address(brand.email_identifier),
    }


@router.put("/{brand_id}/email-settings")
def update_email_settings(
    brand_id: str,
    payload: EmailSettingsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    identifier = payload.emailIdentifier.strip()
    if not _IDENTIFIER_RE.match(identifier):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email identifier may only contain lowercase letters, numbers and hyphens.",
        )

    repo = BrandsRepository(session)
    existing = repo.get_by_email_identifier(identifier)
    if existing is not None and existing.id != brand.id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email identifier is already in use.")

    fields: dict[str, Any] = {"email_identifier": identifier}
    if payload.senderName is not None:
        fields["email_sender_name"] = payload.senderName
    repo.update_fields(brand, **fields)
    return {
        "emailIdentifier": brand.email_identifier,
        "senderName": brand.email_sender_name,
        "inboundAddress": _inbound_address(brand.email_identifier),
    }


@router.get("/{brand_id}/users")
def list_brand_users(
    brand_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    users: list[dict[str, Any]] = [
        {
            "userId": brand.user_id,
            "email": auth.email if brand.user_id == auth.user_id else None,
            "role": "owner",
            "status": "accepted",
        }
    ]
    for share in BrandSharesRepository(session).list_for_brand(brand.id):
        users.append(
            {
                "shareId": share.id,
                "userId": share.shared_with_user_id,
                "email": share.shared_with_email,
                "role": share.role.value,
                "status": share.status.value,
            }
        )
    return {"users": users}


@router.post("/{brand_id}/share", status_code=status.HTTP_201_CREATED)
def share_brand(
    brand_id: str,
    payload: BrandShareRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    require_brand_owner(brand, auth)

    shares = BrandSharesRepository(session)
    if shares.get_pending_for_email(brand.id, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An invitation is already pending for this email.")

    share = shares.create(
        brand_id=brand.id,
        shared_by_user_id=auth.user_id,
        shared_with_email=payload.email,
        role=payload.role,
        status=BrandShareStatusEnum.pending,
        invitation_token=secrets.token_urlsafe(32),
    )

    accept_url = f"{settings.APP_BASE_URL.rstrip('/')}/app/accept-share?token={share.invitation_token}"
    inviter = auth.full_name or auth.email or "A teammate"
    try:
        EmailClient.from_settings().send(
            to=payload.email,
            subject=f"{inviter} shared {brand.name} with you on PowerBrief",
            html=(
                f"<p>{inviter} invited you to collaborate on <strong>{brand.name}</strong> "
                f"as {share.role.value}.</p><p><a href=\"{accept_url}\">Accept invitation</a></p>"
            ),
            text=f"{inviter} invited you to collaborate on {brand.name}. Accept: {accept_url}",
        )
    except (EmailConfigError, EmailSendError) as exc:
        logger.warning("Brand share invitation email failed", extra={"share_id": share.id}, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Invitation created but the email could not be sent: {exc}",
        ) from exc

    return serialize_row(share, exclude=("invitation_token",))
