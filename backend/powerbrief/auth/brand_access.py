from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from powerbrief.auth.dependencies import AuthContext
from powerbrief.db.models import Brand, as_utc, is_uuid, utcnow
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.services.meta_ads import MetaAdsClient
from powerbrief.services.token_crypto import TokenEncryptionError, decrypt_token

logger = logging.getLogger(__name__)


def get_brand_or_404(*, session: Session, auth: AuthContext, brand_id: str) -> Brand:
    brand = BrandsRepository(session).get_for_user(auth.user_id, brand_id) if is_uuid(brand_id) else None
    if not brand:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")
    return brand


def require_brand_owner(brand: Brand, auth: AuthContext) -> None:
    if brand.user_id != auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the brand owner can perform this action.",
        )


def resolve_meta_access_token(brand: Brand) -> str:
    if not brand.meta_access_token or not brand.meta_access_token_iv or not brand.meta_access_token_auth_tag:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not connected to Meta")

    expires_at = as_utc(brand.meta_access_token_expires_at)
    if expires_at and expires_at <= utcnow():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Meta access token has expired")

    try:
        return decrypt_token(
            brand.meta_access_token,
            brand.meta_access_token_iv,
            brand.meta_access_token_auth_tag,
        )
    except TokenEncryptionError as exc:
        logger.error("Meta token decryption failed", extra={"brand_id": brand.id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to decrypt Meta access token",
        ) from exc


def get_meta_client_for_brand(brand: Brand) -> MetaAdsClient:
    return MetaAdsClient.for_token(resolve_meta_access_token(brand))
