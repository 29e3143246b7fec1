from __future__ import annotations

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, field_validator

from powerbrief.db.enums import BrandShareRoleEnum
from powerbrief.db.models import Brand

_SECRET_BRAND_COLUMNS = {
    "meta_access_token",
    "meta_access_token_iv",
    "meta_access_token_auth_tag",
}


def serialize_brand(brand: Brand) -> dict[str, Any]:
    data = {
        column.key: getattr(brand, column.key)
        for column in Brand.__table__.columns
        if column.key not in _SECRET_BRAND_COLUMNS
    }
    data["meta_connected"] = bool(brand.meta_access_token)
    return jsonable_encoder(data)


class BrandCreateRequest(BaseModel):
    name: str
    brandInfoData: dict[str, Any] = {}
    targetAudienceData: dict[str, Any] = {}
    competitionData: dict[str, Any] = {}
    emailIdentifier: Optional[str] = None
    emailSenderName: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty.")
        return value.strip()


class BrandUpdateRequest(BaseModel):
    name: Optional[str] = None
    brandInfoData: Optional[dict[str, Any]] = None
    targetAudienceData: Optional[dict[str, Any]] = None
    competitionData: Optional[dict[str, Any]] = None
    emailSenderName: Optional[str] = None


class NamingConventionRequest(BaseModel):
    brandId: Optional[str] = None
    namingConventionSettings: Optional[dict[str, Any]] = None


class EmailSettingsRequest(BaseModel):
    emailIdentifier: str
    senderName: Optional[str] = None


class BrandShareRequest(BaseModel):
    email: str
    role: BrandShareRoleEnum = BrandShareRoleEnum.editor

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if "@" not in cleaned:
            raise ValueError("email must be a valid email address.")
        return cleaned


class BrandShareAcceptRequest(BaseModel):
    token: str
