from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class MetaBrandConfigRequest(BaseModel):
    brandId: Optional[str] = None
    adAccountId: Optional[str] = None
    facebookPageId: Optional[str] = None
    instagramAccountId: Optional[str] = None
    pixelId: Optional[str] = None
    usePageAsActor: Optional[bool] = None


class MetaRefreshTokenRequest(BaseModel):
    brandId: Optional[str] = None


class LaunchAssetPayload(BaseModel):
    name: str
    url: str
    type: str


class LaunchDraftPayload(BaseModel):
    id: str
    adName: Optional[str] = None
    primaryText: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    campaignId: Optional[str] = None
    adSetId: Optional[str] = None
    destinationUrl: Optional[str] = None
    callToAction: Optional[str] = None
    status: Optional[str] = None
    assets: list[LaunchAssetPayload] = Field(default_factory=list)


class LaunchAdsRequest(BaseModel):
    drafts: Optional[list[LaunchDraftPayload]] = None
    brandId: Optional[str] = None
    adAccountId: Optional[str] = None
    fbPageId: Optional[str] = None
    instagramActorId: Optional[str] = None
    adBatchId: Optional[str] = None


class AdBatchUpsertRequest(BaseModel):
    id: Optional[str] = None
    brandId: Optional[str] = None
    name: Optional[str] = None
    adAccountId: Optional[str] = None
    campaignId: Optional[str] = None
    adSetId: Optional[str] = None
    fbPageId: Optional[str] = None
    igAccountId: Optional[str] = None
    pixelId: Optional[str] = None
    urlParams: Optional[str] = None
    destinationUrl: Optional[str] = None
    callToAction: Optional[str] = None
    status: Optional[str] = None
    primaryText: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    siteLinks: Optional[list[dict[str, Any]]] = None
    advantageCreative: Optional[dict[str, bool]] = None


class AdDraftAssetPayload(BaseModel):
    name: str
    url: str
    type: str
    metaHash: Optional[str] = None
    metaVideoId: Optional[str] = None


class AdDraftUpsertRequest(BaseModel):
    id: Optional[str] = None
    brandId: str
    adBatchId: Optional[str] = None
    adName: str
    primaryText: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    campaignId: Optional[str] = None
    campaignName: Optional[str] = None
    adSetId: Optional[str] = None
    adSetName: Optional[str] = None
    destinationUrl: Optional[str] = None
    callToAction: Optional[str] = None
    status: Optional[str] = None
    appStatus: Optional[str] = None
    assets: list[AdDraftAssetPayload] = Field(default_factory=list)
    extra: Optional[dict[str, Any]] = None


class PopulateNamesRequest(BaseModel):
    brandId: Optional[str] = None


class AdConfigurationCreateRequest(BaseModel):
    brandId: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    isDefault: bool = False
    settings: Optional[dict[str, Any]] = None


class AdConfigurationUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    isDefault: Optional[bool] = None
    settings: Optional[dict[str, Any]] = None
