from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class BriefBatchCreateRequest(BaseModel):
    brandId: Optional[str] = None
    name: Optional[str] = None


class BriefConceptCreateRequest(BaseModel):
    conceptTitle: Optional[str] = None
    strategist: Optional[str] = None
    videoEditor: Optional[str] = None


class BriefBatchShareRequest(BaseModel):
    email: Optional[str] = None
    isEditable: bool = False
    expiresAt: Optional[datetime] = None


class UploadedAssetPayload(BaseModel):
    name: str
    supabaseUrl: str
    type: str
    aspectRatio: Optional[str] = None


class AssetGroupPayload(BaseModel):
    baseName: str
    aspectRatios: list[str] = Field(default_factory=list)
    assets: list[UploadedAssetPayload] = Field(default_factory=list)


class AppendAssetsRequest(BaseModel):
    conceptId: Optional[str] = None
    assetGroups: Optional[list[AssetGroupPayload]] = None
    shareId: Optional[str] = None


class SendToAdBatchRequest(BaseModel):
    conceptId: Optional[str] = None


class ConceptCommentCreateRequest(BaseModel):
    conceptId: Optional[str] = None
    # Playback position in the reviewed video, in seconds.
    timestamp: Optional[float] = None
    comment: Optional[str] = None
    shareId: Optional[str] = None
    parentId: Optional[str] = None
    commenterName: Optional[str] = None
    commenterEmail: Optional[str] = None


class ConceptCommentUpdateRequest(BaseModel):
    commentId: Optional[str] = None
    comment: Optional[str] = None
    shareId: Optional[str] = None


class ConceptCommentResolveRequest(BaseModel):
    commentId: Optional[str] = None
    isResolved: Optional[bool] = None


class ConceptResubmitRequest(BaseModel):
    conceptId: Optional[str] = None


class ShareInvitationRequest(BaseModel):
    email: Optional[str] = None
    shareUrl: Optional[str] = None
    shareType: Literal["batch", "concept"] = "batch"
    batchId: Optional[str] = None
    conceptId: Optional[str] = None
    shareId: Optional[str] = None
