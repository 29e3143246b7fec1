from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field

# Creator columns a client may set directly; request bodies use the column names.
CREATOR_FIELDS = (
    "name",
    "email",
    "gender",
    "status",
    "products",
    "content_types",
    "contract_status",
    "portfolio_link",
    "per_script_fee",
    "phone_number",
    "instagram_handle",
    "tiktok_handle",
    "platforms",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip",
    "country",
    "contacted_by",
    "custom_fields",
    "product_shipment_status",
    "tracking_number",
)

SCRIPT_FIELDS = (
    "title",
    "script_content",
    "status",
    "concept_status",
    "b_roll_shot_list",
    "hook_type",
    "hook_count",
    "hook_body",
    "cta",
    "public_share_id",
    "creator_id",
    "deadline",
    "final_content_link",
    "revision_notes",
)


class CreatorFields(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None
    status: Optional[str] = None
    products: Optional[list[Any]] = None
    content_types: Optional[list[Any]] = None
    contract_status: Optional[str] = None
    portfolio_link: Optional[str] = None
    per_script_fee: Optional[float] = None
    phone_number: Optional[str] = None
    instagram_handle: Optional[str] = None
    tiktok_handle: Optional[str] = None
    platforms: Optional[list[Any]] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    contacted_by: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None
    product_shipment_status: Optional[str] = None
    tracking_number: Optional[str] = None


class CreatorCreateRequest(CreatorFields):
    brandId: Optional[str] = None


class CreatorUpdateRequest(CreatorFields):
    pass


class CreatorSubmitRequest(BaseModel):
    brand_id: Optional[str] = None
    submission_data: Optional[dict[str, Any]] = None


class ScriptSegment(BaseModel):
    segment: str = ""
    script: str = ""
    visuals: str = ""


class ScriptContent(BaseModel):
    scene_start: str = ""
    segments: list[ScriptSegment] = Field(default_factory=list)
    scene_end: str = ""


class ScriptFields(BaseModel):
    title: Optional[str] = None
    script_content: Optional[ScriptContent] = None
    status: Optional[str] = None
    concept_status: Optional[str] = None
    b_roll_shot_list: Optional[list[Any]] = None
    hook_type: Optional[str] = None
    hook_count: Optional[int] = None
    hook_body: Optional[str] = None
    cta: Optional[str] = None
    public_share_id: Optional[str] = None
    creator_id: Optional[str] = None
    deadline: Optional[date] = None
    final_content_link: Optional[str] = None
    revision_notes: Optional[str] = None


class ScriptCreateRequest(ScriptFields):
    brandId: Optional[str] = None


class ScriptUpdateRequest(ScriptFields):
    pass


class MessageStatusRequest(BaseModel):
    status: str


class ComposeEmailRequest(BaseModel):
    brandId: Optional[str] = None
    creatorId: Optional[str] = None
    subject: Optional[str] = None
    htmlContent: Optional[str] = None
    textContent: Optional[str] = None


class CoordinatorSettingsRequest(BaseModel):
    name: Optional[str] = None
    enabled: Optional[bool] = None
    settings: Optional[dict[str, Any]] = None
    systemPrompt: Optional[str] = None
    modelSettings: Optional[dict[str, Any]] = None
    slackNotificationsEnabled: Optional[bool] = None
    emailAutomationEnabled: Optional[bool] = None


class CoordinatorProcessRequest(BaseModel):
    brandId: Optional[str] = None
    creatorIds: Optional[list[str]] = None


class CoordinatorEmailRequest(BaseModel):
    brandId: Optional[str] = None
    creatorId: Optional[str] = None
    purpose: Optional[str] = None
    scriptId: Optional[str] = None
    send: bool = False
