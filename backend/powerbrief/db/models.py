from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    LargeBinary,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from powerbrief.db.base import Base
from powerbrief.db.enums import (
    AdAppStatusEnum,
    AdAssetTypeEnum,
    AdMetaStatusEnum,
    BrandShareRoleEnum,
    BrandShareStatusEnum,
    ContractAuditActionEnum,
    ContractFieldTypeEnum,
    ContractStatusEnum,
    EmailMessageStatusEnum,
    RecipientRoleEnum,
    RecipientStatusEnum,
    ScorecardMetricTypeEnum,
    SyncJobStatusEnum,
)

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")
# Ids are handled as strings throughout the API layer.
UUIDType = Uuid(as_uuid=False)


def _new_id() -> str:
    return str(uuid4())


def is_uuid(value: Optional[str]) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _created_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow, nullable=False
    )


class Brand(Base):
    __tablename__ = "brands"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    brand_info_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    target_audience_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    competition_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    email_identifier: Mapped[Optional[str]] = mapped_column(Text, unique=True, nullable=True)
    email_sender_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    naming_convention_settings: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    meta_access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_access_token_iv: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_access_token_auth_tag: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_access_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    meta_user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_ad_accounts: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    meta_facebook_pages: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    meta_instagram_accounts: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    meta_pixels: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    meta_default_ad_account_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_default_facebook_page_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_default_instagram_account_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_default_pixel_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_use_page_as_actor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    slack_webhook_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    slack_channel_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    slack_notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    slack_channel_config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class BrandShare(Base):
    __tablename__ = "brand_shares"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    shared_by_user_id: Mapped[str] = mapped_column(Text, nullable=False)
    shared_with_user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    shared_with_email: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[BrandShareRoleEnum] = mapped_column(
        Enum(BrandShareRoleEnum, name="brand_share_role"), nullable=False, default=BrandShareRoleEnum.editor
    )
    status: Mapped[BrandShareStatusEnum] = mapped_column(
        Enum(BrandShareStatusEnum, name="brand_share_status"),
        nullable=False,
        default=BrandShareStatusEnum.pending,
    )
    invitation_token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()


class AdBatch(Base):
    __tablename__ = "ad_batches"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    ad_account_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ad_set_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fb_page_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ig_account_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pixel_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url_params: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    destination_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    call_to_action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    primary_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    headline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    site_links: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)
    advantage_plus_creative: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class AdDraft(Base):
    __tablename__ = "ad_drafts"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    ad_batch_id: Mapped[Optional[str]] = mapped_column(
        UUIDType, ForeignKey("ad_batches.id", ondelete="SET NULL"), nullable=True
    )
    ad_name: Mapped[str] = mapped_column(Text, nullable=False)
    primary_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    headline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    campaign_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ad_set_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ad_set_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    destination_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    call_to_action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_status: Mapped[AdMetaStatusEnum] = mapped_column(
        Enum(AdMetaStatusEnum, name="ad_meta_status"), nullable=False, default=AdMetaStatusEnum.PAUSED
    )
    app_status: Mapped[AdAppStatusEnum] = mapped_column(
        Enum(AdAppStatusEnum, name="ad_app_status"), nullable=False, default=AdAppStatusEnum.DRAFT
    )
    meta_creative_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_ad_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    assets: Mapped[list["AdDraftAsset"]] = relationship(
        back_populates="ad_draft",
        cascade="all, delete-orphan",
        order_by="AdDraftAsset.created_at",
    )


class AdDraftAsset(Base):
    __tablename__ = "ad_draft_assets"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    ad_draft_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("ad_drafts.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[AdAssetTypeEnum] = mapped_column(Enum(AdAssetTypeEnum, name="ad_asset_type"), nullable=False)
    meta_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_video_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_upload_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()

    ad_draft: Mapped[AdDraft] = relationship(back_populates="assets")


class BrandN8nWorkflow(Base):
    __tablename__ = "brand_n8n_workflows"
    __table_args__ = (UniqueConstraint("brand_id", "workflow_name", name="uq_brand_n8n_workflow"),)

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    workflow_name: Mapped[str] = mapped_column(Text, nullable=False)
    n8n_workflow_id: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    configuration: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class BrandAutomationSettings(Base):
    __tablename__ = "brand_automation_settings"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    automation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    webhook_secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()


class N8nExecutionLog(Base):
    __tablename__ = "n8n_execution_logs"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    creator_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    execution_id: Mapped[str] = mapped_column(Text, nullable=False)
    workflow_id: Mapped[str] = mapped_column(Text, nullable=False)
    step_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()


class UgcCreator(Base):
    __tablename__ = "ugc_creators"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    gender: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="New Creator Submission")
    products: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    content_types: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    contract_status: Mapped[str] = mapped_column(Text, nullable=False, default="not signed")
    portfolio_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    per_script_fee: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_handle: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tiktok_handle: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    platforms: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    address_line1: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    country: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contacted_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_shipment_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    custom_fields: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class UgcCreatorScript(Base):
    __tablename__ = "ugc_creator_scripts"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    creator_id: Mapped[Optional[str]] = mapped_column(
        UUIDType, ForeignKey("ugc_creators.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    script_content: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING_APPROVAL")
    concept_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default="Script Approval")
    b_roll_shot_list: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    hook_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hook_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hook_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cta: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    public_share_id: Mapped[Optional[str]] = mapped_column(Text, unique=True, nullable=True)
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    final_content_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    revision_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class UgcEmailThread(Base):
    __tablename__ = "ugc_email_threads"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    creator_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("ugc_creators.id", ondelete="CASCADE"), nullable=False)
    thread_subject: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class UgcEmailMessage(Base):
    __tablename__ = "ugc_email_messages"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    thread_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("ugc_email_threads.id", ondelete="CASCADE"), nullable=False)
    from_email: Mapped[str] = mapped_column(Text, nullable=False)
    to_email: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False, default="")
    html_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    text_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[EmailMessageStatusEnum] = mapped_column(
        Enum(EmailMessageStatusEnum, name="email_message_status"), nullable=False
    )
    variables_used: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class UgcAiCoordinator(Base):
    __tablename__ = "ugc_ai_coordinator"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="AI UGC Coordinator")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    system_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    model_settings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    slack_notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_automation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class UgcAiCoordinatorAction(Base):
    __tablename__ = "ugc_ai_coordinator_actions"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    coordinator_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("ugc_ai_coordinator.id", ondelete="CASCADE"), nullable=False
    )
    creator_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    script_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_type: Mapped[str] = mapped_column(Text, nullable=False)
    action_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ContractTemplate(Base):
    __tablename__ = "contract_templates"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    document_name: Mapped[str] = mapped_column(Text, nullable=False)
    document_size: Mapped[int] = mapped_column(Integer, nullable=False)
    fields: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class Contract(Base):
    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    template_id: Mapped[Optional[str]] = mapped_column(
        UUIDType, ForeignKey("contract_templates.id", ondelete="SET NULL"), nullable=True
    )
    creator_id: Mapped[Optional[str]] = mapped_column(
        UUIDType, ForeignKey("ugc_creators.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ContractStatusEnum] = mapped_column(
        Enum(ContractStatusEnum, name="contract_status"), nullable=False, default=ContractStatusEnum.draft
    )
    document_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    document_name: Mapped[str] = mapped_column(Text, nullable=False)
    document_size: Mapped[int] = mapped_column(Integer, nullable=False)
    share_token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_certificate: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    recipients: Mapped[list["ContractRecipient"]] = relationship(
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractRecipient.signing_order",
    )
    fields: Mapped[list["ContractField"]] = relationship(
        back_populates="contract",
        cascade="all, delete-orphan",
    )
    audit_logs: Mapped[list["ContractAuditLog"]] = relationship(
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractAuditLog.created_at",
    )


class ContractRecipient(Base):
    __tablename__ = "contract_recipients"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    contract_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[RecipientRoleEnum] = mapped_column(
        Enum(RecipientRoleEnum, name="contract_recipient_role"), nullable=False, default=RecipientRoleEnum.signer
    )
    signing_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[RecipientStatusEnum] = mapped_column(
        Enum(RecipientStatusEnum, name="contract_recipient_status"),
        nullable=False,
        default=RecipientStatusEnum.pending,
    )
    auth_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    field_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()

    contract: Mapped[Contract] = relationship(back_populates="recipients")


class ContractField(Base):
    __tablename__ = "contract_fields"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    contract_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    recipient_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("contract_recipients.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[ContractFieldTypeEnum] = mapped_column(
        Enum(ContractFieldTypeEnum, name="contract_field_type"), nullable=False
    )
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    position_x: Mapped[float] = mapped_column(Float, nullable=False)
    position_y: Mapped[float] = mapped_column(Float, nullable=False)
    width: Mapped[float] = mapped_column(Float, nullable=False)
    height: Mapped[float] = mapped_column(Float, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    label: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    placeholder: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()

    contract: Mapped[Contract] = relationship(back_populates="fields")


class ContractAuditLog(Base):
    __tablename__ = "contract_audit_logs"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    contract_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    recipient_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action: Mapped[ContractAuditActionEnum] = mapped_column(
        Enum(ContractAuditActionEnum, name="contract_audit_action"), nullable=False
    )
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    ip_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    contract: Mapped[Contract] = relationship(back_populates="audit_logs")


class ContractSigningToken(Base):
    __tablename__ = "contract_signing_tokens"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    contract_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    recipient_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("contract_recipients.id", ondelete="CASCADE"), nullable=False
    )
    token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()


class ScorecardMetric(Base):
    __tablename__ = "scorecard_metrics"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    metric_key: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metric_type: Mapped[ScorecardMetricTypeEnum] = mapped_column(
        Enum(ScorecardMetricTypeEnum, name="scorecard_metric_type"),
        nullable=False,
        default=ScorecardMetricTypeEnum.custom,
    )
    formula: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    goal_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    goal_operator: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_percentage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_currency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    decimal_places: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    campaign_name_filters: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class ScorecardData(Base):
    __tablename__ = "scorecard_data"
    __table_args__ = (
        UniqueConstraint("metric_id", "period_start", "period_end", name="uq_scorecard_data_period"),
    )

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    metric_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("scorecard_metrics.id", ondelete="CASCADE"), nullable=False)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    formatted_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class OneSheet(Base):
    __tablename__ = "onesheet"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    product: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    audience_insights: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    personas: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    competitor_analysis: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    ad_account_audit: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    creative_brainstorm: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    context_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class OneSheetSyncJob(Base):
    __tablename__ = "onesheet_sync_jobs"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    onesheet_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("onesheet.id", ondelete="CASCADE"), nullable=False)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[SyncJobStatusEnum] = mapped_column(
        Enum(SyncJobStatusEnum, name="onesheet_sync_job_status"),
        nullable=False,
        default=SyncJobStatusEnum.pending,
    )
    total_ads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_ads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date_range_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    date_range_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()


class OneSheetAiInstructions(Base):
    __tablename__ = "onesheet_ai_instructions"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    onesheet_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("onesheet.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    content_variables: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    awareness_levels: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    content_variables_return_multiple: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    content_variables_allow_new: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    awareness_levels_allow_new: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    content_variables_selection_guidance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discovered_content_variables: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    discovered_awareness_levels: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class AdConfiguration(Base):
    __tablename__ = "ad_configurations"
    __table_args__ = (UniqueConstraint("user_id", "brand_id", "name", name="uq_ad_configuration_name"),)

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    settings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class BriefBatch(Base):
    __tablename__ = "brief_batches"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(UUIDType, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Keyed by share id: {"is_editable", "expires_at", "email", "share_type", "created_at"}.
    share_settings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    concepts: Mapped[list["BriefConcept"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BriefConcept.order_in_batch",
    )


class BriefConcept(Base):
    __tablename__ = "brief_concepts"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    brief_batch_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("brief_batches.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    concept_title: Mapped[str] = mapped_column(Text, nullable=False)
    order_in_batch: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    strategist: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_editor: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    review_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    uploaded_assets: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    asset_upload_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    batch: Mapped[BriefBatch] = relationship(back_populates="concepts")


class ConceptComment(Base):
    __tablename__ = "concept_comments"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    concept_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("brief_concepts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Null for reviewers commenting through a share link.
    user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author_name: Mapped[str] = mapped_column(Text, nullable=False)
    author_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(
        UUIDType, ForeignKey("concept_comments.id", ondelete="CASCADE"), nullable=True
    )
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class ShareActivity(Base):
    __tablename__ = "share_activities"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    share_id: Mapped[str] = mapped_column(Text, nullable=False)
    resource_type: Mapped[str] = mapped_column(Text, nullable=False)
    resource_id: Mapped[str] = mapped_column(UUIDType, nullable=False)
    recipient_email: Mapped[str] = mapped_column(Text, nullable=False)
    share_url: Mapped[str] = mapped_column(Text, nullable=False)
    email_message_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
