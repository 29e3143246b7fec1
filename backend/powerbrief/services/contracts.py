"""Contract creation, signing-link delivery and signature capture."""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional
from uuid import uuid4

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from powerbrief.config import settings
from powerbrief.db.enums import (
    ContractAuditActionEnum,
    ContractFieldTypeEnum,
    ContractStatusEnum,
    RecipientRoleEnum,
    RecipientStatusEnum,
)
from powerbrief.db.models import (
    Brand,
    Contract,
    ContractField,
    ContractRecipient,
    ContractSigningToken,
    ContractTemplate,
    as_utc,
    utcnow,
)
from powerbrief.db.repositories.contracts import ContractsRepository
from powerbrief.db.repositories.ugc import UgcCreatorsRepository
from powerbrief.services.email import EmailClient, EmailConfigError, EmailSendError

logger = logging.getLogger(__name__)

DEFAULT_SIGNING_TOKEN_DAYS = 30
PDF_MAGIC = b"%PDF"


class ContractError(RuntimeError):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class VerifiedSigningToken:
    signing_token: ContractSigningToken
    contract: Contract
    recipient: ContractRecipient


def generate_token() -> str:
    return secrets.token_hex(32)


def is_pdf(data: bytes) -> bool:
    return data[:4] == PDF_MAGIC


def client_ip(headers: Mapping[str, str]) -> Optional[str]:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip")


def signing_url(contract_id: str, token: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/public/contract-signing/{contract_id}?token={token}"


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _build_fields(
    recipients: list[ContractRecipient], raw_fields: list[dict[str, Any]]
) -> list[ContractField]:
    if not recipients:
        return []
    by_email = {recipient.email.lower(): recipient for recipient in recipients}
    if not raw_fields:
        signers = [r for r in recipients if r.role == RecipientRoleEnum.signer]
        return [
            ContractField(
                recipient_id=signer.id,
                type=ContractFieldTypeEnum.signature,
                page=1,
                position_x=0.1,
                position_y=0.8 - index * 0.1,
                width=0.3,
                height=0.08,
                is_required=True,
                label=f"{signer.name} signature",
            )
            for index, signer in enumerate(signers)
        ]

    fields: list[ContractField] = []
    for raw in raw_fields:
        email = _pick(raw, "recipientEmail", "recipient_email", "assignedToEmail")
        recipient = by_email.get(email.lower()) if isinstance(email, str) else None
        if recipient is None:
            recipient = recipients[0]
        fields.append(
            ContractField(
                recipient_id=recipient.id,
                type=ContractFieldTypeEnum(_pick(raw, "type", default="signature")),
                page=int(_pick(raw, "page", default=1)),
                position_x=float(_pick(raw, "positionX", "position_x", "x", default=0)),
                position_y=float(_pick(raw, "positionY", "position_y", "y", default=0)),
                width=float(_pick(raw, "width", default=0.3)),
                height=float(_pick(raw, "height", default=0.08)),
                is_required=bool(_pick(raw, "isRequired", "is_required", default=True)),
                label=_pick(raw, "label"),
                placeholder=_pick(raw, "placeholder"),
            )
        )
    return fields


def create_contract(
    session: Session,
    *,
    brand_id: str,
    user_id: str,
    title: str,
    document_data: bytes,
    document_name: str,
    recipients: list[dict[str, Any]],
    fields: list[dict[str, Any]],
    expires_in_days: Optional[int] = None,
    creator_id: Optional[str] = None,
    template_id: Optional[str] = None,
) -> Contract:
    if not is_pdf(document_data):
        raise ContractError("Document must be a PDF file.")
    if not recipients:
        raise ContractError("At least one recipient is required.")

    recipient_rows: list[ContractRecipient] = []
    for index, raw in enumerate(recipients):
        name = _pick(raw, "name")
        email = _pick(raw, "email")
        if not name or not email:
            raise ContractError("Each recipient requires a name and email.")
        recipient_rows.append(
            ContractRecipient(
                id=str(uuid4()),
                name=name,
                email=email.strip(),
                role=RecipientRoleEnum(_pick(raw, "role", default="signer")),
                signing_order=index + 1,
                status=RecipientStatusEnum.pending,
            )
        )

    expires_at = utcnow() + timedelta(days=expires_in_days) if expires_in_days else None
    contract = Contract(
        brand_id=brand_id,
        user_id=user_id,
        template_id=template_id,
        creator_id=creator_id,
        title=title,
        status=ContractStatusEnum.draft,
        document_data=document_data,
        document_name=document_name,
        document_size=len(document_data),
        share_token=generate_token(),
        expires_at=expires_at,
    )
    contract.recipients = recipient_rows
    session.add(contract)
    # Fields reference recipient rows, so those must exist first.
    session.flush()
    contract.fields = _build_fields(recipient_rows, fields)
    ContractsRepository(session).add_audit(
        contract,
        ContractAuditActionEnum.created,
        details={"recipient_count": len(recipient_rows), "field_count": len(contract.fields)},
    )
    session.commit()
    session.refresh(contract)
    logger.info("Contract created", extra={"contract_id": contract.id, "brand_id": brand_id})
    return contract


def get_next_signing_recipient(contract: Contract) -> Optional[ContractRecipient]:
    waiting = [
        recipient
        for recipient in contract.recipients
        if recipient.role == RecipientRoleEnum.signer
        and recipient.status in (RecipientStatusEnum.sent, RecipientStatusEnum.viewed, RecipientStatusEnum.pending)
    ]
    if not waiting:
        return None
    return min(waiting, key=lambda recipient: recipient.signing_order)


def can_contract_be_signed(contract: Contract) -> bool:
    return contract.status in (ContractStatusEnum.sent, ContractStatusEnum.partially_signed)


def _signing_email(contract: Contract, recipient: ContractRecipient, url: str, brand_name: str) -> tuple[str, str]:
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        "<h2>Contract Ready for Your Signature</h2>"
        f"<p>Hello {recipient.name},</p>"
        f"<p>{brand_name} has invited you to sign the contract: <strong>{contract.title}</strong></p>"
        f'<p><a href="{url}">Review and sign the document</a></p>'
        "<p>This link is unique to you. Please do not forward it.</p>"
        "</div>"
    )
    text = (
        f"Hello {recipient.name},\n\n"
        f"{brand_name} has invited you to sign the contract: {contract.title}\n\n"
        f"Review and sign: {url}\n"
    )
    return html, text


def send_contract(session: Session, contract: Contract, brand: Brand) -> dict[str, Any]:
    if contract.status != ContractStatusEnum.draft:
        raise ContractError("Only draft contracts can be sent.")

    repo = ContractsRepository(session)
    expires_at = as_utc(contract.expires_at) or utcnow() + timedelta(days=DEFAULT_SIGNING_TOKEN_DAYS)
    try:
        email_client: Optional[EmailClient] = EmailClient.from_settings()
    except EmailConfigError:
        logger.warning("Email not configured; signing links not emailed", extra={"contract_id": contract.id})
        email_client = None

    signers = sorted(
        (r for r in contract.recipients if r.role == RecipientRoleEnum.signer),
        key=lambda recipient: recipient.signing_order,
    )
    links: list[dict[str, Any]] = []
    for recipient in signers:
        token = generate_token()
        recipient.auth_token = token
        recipient.status = RecipientStatusEnum.sent
        session.add(
            ContractSigningToken(
                contract_id=contract.id,
                recipient_id=recipient.id,
                token=token,
                expires_at=expires_at,
            )
        )
        url = signing_url(contract.id, token)
        email_error = None
        if email_client is not None:
            html, text = _signing_email(contract, recipient, url, brand.name)
            try:
                email_client.send_as_brand(
                    brand,
                    to=recipient.email,
                    subject=f"Contract Ready for Signature: {contract.title}",
                    html=html,
                    text=text,
                )
            except (EmailConfigError, EmailSendError) as exc:
                email_error = str(exc)
                logger.warning(
                    "Signing email failed",
                    extra={"contract_id": contract.id, "recipient_id": recipient.id},
                    exc_info=True,
                )
        repo.add_audit(
            contract,
            ContractAuditActionEnum.sent,
            recipient_id=recipient.id,
            details={"email": recipient.email},
        )
        links.append({"recipientId": recipient.id, "email": recipient.email, "emailError": email_error})

    contract.status = ContractStatusEnum.sent
    if contract.creator_id:
        creator = UgcCreatorsRepository(session).get_by_id(contract.creator_id)
        if creator is not None:
            creator.contract_status = "contract sent"
    session.commit()
    session.refresh(contract)
    return {"contractId": contract.id, "status": contract.status.value, "recipients": links}


def verify_signing_token(session: Session, token: str) -> VerifiedSigningToken:
    repo = ContractsRepository(session)
    signing_token = repo.get_signing_token(token)
    if signing_token is None:
        raise ContractError("Invalid signing token", status_code=401)
    if signing_token.used_at is not None:
        raise ContractError("This signing link has already been used", status_code=403)
    if as_utc(signing_token.expires_at) < utcnow():
        raise ContractError("This signing link has expired", status_code=403)
    contract = repo.get(signing_token.contract_id)
    if contract is None:
        raise ContractError("Contract not found", status_code=404)
    recipient = next((r for r in contract.recipients if r.id == signing_token.recipient_id), None)
    if recipient is None:
        raise ContractError("Recipient not found", status_code=404)
    return VerifiedSigningToken(signing_token=signing_token, contract=contract, recipient=recipient)


def record_view(
    session: Session,
    verified: VerifiedSigningToken,
    *,
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> None:
    recipient = verified.recipient
    if recipient.status in (RecipientStatusEnum.pending, RecipientStatusEnum.sent):
        recipient.status = RecipientStatusEnum.viewed
    if recipient.viewed_at is None:
        recipient.viewed_at = utcnow()
    ContractsRepository(session).add_audit(
        verified.contract,
        ContractAuditActionEnum.viewed,
        recipient_id=recipient.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.commit()


def _completion_certificate(contract: Contract, completed_at: datetime) -> dict[str, Any]:
    return {
        "contractId": contract.id,
        "title": contract.title,
        "completedAt": completed_at.isoformat(),
        "documentSha256": hashlib.sha256(contract.document_data).hexdigest(),
        "signers": [
            {
                "name": recipient.name,
                "email": recipient.email,
                "signedAt": recipient.signed_at.isoformat() if recipient.signed_at else None,
                "ipAddress": recipient.ip_address,
            }
            for recipient in contract.recipients
            if recipient.role == RecipientRoleEnum.signer
        ],
    }


def submit_signature(
    session: Session,
    *,
    contract_id: str,
    token: str,
    field_values: dict[str, Any],
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> Contract:
    verified = verify_signing_token(session, token)
    contract = verified.contract
    if contract.id != contract_id:
        raise ContractError("Signing token does not belong to this contract", status_code=403)
    if not can_contract_be_signed(contract):
        raise ContractError("Contract is not open for signing")
    next_signer = get_next_signing_recipient(contract)
    if next_signer is not None and next_signer.signing_order < verified.recipient.signing_order:
        raise ContractError("An earlier signer has not signed yet", status_code=409)

    repo = ContractsRepository(session)
    now = utcnow()
    recipient = verified.recipient
    recipient.status = RecipientStatusEnum.signed
    recipient.signed_at = now
    recipient.field_values = field_values
    recipient.ip_address = ip_address
    recipient.user_agent = user_agent
    verified.signing_token.used_at = now
    verified.signing_token.ip_address = ip_address
    verified.signing_token.user_agent = user_agent
    repo.add_audit(
        contract,
        ContractAuditActionEnum.signed,
        recipient_id=recipient.id,
        details={"field_count": len(field_values)},
        ip_address=ip_address,
        user_agent=user_agent,
    )

    signers = [r for r in contract.recipients if r.role == RecipientRoleEnum.signer]
    if all(r.status == RecipientStatusEnum.signed for r in signers):
        contract.status = ContractStatusEnum.completed
        contract.completed_at = now
        contract.completion_certificate = _completion_certificate(contract, now)
        repo.add_audit(contract, ContractAuditActionEnum.completed, details={"signer_count": len(signers)})
        if contract.creator_id:
            creator = UgcCreatorsRepository(session).get_by_id(contract.creator_id)
            if creator is not None:
                creator.contract_status = "contract signed"
    else:
        contract.status = ContractStatusEnum.partially_signed

    session.commit()
    session.refresh(contract)
    logger.info(
        "Contract signed",
        extra={"contract_id": contract.id, "recipient_id": recipient.id, "status": contract.status.value},
    )
    return contract


def void_contract(session: Session, contract: Contract) -> Contract:
    if contract.status in (ContractStatusEnum.completed, ContractStatusEnum.voided):
        raise ContractError(f"Cannot void a {contract.status.value} contract.")
    contract.status = ContractStatusEnum.voided
    contract.voided_at = utcnow()
    ContractsRepository(session).add_audit(contract, ContractAuditActionEnum.voided)
    session.commit()
    session.refresh(contract)
    return contract


def serialize_template(template: ContractTemplate) -> dict[str, Any]:
    return jsonable_encoder(
        {
            "id": template.id,
            "brand_id": template.brand_id,
            "title": template.title,
            "description": template.description,
            "document_name": template.document_name,
            "document_size": template.document_size,
            "fields": template.fields,
            "is_active": template.is_active,
            "created_at": template.created_at,
            "updated_at": template.updated_at,
        }
    )


def serialize_recipient(recipient: ContractRecipient) -> dict[str, Any]:
    return jsonable_encoder(
        {
            "id": recipient.id,
            "name": recipient.name,
            "email": recipient.email,
            "role": recipient.role,
            "signing_order": recipient.signing_order,
            "status": recipient.status,
            "viewed_at": recipient.viewed_at,
            "signed_at": recipient.signed_at,
        }
    )


def serialize_field(field: ContractField) -> dict[str, Any]:
    return jsonable_encoder(
        {
            "id": field.id,
            "recipient_id": field.recipient_id,
            "type": field.type,
            "page": field.page,
            "position_x": field.position_x,
            "position_y": field.position_y,
            "width": field.width,
            "height": field.height,
            "is_required": field.is_required,
            "label": field.label,
            "placeholder": field.placeholder,
        }
    )


def serialize_contract(contract: Contract, *, include_details: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = jsonable_encoder(
        {
            "id": contract.id,
            "brand_id": contract.brand_id,
            "template_id": contract.template_id,
            "creator_id": contract.creator_id,
            "title": contract.title,
            "status": contract.status,
            "document_name": contract.document_name,
            "document_size": contract.document_size,
            "share_token": contract.share_token,
            "expires_at": contract.expires_at,
            "completed_at": contract.completed_at,
            "voided_at": contract.voided_at,
            "completion_certificate": contract.completion_certificate,
            "created_at": contract.created_at,
            "updated_at": contract.updated_at,
        }
    )
    if include_details:
        data["recipients"] = [serialize_recipient(r) for r in contract.recipients]
        data["fields"] = [serialize_field(f) for f in contract.fields]
        data["audit_logs"] = jsonable_encoder(
            [
                {
                    "id": entry.id,
                    "recipient_id": entry.recipient_id,
                    "action": entry.action,
                    "details": entry.details,
                    "ip_address": entry.ip_address,
                    "created_at": entry.created_at,
                }
                for entry in contract.audit_logs
            ]
        )
    return data


def encode_document(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
