"""
Inbound creator replies delivered by the SendGrid Inbound Parse webhook.

Brands receive mail at ``{email_identifier}@{INBOUND_EMAIL_DOMAIN}``; replies
are attached to the creator's thread, the creator status is nudged from simple
keyword matching and the AI coordinator then reviews the creator.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import Session

from powerbrief.config import settings
from powerbrief.db.enums import EmailMessageStatusEnum
from powerbrief.db.models import Brand
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.db.repositories.ugc import UgcCreatorsRepository, UgcInboxRepository
from powerbrief.services.ai_coordinator import UgcAiCoordinatorService
from powerbrief.services.email import normalize_subject

logger = logging.getLogger(__name__)

AI_ANALYSIS_FAILED = "Email stored - AI analysis failed"

_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")

# Checked in order; negative phrases first so "not interested" is not read as interest.
_STATUS_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("NOT_INTERESTED", ("no thanks", "not interested", "pass")),
    ("INTERESTED", ("yes", "interested", "let's do it")),
    ("NEEDS_CLARIFICATION", ("question", "clarification", "?")),
    ("SCHEDULING", ("schedule", "calendar", "call")),
    ("NEGOTIATING_RATES", ("rates", "price", "fee", "cost")),
    ("READY_FOR_SCRIPTS", ("script", "brief", "ready")),
]


class InboundEmailError(RuntimeError):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class InboundEmail:
    to: str
    sender: str
    subject: str = ""
    text: str = ""
    html: str = ""
    headers: Optional[str] = None
    attachments: Optional[str] = None
    envelope: Optional[str] = None


@dataclass
class InboundResult:
    thread_id: str
    creator_id: str
    actions_taken: list[str] = field(default_factory=list)


def extract_address(value: str) -> str:
    match = _ANGLE_ADDRESS.search(value or "")
    return (match.group(1) if match else (value or "")).strip()


def extract_sender_name(value: str) -> str:
    display = (value or "").split("<", 1)[0].strip().replace('"', "")
    if display and "<" in (value or ""):
        return display
    return extract_address(value).split("@", 1)[0]


def extract_brand_identifier(to_field: str, *, domain: Optional[str] = None) -> Optional[str]:
    address = extract_address(to_field).lower()
    inbound_domain = (domain or settings.INBOUND_EMAIL_DOMAIN).lower()
    root_domain = inbound_domain[5:] if inbound_domain.startswith("mail.") else inbound_domain

    direct = re.match(rf"^([a-z0-9-]+)@{re.escape(inbound_domain)}$", address)
    if direct:
        return direct.group(1)
    for candidate in (inbound_domain, root_domain):
        legacy = re.search(rf"creators\+([^@]+)@{re.escape(candidate)}$", address)
        if legacy:
            return legacy.group(1)
    return None


def analyze_email_for_status(text: str, subject: str) -> str:
    content = f"{text or ''} {subject or ''}".lower()
    for status_value, keywords in _STATUS_KEYWORDS:
        if any(keyword in content for keyword in keywords):
            return status_value
    return "EMAIL_RESPONSE"


def process_inbound_email(
    session: Session,
    email: InboundEmail,
    *,
    coordinator: Optional[UgcAiCoordinatorService] = None,
) -> InboundResult:
    identifier = extract_brand_identifier(email.to)
    if not identifier:
        raise InboundEmailError("Invalid email routing", status_code=400)

    brand: Optional[Brand] = BrandsRepository(session).get_by_email_identifier(identifier)
    if brand is None:
        raise InboundEmailError(f"Brand not found: {identifier}", status_code=404)

    creators = UgcCreatorsRepository(session)
    creator_email = extract_address(email.sender).lower()
    creator = creators.get_by_email(brand.id, creator_email)
    if creator is None:
        creator = creators.create(
            brand.id,
            user_id=brand.user_id,
            name=extract_sender_name(email.sender),
            email=creator_email,
            status="EMAIL_RESPONSE",
        )

    inbox = UgcInboxRepository(session)
    thread = inbox.get_or_create_thread(brand.id, creator.id, normalize_subject(email.subject))
    metadata: dict[str, Any] = {
        "original_headers": email.headers,
        "attachments": email.attachments,
        "envelope": email.envelope,
    }
    inbox.add_message(
        thread,
        from_email=creator_email,
        to_email=email.to,
        subject=email.subject or "",
        html_content=email.html or "",
        text_content=email.text or "",
        status=EmailMessageStatusEnum.received,
        variables_used=metadata,
    )

    new_status = analyze_email_for_status(email.text, email.subject)
    if new_status != creator.status:
        creators.update_fields(creator, status=new_status)

    logger.info(
        "Stored inbound creator email",
        extra={"brand_id": brand.id, "creator_id": creator.id, "thread_id": thread.id, "status": new_status},
    )

    try:
        service = coordinator or UgcAiCoordinatorService(session)
        outcome = service.process_pipeline(brand, brand.user_id, [creator.id])
    except Exception:
        logger.warning("AI analysis failed for inbound email", extra={"creator_id": creator.id}, exc_info=True)
        return InboundResult(thread_id=thread.id, creator_id=creator.id, actions_taken=[AI_ANALYSIS_FAILED])

    results = outcome.get("results", [])
    if results and not any(result.get("success") for result in results):
        return InboundResult(thread_id=thread.id, creator_id=creator.id, actions_taken=[AI_ANALYSIS_FAILED])
    actions = [result.get("analysis") or "" for result in results if result.get("success")]
    return InboundResult(thread_id=thread.id, creator_id=creator.id, actions_taken=actions)
