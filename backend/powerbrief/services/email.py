from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from powerbrief.config import settings
from powerbrief.db.models import Brand

logger = logging.getLogger(__name__)

_SUBJECT_PREFIX = re.compile(r"^\s*(?:re|fwd|fw)\s*:\s*", re.IGNORECASE)


def normalize_subject(subject: str) -> str:
    """Strip any run of Re:/Fwd:/Fw: prefixes so replies share a thread."""
    cleaned = subject or ""
    while _SUBJECT_PREFIX.match(cleaned):
        cleaned = _SUBJECT_PREFIX.sub("", cleaned, count=1)
    return cleaned.strip()


class EmailConfigError(RuntimeError):
    pass


class EmailSendError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, error_payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_payload = error_payload


@dataclass
class EmailSender:
    email: str
    name: str


def brand_sender(brand: Brand) -> EmailSender:
    """Replies to a brand address land on the inbound webhook, so prefer it over the global sender."""
    name = brand.email_sender_name or brand.name or settings.SENDGRID_FROM_NAME
    if brand.email_identifier:
        return EmailSender(email=f"{brand.email_identifier}@{settings.INBOUND_EMAIL_DOMAIN}", name=name)
    if not settings.SENDGRID_FROM_EMAIL:
        raise EmailConfigError("SENDGRID_FROM_EMAIL is required when the brand has no email identifier.")
    return EmailSender(email=settings.SENDGRID_FROM_EMAIL, name=name)


class EmailClient:
    def __init__(self, *, api_key: str, base_url: str, default_from: Optional[str], default_from_name: str) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_from = default_from
        self.default_from_name = default_from_name
        self.timeout = httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS)

    @classmethod
    def from_settings(cls) -> "EmailClient":
        if not settings.SENDGRID_API_KEY:
            raise EmailConfigError("SENDGRID_API_KEY is required to send email.")
        return cls(
            api_key=settings.SENDGRID_API_KEY,
            base_url=settings.SENDGRID_API_BASE_URL,
            default_from=settings.SENDGRID_FROM_EMAIL,
            default_from_name=settings.SENDGRID_FROM_NAME,
        )

    def send(
        self,
        *,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Optional[str]:
        sender = from_email or self.default_from
        if not sender:
            raise EmailConfigError("SENDGRID_FROM_EMAIL is required to send email.")
        content = []
        if text:
            content.append({"type": "text/plain", "value": text})
        content.append({"type": "text/html", "value": html})
        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": sender, "name": from_name or self.default_from_name},
            "subject": subject,
            "content": content,
        }
        if reply_to:
            payload["reply_to"] = {"email": reply_to}

        try:
            response = httpx.post(
                f"{self.base_url}/v3/mail/send",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error_payload: Any = None
            try:
                error_payload = exc.response.json()
            except ValueError:
                error_payload = {"text": exc.response.text}
            raise EmailSendError(
                f"SendGrid error ({exc.response.status_code}).",
                status_code=exc.response.status_code,
                error_payload=error_payload,
            ) from exc
        except httpx.RequestError as exc:
            raise EmailSendError(f"SendGrid request failed: {exc}") from exc

        message_id = response.headers.get("x-message-id")
        logger.info("Email sent", extra={"to": to, "subject": subject, "message_id": message_id})
        return message_id

    def send_as_brand(self, brand: Brand, *, to: str, subject: str, html: str, text: Optional[str] = None) -> Optional[str]:
        sender = brand_sender(brand)
        return self.send(
            to=to,
            subject=subject,
            html=html,
            text=text,
            from_email=sender.email,
            from_name=sender.name,
            reply_to=sender.email,
        )
