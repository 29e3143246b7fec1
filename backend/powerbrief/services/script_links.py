from __future__ import annotations

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Optional

from powerbrief.config import settings

TOKEN_TTL_MS = 24 * 60 * 60 * 1000
SCRIPT_ACTIONS = ("approve", "reject")


class ScriptTokenError(ValueError):
    pass


@dataclass
class ScriptResponseToken:
    action: str
    script_id: str
    issued_at_ms: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_script_response_token(action: str, script_id: str, *, issued_at_ms: Optional[int] = None) -> str:
    raw = f"{action}:{script_id}:{issued_at_ms if issued_at_ms is not None else _now_ms()}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def parse_script_response_token(token: str, *, now_ms: Optional[int] = None) -> ScriptResponseToken:
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ScriptTokenError("Invalid token format") from exc
    parts = decoded.split(":")
    if len(parts) != 3 or not all(parts):
        raise ScriptTokenError("Invalid token data")
    action, script_id, timestamp = parts
    try:
        issued_at = int(timestamp)
    except ValueError as exc:
        raise ScriptTokenError("Invalid token data") from exc
    current = now_ms if now_ms is not None else _now_ms()
    if current - issued_at > TOKEN_TTL_MS:
        raise ScriptTokenError("Token has expired")
    return ScriptResponseToken(action=action, script_id=script_id, issued_at_ms=issued_at)


def script_response_links(script_id: str) -> dict[str, str]:
    base = f"{settings.API_BASE_URL.rstrip('/')}/ugc/script-response"
    links = {}
    for action in SCRIPT_ACTIONS:
        token = build_script_response_token(action, script_id)
        links[action] = f"{base}?action={action}&scriptId={script_id}&token={token}"
    return links
