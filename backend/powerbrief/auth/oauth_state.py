from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from jose import jwt
from jose.exceptions import JWTError

from powerbrief.config import settings
from powerbrief.db.models import utcnow

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_AUDIENCE = "meta-oauth-state"


class OAuthStateError(ValueError):
    pass


@dataclass
class OAuthState:
    brand_id: str
    user_id: str


def _secret() -> str:
    secret = settings.META_OAUTH_STATE_SECRET or settings.SUPABASE_JWT_SECRET
    if not secret:
        raise OAuthStateError("META_OAUTH_STATE_SECRET is not configured.")
    return secret


def build_oauth_state(brand_id: str, user_id: str, *, ttl_seconds: Optional[int] = None) -> str:
    """Sign the brand and initiating user into the state echoed back by Meta."""
    ttl = settings.META_OAUTH_STATE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    claims = {
        "brand_id": brand_id,
        "sub": user_id,
        "aud": _AUDIENCE,
        "exp": int((utcnow() + timedelta(seconds=ttl)).timestamp()),
    }
    return jwt.encode(claims, _secret(), algorithm=_ALGORITHM)


def verify_oauth_state(state: str) -> OAuthState:
    try:
        claims = jwt.decode(state, _secret(), algorithms=[_ALGORITHM], audience=_AUDIENCE)
    except JWTError as exc:
        logger.warning("Rejected Meta OAuth state", exc_info=exc)
        raise OAuthStateError("Invalid or expired OAuth state.") from exc
    brand_id = claims.get("brand_id")
    user_id = claims.get("sub")
    if not brand_id or not user_id:
        raise OAuthStateError("Invalid or expired OAuth state.")
    return OAuthState(brand_id=str(brand_id), user_id=str(user_id))
