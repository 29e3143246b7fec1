from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, status
from jose import jwt
from jose.exceptions import JWTError

from powerbrief.config import settings


logger = logging.getLogger("auth.supabase")

_ALGORITHMS = ["HS256"]


def verify_supabase_token(token: str) -> Dict[str, Any]:
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        logger.error("SUPABASE_JWT_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication is not configured",
        )
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=_ALGORITHMS,
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as exc:
        logger.warning("Token verification failed", exc_info=exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    logger.debug(
        "Verified Supabase token",
        extra={"aud": claims.get("aud"), "role": claims.get("role"), "sub": claims.get("sub")},
    )
    return claims
