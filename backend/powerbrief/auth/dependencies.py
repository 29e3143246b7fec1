from dataclasses import dataclass
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from powerbrief.auth.supabase import verify_supabase_token


bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth.deps")


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    claims = verify_supabase_token(credentials.credentials)
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")

    metadata = claims.get("user_metadata") or {}
    context = AuthContext(
        user_id=user_id,
        email=claims.get("email"),
        full_name=metadata.get("full_name") if isinstance(metadata, dict) else None,
    )
    logger.debug("AuthContext built", extra={"sub": user_id})
    return context


def get_optional_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Optional[AuthContext]:
    """Like get_current_user, but anonymous callers (share-link reviewers) get None."""
    if credentials is None or not credentials.credentials:
        return None
    return get_current_user(credentials)
