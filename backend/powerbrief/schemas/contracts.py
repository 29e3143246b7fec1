from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class ContractSendRequest(BaseModel):
    contractId: Optional[str] = None


class SigningTokenRequest(BaseModel):
    token: Optional[str] = None


class SignatureSubmitRequest(BaseModel):
    contractId: Optional[str] = None
    token: Optional[str] = None
    fieldValues: Optional[dict[str, Any]] = None
