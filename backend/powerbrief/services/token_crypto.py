"""AES-256-GCM encryption for Meta access tokens stored on brands."""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from powerbrief.config import settings


IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
AAD = b"meta-token"
DEFAULT_TOKEN_LIFETIME_SECONDS = 60 * 24 * 60 * 60


class TokenEncryptionError(RuntimeError):
    pass


@dataclass
class EncryptedToken:
    encrypted_token: str
    iv: str
    auth_tag: str


def _get_key(key_hex: Optional[str] = None) -> bytes:
    raw = key_hex if key_hex is not None else settings.META_TOKEN_ENCRYPTION_KEY
    if not raw:
        raise TokenEncryptionError("META_TOKEN_ENCRYPTION_KEY is required to store Meta tokens.")
    try:
        key = bytes.fromhex(raw)
    except ValueError as exc:
        raise TokenEncryptionError("META_TOKEN_ENCRYPTION_KEY must be hex encoded.") from exc
    if len(key) != KEY_LENGTH:
        raise TokenEncryptionError("META_TOKEN_ENCRYPTION_KEY must be 64 hex characters (32 bytes).")
    return key


def encrypt_token(token: str, *, key_hex: Optional[str] = None) -> EncryptedToken:
    if not token:
        raise TokenEncryptionError("Cannot encrypt an empty token.")
    iv = os.urandom(IV_LENGTH)
    # AESGCM appends the tag to the ciphertext; it is stored separately.
    sealed = AESGCM(_get_key(key_hex)).encrypt(iv, token.encode("utf-8"), AAD)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return EncryptedToken(
        encrypted_token=base64.b64encode(ciphertext).decode("ascii"),
        iv=base64.b64encode(iv).decode("ascii"),
        auth_tag=base64.b64encode(tag).decode("ascii"),
    )


def decrypt_token(
    encrypted_token: str,
    iv: str,
    auth_tag: str,
    *,
    key_hex: Optional[str] = None,
) -> str:
    if not encrypted_token or not iv or not auth_tag:
        raise TokenEncryptionError("Encrypted token, iv and auth tag are all required.")
    try:
        ciphertext = base64.b64decode(encrypted_token)
        nonce = base64.b64decode(iv)
        tag = base64.b64decode(auth_tag)
    except (binascii.Error, ValueError) as exc:
        raise TokenEncryptionError("Encrypted token is not valid base64.") from exc
    if len(nonce) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise TokenEncryptionError("Encrypted token has an invalid iv or auth tag length.")
    try:
        plaintext = AESGCM(_get_key(key_hex)).decrypt(nonce, ciphertext + tag, AAD)
    except InvalidTag as exc:
        raise TokenEncryptionError("Failed to decrypt token: authentication failed.") from exc
    return plaintext.decode("utf-8")


def calculate_expiration(expires_in: Optional[int] = None, *, now: Optional[datetime] = None) -> datetime:
    base = now or datetime.now(timezone.utc)
    seconds = int(expires_in) if expires_in else DEFAULT_TOKEN_LIFETIME_SECONDS
    return base + timedelta(seconds=seconds)
