from datetime import datetime, timedelta, timezone

import pytest

from powerbrief.services.token_crypto import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    TokenEncryptionError,
    calculate_expiration,
    decrypt_token,
    encrypt_token,
)

OTHER_KEY = "f" * 64


def test_encrypted_token_uses_fresh_iv_and_decrypts():
    first = encrypt_token("EAAB-long-lived")
    second = encrypt_token("EAAB-long-lived")

    assert first.iv != second.iv
    assert first.encrypted_token != "EAAB-long-lived"
    assert decrypt_token(first.encrypted_token, first.iv, first.auth_tag) == "EAAB-long-lived"


def test_tampered_auth_tag_is_rejected():
    sealed = encrypt_token("EAAB-long-lived")
    other = encrypt_token("something-else")

    with pytest.raises(TokenEncryptionError):
        decrypt_token(sealed.encrypted_token, sealed.iv, other.auth_tag)


def test_wrong_key_is_rejected():
    sealed = encrypt_token("EAAB-long-lived")
    with pytest.raises(TokenEncryptionError):
        decrypt_token(sealed.encrypted_token, sealed.iv, sealed.auth_tag, key_hex=OTHER_KEY)


def test_key_must_be_32_hex_bytes():
    with pytest.raises(TokenEncryptionError):
        encrypt_token("token", key_hex="abcd")
    with pytest.raises(TokenEncryptionError):
        encrypt_token("token", key_hex="z" * 64)


def test_calculate_expiration_defaults_to_sixty_days():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert calculate_expiration(None, now=now) == now + timedelta(seconds=DEFAULT_TOKEN_LIFETIME_SECONDS)
    assert calculate_expiration(3600, now=now) == now + timedelta(hours=1)
