# app/core/crypto.py
"""
Encryption at rest for third-party OAuth tokens (Gmail access/refresh tokens).

Set TOKEN_ENCRYPTION_KEY to a urlsafe base64 Fernet key in production. In dev
and tests a stable key is derived from JWT_SECRET.
"""
from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from app.core.config import settings

_PREFIX = "fernet:"


class TokenCryptoError(RuntimeError):
    pass


def _derived_key() -> str:
    secret = (settings.JWT_SECRET or "").encode("utf-8")
    if not secret:
        raise TokenCryptoError("JWT_SECRET is missing; cannot derive token encryption key.")
    digest = hashlib.sha256(secret + b"|gmail.tokens.v1").digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


def _fernet() -> Fernet:
    key = settings.TOKEN_ENCRYPTION_KEY or _derived_key()
    return Fernet(key.encode("utf-8"))


def encrypt_secret(value: str | None) -> str | None:
    if value is None:
        return None
    token = _fernet().encrypt(value.encode("utf-8"))
    return _PREFIX + token.decode("ascii")


def decrypt_secret(value: str | None) -> str | None:
    if not value:
        return None
    if not value.startswith(_PREFIX):
        raise TokenCryptoError("Unknown token encryption format.")
    try:
        raw = _fernet().decrypt(value.removeprefix(_PREFIX).encode("ascii"))
    except InvalidToken as exc:
        raise TokenCryptoError("Stored token could not be decrypted.") from exc
    return raw.decode("utf-8")
