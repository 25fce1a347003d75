# app/core/security.py
from __future__ import annotations

from datetime import datetime, timezone

from passlib.context import CryptContext

# bcrypt cost factor; never below 12.
BCRYPT_ROUNDS = 12

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


# -------------------------
# Password hashing
# -------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unknown/corrupt hash format: treat as a mismatch.
        return False


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
