# app/services/otp.py
"""
One-time passcodes delivered by email.

State lives in the key-value store, never in the database:
- otp:<email>           JSON record {code, email, attempts, created_at}
- otp:attempts:<email>  attempt counter, incremented atomically
- otp:cooldown:<email>  resend cooldown marker (see OtpResendThrottle)
- otp:resend:<email>    hourly send counter (see OtpResendThrottle)

The engine itself never blocks resends; that is the rate limiter's job.
"""
from __future__ import annotations

import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from app.core.config import settings
from app.core.errors import InternalError, InvalidOtpError, OtpAttemptsExceededError, OtpExpiredError
from app.services.kv_store import KeyValueStore, get_json, set_json
from app.services.users import normalize_email

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
OTP_TEMPLATE_ID = "otp"

# (to_email, template_id, variables) -> provider message id
SendEmail = Callable[[str, str, Mapping[str, Any]], Any]


def otp_key(email: str) -> str:
    return f"otp:{email}"


def otp_attempts_key(email: str) -> str:
    return f"otp:attempts:{email}"


def otp_cooldown_key(email: str) -> str:
    return f"otp:cooldown:{email}"


def otp_resend_key(email: str) -> str:
    return f"otp:resend:{email}"


def generate_code(length: int = OTP_LENGTH) -> str:
    return str(secrets.randbelow(10**length)).zfill(length)


@dataclass(frozen=True)
class OtpRecord:
    code: str
    email: str
    attempts: int
    created_at: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OtpRecord:
        return cls(
            code=str(data["code"]),
            email=str(data["email"]),
            attempts=int(data.get("attempts", 0)),
            created_at=int(data.get("created_at", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "email": self.email,
            "attempts": self.attempts,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class OtpIssueResult:
    success: bool
    expires_in_seconds: int


@dataclass(frozen=True)
class OtpVerifyResult:
    success: bool
    email: str


class OtpEngine:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        send_email: SendEmail,
        expiry_seconds: int | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.store = store
        self.send_email = send_email
        self.expiry_seconds = int(expiry_seconds or settings.OTP_EXPIRY_SECONDS)
        self.max_attempts = int(max_attempts or settings.OTP_MAX_ATTEMPTS)

    def issue(self, email: str) -> OtpIssueResult:
        normalized = normalize_email(email)
        if not normalized:
            raise ValueError("email is required")

        record = OtpRecord(
            code=generate_code(),
            email=normalized,
            attempts=0,
            created_at=int(time.time() * 1000),
        )
        # A resend replaces the previous record and resets its counter.
        set_json(self.store, otp_key(normalized), record.to_dict(), self.expiry_seconds)
        self.store.set(otp_attempts_key(normalized), "0", self.expiry_seconds)

        try:
            self.send_email(
                normalized,
                OTP_TEMPLATE_ID,
                {"otp": record.code, "expires_minutes": self.expiry_seconds // 60},
            )
        except Exception as exc:
            self.store.delete(otp_key(normalized), otp_attempts_key(normalized))
            logger.exception("OTP email delivery failed for %s; state removed", normalized)
            raise InternalError("Unable to send verification code right now.") from exc

        logger.info("OTP issued for %s (expires in %ss)", normalized, self.expiry_seconds)
        return OtpIssueResult(success=True, expires_in_seconds=self.expiry_seconds)

    def verify(self, email: str, candidate: str) -> OtpVerifyResult:
        normalized = normalize_email(email)
        key = otp_key(normalized)
        data = get_json(self.store, key)
        if not data:
            raise OtpExpiredError()
        record = OtpRecord.from_dict(data)

        attempts = self.store.increment(otp_attempts_key(normalized))
        if attempts > self.max_attempts:
            self.delete(normalized)
            logger.warning("OTP attempts exceeded for %s", normalized)
            raise OtpAttemptsExceededError()

        remaining_ttl = self.store.ttl(key)
        if remaining_ttl == -2 or remaining_ttl == 0:
            # Expired (or about to, Redis rounds sub-second TTLs to 0) since the read.
            self.delete(normalized)
            raise OtpExpiredError()
        ttl = remaining_ttl if remaining_ttl > 0 else self.expiry_seconds
        self.store.expire(otp_attempts_key(normalized), ttl)
        set_json(
            self.store,
            key,
            OtpRecord(record.code, record.email, attempts, record.created_at).to_dict(),
            ttl,
        )

        if not hmac.compare_digest((candidate or "").strip().encode(), record.code.encode()):
            logger.info("Invalid OTP for %s (attempt %s/%s)", normalized, attempts, self.max_attempts)
            raise InvalidOtpError(self.max_attempts - attempts)

        self.store.delete(key, otp_attempts_key(normalized), otp_cooldown_key(normalized))
        logger.info("OTP verified for %s", normalized)
        return OtpVerifyResult(success=True, email=normalized)

    def delete(self, email: str) -> None:
        normalized = normalize_email(email)
        self.store.delete(otp_key(normalized), otp_attempts_key(normalized))

    def exists(self, email: str) -> bool:
        return self.store.exists(otp_key(normalize_email(email)))

    def peek(self, email: str) -> OtpRecord | None:
        data = get_json(self.store, otp_key(normalize_email(email)))
        return OtpRecord.from_dict(data) if data else None
