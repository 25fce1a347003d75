from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Protocol

from app.core.config import settings
from app.core.errors import TooManyRequestsError
from app.services.kv_store import KeyValueStore, get_kv_store
from app.services.otp import otp_cooldown_key, otp_resend_key
from app.services.users import normalize_email

logger = logging.getLogger(__name__)

ONE_HOUR_SECONDS = 3600


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int
    limit: int
    remaining: int
    count: int
    window_reset_epoch: int
    limiter_key: str
    window_seconds: int


class RateLimiter(Protocol):
    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        ...


class NoopRateLimiter:
    """
    Disabled limiter that always allows requests. Used when rate limiting is turned off.
    """

    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        now_ts = int(now or time.time())
        reset_epoch = now_ts + window_seconds
        limiter_key = f"noop:{route_key}:window:{window_seconds}"
        return RateLimitResult(
            allowed=True,
            retry_after_seconds=0,
            limit=limit,
            remaining=max(0, limit),
            count=0,
            window_reset_epoch=reset_epoch,
            limiter_key=limiter_key,
            window_seconds=window_seconds,
        )


class KeyValueRateLimiter:
    """
    Fixed-window counter per (identifier, route, window start) in the key-value store.
    Counters expire shortly after their window closes.
    """

    def __init__(self, store: KeyValueStore, *, ttl_buffer_seconds: int = 5) -> None:
        self.store = store
        self.ttl_buffer_seconds = ttl_buffer_seconds

    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        now_ts = int(now or time.time())
        limiter_key = self._build_key(route_key, window_seconds)

        if limit <= 0 or window_seconds <= 0:
            return RateLimitResult(
                allowed=True,
                retry_after_seconds=0,
                limit=limit,
                remaining=0,
                count=0,
                window_reset_epoch=now_ts + max(window_seconds, 0),
                limiter_key=limiter_key,
                window_seconds=window_seconds,
            )

        window_start = now_ts - (now_ts % window_seconds)
        counter_key = f"ratelimit:{identifier}:{limiter_key}:{window_start}"
        count = self.store.increment(counter_key)
        if count == 1:
            self.store.expire(counter_key, window_seconds + self.ttl_buffer_seconds)

        remaining = max(0, limit - count)
        allowed = count <= limit
        retry_after = 0
        if not allowed:
            retry_after = max(1, window_start + window_seconds - now_ts)

        return RateLimitResult(
            allowed=allowed,
            retry_after_seconds=retry_after,
            limit=limit,
            remaining=remaining,
            count=count,
            window_reset_epoch=window_start + window_seconds,
            limiter_key=limiter_key,
            window_seconds=window_seconds,
        )

    @staticmethod
    def _build_key(route_key: str, window_seconds: int) -> str:
        return f"route:{route_key}:window:{window_seconds}"


class OtpResendThrottle:
    """
    Bounds OTP sends per email: a short cooldown between sends plus an hourly cap.
    Uses the otp:cooldown:<email> / otp:resend:<email> keys owned by the OTP engine.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        cooldown_seconds: int | None = None,
        max_per_hour: int | None = None,
    ) -> None:
        self.store = store
        self.cooldown_seconds = int(cooldown_seconds or settings.OTP_RESEND_COOLDOWN_SECONDS)
        self.max_per_hour = int(max_per_hour or settings.OTP_MAX_RESENDS_PER_HOUR)

    def check(self, email: str) -> None:
        """Raise TooManyRequestsError if a send is not allowed right now; otherwise record it."""
        normalized = normalize_email(email)
        cooldown_key = otp_cooldown_key(normalized)
        resend_key = otp_resend_key(normalized)

        if self.store.exists(cooldown_key):
            retry_after = self.store.ttl(cooldown_key)
            logger.info("OTP resend blocked by cooldown for %s", normalized)
            raise TooManyRequestsError(
                "Please wait before requesting another code",
                retry_after_seconds=retry_after if retry_after > 0 else self.cooldown_seconds,
            )

        sent = self.store.increment(resend_key)
        if sent == 1:
            self.store.expire(resend_key, ONE_HOUR_SECONDS)
        if sent > self.max_per_hour:
            retry_after = self.store.ttl(resend_key)
            logger.warning("OTP hourly send cap reached for %s", normalized)
            raise TooManyRequestsError(
                "Too many verification codes requested. Please try again later",
                retry_after_seconds=retry_after if retry_after > 0 else ONE_HOUR_SECONDS,
            )

        self.store.set(cooldown_key, "1", self.cooldown_seconds)


_limiter: RateLimiter | None = None
_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is not None:
        return _limiter
    with _lock:
        if _limiter is None:
            _limiter = _build_rate_limiter()
    return _limiter


def reset_rate_limiter() -> None:
    """
    Test helper to ensure a fresh limiter instance is constructed after settings change.
    """

    global _limiter
    with _lock:
        _limiter = None


def _build_rate_limiter() -> RateLimiter:
    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting disabled via RATE_LIMIT_ENABLED=false; using NoopRateLimiter")
        return NoopRateLimiter()

    logger.info("Rate limiting enabled using the key-value store")
    return KeyValueRateLimiter(get_kv_store())
