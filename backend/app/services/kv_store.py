"""
Key-value store adapter backing OTP state and rate-limit counters.

Two implementations share one protocol:
- RedisKeyValueStore: production, used whenever REDIS_URL is configured.
- InMemoryKeyValueStore: process-local, TTL-aware; dev and tests only.

TTL expiry is load-bearing (OTP lifetime, cooldowns, rate windows), so both
implementations honour it on every read.
"""
from __future__ import annotations

import json
import logging
import math
import threading
import time
from typing import Any, Callable, Protocol

import redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.errors import InternalError

logger = logging.getLogger(__name__)


class KeyValueStoreError(InternalError):
    default_message = "Temporary storage is unavailable. Please try again."


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        ...

    def delete(self, *keys: str) -> int:
        ...

    def increment(self, key: str, amount: int = 1) -> int:
        ...

    def expire(self, key: str, ttl_seconds: int) -> bool:
        ...

    def ttl(self, key: str) -> int:
        """Seconds left; -1 if the key has no expiry, -2 if it does not exist."""
        ...

    def exists(self, key: str) -> bool:
        ...


# -----------------------------
# JSON helpers
# -----------------------------
def set_json(store: KeyValueStore, key: str, value: Any, ttl_seconds: int | None = None) -> None:
    store.set(key, json.dumps(value, separators=(",", ":")), ttl_seconds)


def get_json(store: KeyValueStore, key: str) -> Any | None:
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.error("Failed to parse JSON for key: %s", key)
        return None


# -----------------------------
# In-memory implementation
# -----------------------------
class InMemoryKeyValueStore:
    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_seconds if ttl_seconds else None
            self._data[key] = (str(value), expires_at)

    def delete(self, *keys: str) -> int:
        deleted = 0
        with self._lock:
            for key in keys:
                if self._live(key) is not None:
                    del self._data[key]
                    deleted += 1
        return deleted

    def increment(self, key: str, amount: int = 1) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                value, expires_at = 0, None
            else:
                try:
                    value = int(entry[0])
                except ValueError as exc:
                    raise KeyValueStoreError("Value is not an integer") from exc
                expires_at = entry[1]
            value += amount
            self._data[key] = (str(value), expires_at)
            return value

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], self._clock() + ttl_seconds)
            return True

    def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return -2
            if entry[1] is None:
                return -1
            return max(0, math.ceil(entry[1] - self._clock()))

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


# -----------------------------
# Redis implementation
# -----------------------------
class RedisKeyValueStore:
    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    def get(self, key: str) -> str | None:
        try:
            value = self.client.get(key)
        except RedisError as exc:
            raise KeyValueStoreError() from exc
        logger.debug("KV GET %s found=%s", key, value is not None)
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            if ttl_seconds:
                self.client.set(key, value, ex=int(ttl_seconds))
            else:
                self.client.set(key, value)
        except RedisError as exc:
            raise KeyValueStoreError() from exc
        logger.debug("KV SET %s ttl=%s", key, ttl_seconds)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.client.delete(*keys))
        except RedisError as exc:
            raise KeyValueStoreError() from exc

    def increment(self, key: str, amount: int = 1) -> int:
        try:
            return int(self.client.incrby(key, amount))
        except RedisError as exc:
            raise KeyValueStoreError() from exc

    def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(self.client.expire(key, int(ttl_seconds)))
        except RedisError as exc:
            raise KeyValueStoreError() from exc

    def ttl(self, key: str) -> int:
        try:
            return int(self.client.ttl(key))
        except RedisError as exc:
            raise KeyValueStoreError() from exc

    def exists(self, key: str) -> bool:
        try:
            return bool(self.client.exists(key))
        except RedisError as exc:
            raise KeyValueStoreError() from exc


_store: KeyValueStore | None = None
_lock = threading.Lock()


def get_kv_store() -> KeyValueStore:
    global _store
    if _store is not None:
        return _store
    with _lock:
        if _store is None:
            _store = _build_kv_store()
    return _store


def reset_kv_store() -> None:
    """
    Test helper to ensure a fresh store is constructed after settings change.
    """

    global _store
    with _lock:
        _store = None


def _build_kv_store() -> KeyValueStore:
    if not settings.REDIS_URL:
        if settings.is_prod:
            raise RuntimeError("REDIS_URL must be set in prod")
        logger.warning("REDIS_URL is unset; using process-local InMemoryKeyValueStore")
        return InMemoryKeyValueStore()

    client = redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )
    logger.info("Key-value store backed by Redis")
    return RedisKeyValueStore(client)
