from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStoreError,
    RedisKeyValueStore,
    get_json,
    set_json,
)


def test_in_memory_set_get_and_expiry(kv_store, clock):
    kv_store.set("a", "1", ttl_seconds=10)
    kv_store.set("b", "2")

    assert kv_store.get("a") == "1"
    assert kv_store.ttl("a") == 10
    assert kv_store.ttl("b") == -1
    assert kv_store.ttl("missing") == -2

    clock.advance(10)
    assert kv_store.get("a") is None
    assert kv_store.exists("a") is False
    assert kv_store.get("b") == "2"


def test_in_memory_increment_keeps_ttl(kv_store, clock):
    assert kv_store.increment("counter") == 1
    kv_store.expire("counter", 30)
    clock.advance(5)

    assert kv_store.increment("counter") == 2
    assert kv_store.increment("counter", 3) == 5
    assert kv_store.ttl("counter") == 25

    clock.advance(25)
    assert kv_store.increment("counter") == 1
    assert kv_store.ttl("counter") == -1


def test_in_memory_increment_rejects_non_integer(kv_store):
    kv_store.set("text", "hello")
    with pytest.raises(KeyValueStoreError):
        kv_store.increment("text")


def test_in_memory_delete_counts_only_live_keys(kv_store, clock):
    kv_store.set("x", "1", ttl_seconds=1)
    kv_store.set("y", "1")
    clock.advance(2)

    assert kv_store.delete("x", "y", "z") == 1
    assert kv_store.expire("y", 10) is False


def test_json_helpers_round_trip_and_tolerate_garbage(kv_store):
    set_json(kv_store, "doc", {"code": "123456", "attempts": 0}, 60)
    assert get_json(kv_store, "doc") == {"code": "123456", "attempts": 0}

    kv_store.set("broken", "{not json")
    assert get_json(kv_store, "broken") is None
    assert get_json(kv_store, "missing") is None


def test_clear_empties_store():
    store = InMemoryKeyValueStore()
    store.set("k", "v")
    store.clear()
    assert store.get("k") is None


class _FailingRedis:
    def __getattr__(self, name):
        def _raise(*args, **kwargs):
            raise RedisConnectionError("connection refused")

        return _raise


class _DictRedis:
    def __init__(self):
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        if ex:
            self.expiry[key] = ex

    def incrby(self, key, amount):
        self.data[key] = str(int(self.data.get(key, "0")) + amount)
        return int(self.data[key])

    def ttl(self, key):
        if key not in self.data:
            return -2
        return self.expiry.get(key, -1)


def test_redis_store_delegates_to_client():
    client = _DictRedis()
    store = RedisKeyValueStore(client)

    store.set("otp:a@example.com", "payload", ttl_seconds=600)
    assert store.get("otp:a@example.com") == "payload"
    assert store.ttl("otp:a@example.com") == 600
    assert store.increment("n") == 1
    assert store.increment("n", 2) == 3
    assert store.delete() == 0


def test_redis_store_wraps_client_errors():
    store = RedisKeyValueStore(_FailingRedis())

    with pytest.raises(KeyValueStoreError) as exc_info:
        store.get("anything")
    assert exc_info.value.status_code == 500
    assert isinstance(exc_info.value.__cause__, RedisConnectionError)

    with pytest.raises(KeyValueStoreError):
        store.increment("counter")
