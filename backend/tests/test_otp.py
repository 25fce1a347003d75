from __future__ import annotations

import pytest

from app.core.errors import InternalError, InvalidOtpError, OtpAttemptsExceededError, OtpExpiredError
from app.services.kv_store import InMemoryKeyValueStore
from app.services.otp import (
    OtpEngine,
    generate_code,
    otp_attempts_key,
    otp_cooldown_key,
    otp_key,
)


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def test_generate_code_is_six_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_issue_stores_record_and_sends_code(otp_engine, kv_store, mailer):
    result = otp_engine.issue("  A@Example.com ")

    assert result.success is True
    assert result.expires_in_seconds == 600
    record = otp_engine.peek("a@example.com")
    assert record is not None
    assert record.email == "a@example.com"
    assert record.attempts == 0
    assert kv_store.ttl(otp_key("a@example.com")) == 600
    assert kv_store.ttl(otp_attempts_key("a@example.com")) == 600

    to_email, template_id, variables = mailer.sent[-1]
    assert to_email == "a@example.com"
    assert template_id == "otp"
    assert variables["otp"] == record.code
    assert variables["expires_minutes"] == 10


def test_end_to_end_wrong_then_right(otp_engine, mailer):
    otp_engine.issue("a@x.com")
    assert otp_engine.peek("a@x.com").attempts == 0
    code = mailer.last_code("a@x.com")

    with pytest.raises(InvalidOtpError) as exc_info:
        otp_engine.verify("a@x.com", _wrong(code))
    assert exc_info.value.remaining_attempts == 4
    assert exc_info.value.message == "Invalid OTP. 4 attempts remaining"
    assert otp_engine.peek("a@x.com").attempts == 1

    result = otp_engine.verify("a@x.com", code)
    assert result.success is True
    assert result.email == "a@x.com"
    assert otp_engine.peek("a@x.com") is None


def test_code_is_single_use(otp_engine, mailer):
    otp_engine.issue("once@example.com")
    code = mailer.last_code("once@example.com")

    otp_engine.verify("once@example.com", code)
    with pytest.raises(OtpExpiredError):
        otp_engine.verify("once@example.com", code)


def test_candidate_is_trimmed(otp_engine, mailer):
    otp_engine.issue("trim@example.com")
    code = mailer.last_code("trim@example.com")

    assert otp_engine.verify("TRIM@example.com", f"  {code} ").success is True


def test_lockout_after_five_failures(otp_engine, mailer, kv_store):
    otp_engine.issue("lock@example.com")
    code = mailer.last_code("lock@example.com")

    remaining = []
    for _ in range(5):
        with pytest.raises(InvalidOtpError) as exc_info:
            otp_engine.verify("lock@example.com", _wrong(code))
        remaining.append(exc_info.value.remaining_attempts)
    assert remaining == [4, 3, 2, 1, 0]

    # Even the right code is refused once the cap is hit.
    with pytest.raises(OtpAttemptsExceededError) as exc_info:
        otp_engine.verify("lock@example.com", code)
    assert exc_info.value.details == {"remaining_attempts": 0}
    assert otp_engine.exists("lock@example.com") is False
    assert kv_store.exists(otp_attempts_key("lock@example.com")) is False

    # A fresh issue starts over.
    otp_engine.issue("lock@example.com")
    assert otp_engine.peek("lock@example.com").attempts == 0
    assert otp_engine.verify("lock@example.com", mailer.last_code("lock@example.com")).success is True


def test_verify_without_record_is_expired(otp_engine):
    with pytest.raises(OtpExpiredError) as exc_info:
        otp_engine.verify("nobody@example.com", "123456")
    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "OTP_EXPIRED"


def test_record_expires_after_ttl(otp_engine, mailer, clock):
    otp_engine.issue("late@example.com")
    code = mailer.last_code("late@example.com")

    clock.advance(601)
    with pytest.raises(OtpExpiredError):
        otp_engine.verify("late@example.com", code)


def test_failed_attempt_keeps_original_expiry(otp_engine, mailer, kv_store, clock):
    otp_engine.issue("ttl@example.com")
    code = mailer.last_code("ttl@example.com")
    clock.advance(500)

    with pytest.raises(InvalidOtpError):
        otp_engine.verify("ttl@example.com", _wrong(code))
    assert kv_store.ttl(otp_key("ttl@example.com")) == 100

    clock.advance(101)
    with pytest.raises(OtpExpiredError):
        otp_engine.verify("ttl@example.com", code)


def test_resend_overwrites_previous_code(otp_engine, mailer):
    otp_engine.issue("again@example.com")
    first = mailer.last_code("again@example.com")
    with pytest.raises(InvalidOtpError):
        otp_engine.verify("again@example.com", _wrong(first))

    otp_engine.issue("again@example.com")
    second = mailer.last_code("again@example.com")
    assert otp_engine.peek("again@example.com").attempts == 0
    assert otp_engine.verify("again@example.com", second).success is True


def test_send_failure_removes_state(kv_store, mailer):
    mailer.fail_with = RuntimeError("provider down")
    engine = OtpEngine(kv_store, send_email=mailer)

    with pytest.raises(InternalError) as exc_info:
        engine.issue("fail@example.com")
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert engine.exists("fail@example.com") is False
    assert kv_store.exists(otp_attempts_key("fail@example.com")) is False


def test_success_clears_cooldown(otp_engine, mailer, kv_store):
    otp_engine.issue("cool@example.com")
    kv_store.set(otp_cooldown_key("cool@example.com"), "1", 60)

    otp_engine.verify("cool@example.com", mailer.last_code("cool@example.com"))
    assert kv_store.exists(otp_cooldown_key("cool@example.com")) is False


def test_delete_removes_record(otp_engine):
    otp_engine.issue("gone@example.com")
    assert otp_engine.exists("gone@example.com") is True

    otp_engine.delete("gone@example.com")
    assert otp_engine.exists("gone@example.com") is False
    assert otp_engine.peek("gone@example.com") is None


class _RoundingTtlStore(InMemoryKeyValueStore):
    """Reports TTLs rounded to whole seconds, the way Redis TTL does."""

    def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return -2
            if entry[1] is None:
                return -1
            return int(round(entry[1] - self._clock()))


def test_failed_attempt_in_last_second_does_not_extend_code(mailer, clock):
    store = _RoundingTtlStore(clock=clock)
    engine = OtpEngine(store, send_email=mailer, expiry_seconds=600, max_attempts=5)
    engine.issue("edge@example.com")
    code = mailer.last_code("edge@example.com")

    clock.advance(599.7)
    with pytest.raises(OtpExpiredError):
        engine.verify("edge@example.com", _wrong(code))
    assert engine.exists("edge@example.com") is False
    assert store.exists(otp_attempts_key("edge@example.com")) is False

    clock.advance(500)
    with pytest.raises(OtpExpiredError):
        engine.verify("edge@example.com", code)
