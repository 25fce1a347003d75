from __future__ import annotations

from app.core.errors import (
    AppError,
    ForbiddenError,
    InvalidOtpError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    TooManyRequestsError,
    UnauthorizedError,
)


def _assert_error_shape(res, *, error: str | None = None):
    data = res.json()
    assert isinstance(data, dict)
    assert isinstance(data.get("error"), str) and data["error"]
    assert isinstance(data.get("message"), str) and data["message"]
    if error is not None:
        assert data["error"] == error


def test_error_payloads():
    assert ForbiddenError("Upgrade required").to_payload() == {"error": "FORBIDDEN", "message": "Upgrade required"}
    assert AppError().to_payload() == {"error": "INTERNAL_ERROR", "message": "Internal server error"}

    invalid = InvalidOtpError(1)
    assert invalid.status_code == 400
    assert invalid.message == "Invalid OTP. 1 attempt remaining"

    exceeded = OtpAttemptsExceededError()
    assert isinstance(exceeded, UnauthorizedError)
    assert exceeded.status_code == 401
    assert exceeded.to_payload()["details"] == {"remaining_attempts": 0}

    assert OtpExpiredError().status_code == 400

    limited = TooManyRequestsError(retry_after_seconds=0)
    assert limited.retry_after_seconds == 1
    assert limited.details == {"retry_after_seconds": 1}


def test_error_shape_401_refresh_with_garbage(anon_client):
    res = anon_client.post("/auth/refresh", json={"refresh_token": "garbage"})
    assert res.status_code == 401
    _assert_error_shape(res, error="UNAUTHORIZED")
    assert res.json()["message"] == "Invalid or expired token"


def test_error_shape_404_unknown_route(anon_client):
    res = anon_client.get("/nope")
    assert res.status_code == 404
    _assert_error_shape(res, error="NOT_FOUND")


def test_error_shape_422_validation(anon_client):
    res = anon_client.post("/auth/login", json={"email": "not-an-email", "password": "x"})
    assert res.status_code == 422
    _assert_error_shape(res, error="VALIDATION_ERROR")
    assert isinstance(res.json()["details"]["errors"], list)


def test_error_shape_refresh_for_deleted_user(anon_client, token_service, make_user, db_session):
    user = make_user()
    pair = token_service.issue_for_user(user)
    db_session.delete(user)
    db_session.commit()

    res = anon_client.post("/auth/refresh", json={"refresh_token": pair.refresh_token})
    assert res.status_code == 404
    _assert_error_shape(res, error="NOT_FOUND")
