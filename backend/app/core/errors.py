# app/core/errors.py
"""
Typed failures raised by the service layer.

Services never build HTTP responses. They raise one of these and the
exception handler in app.main turns it into the standard error envelope:

    {"error": <code>, "message": <message>, "details": {...}}

Messages and details must stay safe for clients: no password hashes, raw
tokens, OTP codes or provider error dumps.
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class TooManyRequestsError(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests"

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after_seconds: int = 1,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        merged = {"retry_after_seconds": self.retry_after_seconds}
        merged.update(details or {})
        super().__init__(message, details=merged)


class InternalError(AppError):
    pass


# -----------------------------
# OTP failures
# -----------------------------
class OtpExpiredError(NotFoundError):
    status_code = 400
    code = "OTP_EXPIRED"
    default_message = "OTP expired or not found. Please request a new one"


class InvalidOtpError(BadRequestError):
    code = "INVALID_OTP"

    def __init__(self, remaining_attempts: int) -> None:
        self.remaining_attempts = max(0, int(remaining_attempts))
        plural = "s" if self.remaining_attempts != 1 else ""
        super().__init__(
            f"Invalid OTP. {self.remaining_attempts} attempt{plural} remaining",
            details={"remaining_attempts": self.remaining_attempts},
        )


class OtpAttemptsExceededError(UnauthorizedError):
    code = "OTP_ATTEMPTS_EXCEEDED"
    default_message = "Maximum verification attempts exceeded. Please request a new OTP"

    def __init__(self, message: str | None = None) -> None:
        self.remaining_attempts = 0
        super().__init__(message, details={"remaining_attempts": 0})
