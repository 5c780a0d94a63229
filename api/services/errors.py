"""
Domain errors for the onboarding API.

Every error carries what the transport layer needs to render it without
per-endpoint special-casing: HTTP status, machine-readable kind, a plain
message for the driver, an optional reason, and whether the session cookie
must be cleared.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code: int = 500
    kind: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        clear_cookie: bool = False,
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.clear_cookie = clear_cookie
        self.meta: dict[str, Any] = dict(meta or {})
        if reason:
            self.meta.setdefault("reason", reason)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.kind,
        }
        if self.meta:
            payload["meta"] = self.meta
        return payload


class ValidationError(AppError):
    status_code = 400
    kind = "VALIDATION_ERROR"


class NotFound(AppError):
    status_code = 404
    kind = "NOT_FOUND"


class Conflict(AppError):
    status_code = 409
    kind = "CONFLICT"


class Gone(AppError):
    status_code = 410
    kind = "GONE"


class SessionRequired(AppError):
    status_code = 401
    kind = "SESSION_REQUIRED"

    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"
    TRACKER_MISMATCH = "TRACKER_MISMATCH"

    def __init__(self, message: str = "Session expired, resume required", *, reason: str, **kwargs):
        kwargs.setdefault("clear_cookie", True)
        super().__init__(message, reason=reason, **kwargs)


class RateLimited(AppError):
    status_code = 429
    kind = "RATE_LIMITED"

    def __init__(self, message: str, *, retry_after_seconds: int, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds
        self.meta["retryAfterSeconds"] = retry_after_seconds


class InvalidCode(AppError):
    status_code = 401
    kind = "INVALID_CODE"


class CodeExpired(AppError):
    status_code = 410
    kind = "CODE_EXPIRED"


class TooManyAttempts(AppError):
    status_code = 429
    kind = "TOO_MANY_ATTEMPTS"


class Unauthorized(AppError):
    status_code = 401
    kind = "UNAUTHORIZED"


class Internal(AppError):
    status_code = 500
    kind = "INTERNAL"


class MalformedCiphertext(ValueError):
    """Raised when an encrypted identifier is not ``iv:ciphertext`` hex."""
