"""Domain errors raised by services and mapped to HTTP responses by the API layer."""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, code: str | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra = extra

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update(self.extra)
        return detail


class ValidationFailed(AppError):
    status_code = 422
    code = "VALIDATION_FAILED"


class AuthenticationFailed(AppError):
    status_code = 401
    code = "AUTHENTICATION_FAILED"


class PermissionDenied(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"


class SubscriptionRequired(AppError):
    status_code = 402
    code = "SUBSCRIPTION_REQUIRED"


class PaymentError(AppError):
    status_code = 502
    code = "PAYMENT_PROVIDER_ERROR"


class ConfigError(AppError):
    status_code = 500
    code = "CONFIG_ERROR"

    def __init__(self, message: str, issues: list[str] | None = None):
        super().__init__(message, issues=list(issues or []))
        self.issues = list(issues or [])

    def __str__(self) -> str:
        if not self.issues:
            return self.message
        return self.message + ":\n" + "\n".join(f"  - {issue}" for issue in self.issues)
