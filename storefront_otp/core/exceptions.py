"""
Error Taxonomy

Every failure an OTP or upload operation can report. Each error carries
a short machine-readable ``reason`` and the HTTP status class the endpoint
layer maps it to.
"""

from typing import Optional

from fastapi import status


class OTPError(Exception):
    """Base class for every failure the service reports."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_reason: str = "otp_error"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message, "reason": self.reason}


class AuthenticationError(OTPError):
    """Missing or rejected bearer token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_reason = "unauthorized"


class ValidationError(OTPError):
    """Missing or malformed input. Never retried."""

    default_reason = "validation_error"


class NotFoundError(OTPError):
    """No active OTP, or no such account."""

    default_reason = "not_found"


class ExpiredError(OTPError):
    """Past its TTL or grace window. Forces re-issuance."""

    default_reason = "expired"


class RateLimitError(OTPError):
    """Issuance throttle or attempt ceiling hit."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_reason = "rate_limited"

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message, reason)
        self.retry_after = retry_after


class DeliveryError(OTPError):
    """Every email provider failed. Safe to retry issuance."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_reason = "delivery_failed"


class StorageError(OTPError):
    """Record store or identity store unavailable. Safe to retry."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_reason = "storage_unavailable"


class RecordConflictError(StorageError):
    """A compare-and-swap write lost against a concurrent writer."""

    default_reason = "record_conflict"
