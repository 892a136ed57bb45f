"""
Storefront OTP Backend - Schemas Module

Pydantic models for request/response validation.
"""

from storefront_otp.schemas.notification import MessageNotificationRequest
from storefront_otp.schemas.otp import (
    CompleteResetRequest,
    OkResponse,
    SendResetOTPRequest,
    SendSignupOTPRequest,
    VerifyOTPRequest,
)
from storefront_otp.schemas.upload import UploadUrlRequest, UploadUrlResponse

__all__ = [
    # OTP
    "OkResponse",
    "SendSignupOTPRequest",
    "SendResetOTPRequest",
    "VerifyOTPRequest",
    "CompleteResetRequest",
    # Notifications
    "MessageNotificationRequest",
    # Uploads
    "UploadUrlRequest",
    "UploadUrlResponse",
]
