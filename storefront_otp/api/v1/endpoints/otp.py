"""
OTP Routes

Signup verification and password reset codes. Errors raised by the OTP
service are turned into JSON responses by the application's exception
handlers.
"""

from fastapi import APIRouter, Depends

from storefront_otp.api.deps import OtpServiceDep
from storefront_otp.middleware.rate_limit import enforce_client_rate_limit
from storefront_otp.models.enums import OTPPurpose
from storefront_otp.schemas.otp import (
    CompleteResetRequest,
    OkResponse,
    SendResetOTPRequest,
    SendSignupOTPRequest,
    VerifyOTPRequest,
)
from storefront_otp.services.email_service import EmailContext


router = APIRouter(
    prefix="/otp",
    tags=["OTP"],
    dependencies=[Depends(enforce_client_rate_limit)],
)


@router.post(
    "/signup/send",
    response_model=OkResponse,
    summary="Email a signup verification code",
)
async def send_signup_otp(data: SendSignupOTPRequest, service: OtpServiceDep) -> OkResponse:
    """
    Issue a signup verification code and email it.

    **Flow:**
    1. Reject if a code was sent to this address in the last minute
    2. Store a new hashed code (replacing any previous one)
    3. Email the code

    Raises:
        400 if the email is missing or invalid.
        429 if a code was requested too recently.
        500 if the email could not be delivered or storage failed.
    """
    context = EmailContext(display_name=data.display_name, store_name=data.store_name)
    await service.issue(OTPPurpose.SIGNUP_VERIFICATION, data.email, context)
    return OkResponse()


@router.post(
    "/signup/verify",
    response_model=OkResponse,
    summary="Verify a signup code",
)
async def verify_signup_otp(data: VerifyOTPRequest, service: OtpServiceDep) -> OkResponse:
    """
    Verify a signup code. The code is consumed on success.

    Raises:
        400 if missing, invalid, expired, or never requested.
        429 after too many wrong attempts.
    """
    await service.verify(OTPPurpose.SIGNUP_VERIFICATION, data.email, data.code)
    return OkResponse()


@router.post(
    "/reset/send",
    response_model=OkResponse,
    summary="Email a password reset code",
)
async def send_reset_otp(data: SendResetOTPRequest, service: OtpServiceDep) -> OkResponse:
    """
    Issue a password reset code for an existing account.

    Raises:
        400 if the email is missing or no account uses it.
        429 if a code was requested too recently.
        500 if the email could not be delivered or storage failed.
    """
    await service.issue(
        OTPPurpose.PASSWORD_RESET, data.email, EmailContext(store_name=data.store_name)
    )
    return OkResponse()


@router.post(
    "/reset/verify",
    response_model=OkResponse,
    summary="Verify a password reset code",
)
async def verify_reset_otp(data: VerifyOTPRequest, service: OtpServiceDep) -> OkResponse:
    """
    Verify a password reset code.

    On success the reset stays open for a short grace window during which
    ``/otp/reset/complete`` may set the new password once.
    """
    await service.verify(OTPPurpose.PASSWORD_RESET, data.email, data.code)
    return OkResponse()


@router.post(
    "/reset/complete",
    response_model=OkResponse,
    summary="Set a new password after a verified reset code",
)
async def complete_reset(data: CompleteResetRequest, service: OtpServiceDep) -> OkResponse:
    """
    Set the new password and close the reset.

    Raises:
        400 if missing, too short, not verified, or the session expired.
    """
    await service.complete_reset(data.email, data.new_credential)
    return OkResponse()
