"""
OTP Schemas

Pydantic models for OTP request/response validation.
Field names follow the storefront client's camelCase JSON.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class OkResponse(BaseModel):
    """Schema for a successful OTP operation."""

    ok: bool = True


class SendSignupOTPRequest(BaseModel):
    """Schema for issuing a signup verification code."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr = Field(..., description="Customer's email address")
    display_name: Optional[str] = Field(
        None, alias="displayName", max_length=120, description="Name used in the email greeting"
    )
    store_name: Optional[str] = Field(
        None, alias="storeName", max_length=120, description="Storefront shown in the email"
    )


class SendResetOTPRequest(BaseModel):
    """Schema for issuing a password reset code."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr = Field(..., description="Account email address")
    store_name: Optional[str] = Field(
        None, alias="storeName", max_length=120, description="Storefront shown in the email"
    )


class VerifyOTPRequest(BaseModel):
    """Schema for verifying a signup or password reset code."""

    email: EmailStr = Field(..., description="Email address the code was sent to")
    code: str = Field(..., min_length=1, max_length=16, description="Code from the email")


class CompleteResetRequest(BaseModel):
    """Schema for setting a new password after a verified reset code."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr = Field(..., description="Account email address")
    new_credential: str = Field(
        ..., alias="newCredential", min_length=1, max_length=256, description="New password"
    )
