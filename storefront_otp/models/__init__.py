"""
Storefront OTP Backend - Models Module

This module exports all SQLAlchemy models for the application.
Import Base for Alembic migrations.
"""

from storefront_otp.core.database import Base

# Enums
from storefront_otp.models.enums import OTPPurpose

# Models
from storefront_otp.models.otp_record import OTPRecordRow
from storefront_otp.models.user import User

__all__ = [
    # Base
    "Base",
    # Enums
    "OTPPurpose",
    # Models
    "OTPRecordRow",
    "User",
]
