"""
Database Enums

Python Enums stored as string columns.
"""

import enum


class OTPPurpose(str, enum.Enum):
    """OTP purpose enumeration. Each purpose is an independent record namespace."""
    SIGNUP_VERIFICATION = "signup_verification"
    PASSWORD_RESET = "password_reset"
