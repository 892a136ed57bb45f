"""
Storefront OTP Backend - Services Module

Business logic layer.
"""

from storefront_otp.services import email_gateway
from storefront_otp.services import email_service
from storefront_otp.services import identity
from storefront_otp.services import otp_service
from storefront_otp.services import otp_store
from storefront_otp.services import upload_service

__all__ = [
    "email_gateway",
    "email_service",
    "identity",
    "otp_service",
    "otp_store",
    "upload_service",
]
