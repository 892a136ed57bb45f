"""
Storefront OTP Backend - Core Module

This module contains configuration, database setup, errors, and security utilities.
"""

from storefront_otp.core.config import Settings, get_settings
from storefront_otp.core.database import Base, create_engine, create_session_maker

__all__ = ["Settings", "get_settings", "Base", "create_engine", "create_session_maker"]
