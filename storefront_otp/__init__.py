"""
Storefront OTP Backend

Email one-time passwords for storefront signup and password reset.
"""

__version__ = "0.1.0"
