"""
Email Service

Builds the storefront's transactional emails (signup verification code,
password reset code, new message notification) and hands them to the
email gateway.
"""

import html
import logging
from dataclasses import dataclass
from typing import Optional

from storefront_otp.services.email_gateway import EmailGateway, EmailMessage


logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "there"
DEFAULT_STORE_NAME = "Tradyng"


@dataclass
class EmailContext:
    """Optional display data for an OTP email."""
    display_name: Optional[str] = None
    store_name: Optional[str] = None

    @property
    def greeting_name(self) -> str:
        return (self.display_name or "").strip() or DEFAULT_DISPLAY_NAME

    @property
    def brand(self) -> str:
        return (self.store_name or "").strip() or DEFAULT_STORE_NAME


def describe_duration(seconds: int) -> str:
    """Render a TTL for humans, e.g. ``10 minutes`` or ``1 minute``."""
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"


_STYLE = """
        <style>
            body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 0; padding: 0; background-color: #f5f5f5; }}
            .container {{ max-width: 600px; margin: 40px auto; background: white; border-radius: 12px; box-shadow: 0 4px 20px rgba(0,0,0,0.1); overflow: hidden; }}
            .header {{ background: linear-gradient(135deg, {start} 0%, {end} 100%); padding: 40px; text-align: center; }}
            .header h1 {{ color: white; margin: 0; font-size: 28px; }}
            .content {{ padding: 40px; }}
            .otp-box {{ background: #f3f4f6; border: 2px dashed #d1d5db; border-radius: 12px; padding: 30px; text-align: center; margin: 30px 0; }}
            .otp-code {{ font-size: 36px; font-weight: bold; letter-spacing: 8px; color: {end}; font-family: monospace; }}
            .message {{ background: #f9fafb; border-left: 4px solid {start}; padding: 16px 20px; margin: 20px 0; white-space: pre-wrap; }}
            .footer {{ background: #f9fafb; padding: 20px; text-align: center; color: #6b7280; font-size: 14px; }}
            .warning {{ background: #fef3c7; border-left: 4px solid #f59e0b; padding: 12px 16px; margin: 20px 0; border-radius: 4px; }}
            p {{ color: #374151; line-height: 1.6; }}
        </style>
"""


def _page(title: str, body: str, brand: str, start: str, end: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        {_STYLE.format(start=start, end=end)}
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h1>{title}</h1>
            </div>
            <div class="content">
                {body}
            </div>
            <div class="footer">
                <p>© {html.escape(brand)}. All rights reserved.</p>
            </div>
        </div>
    </body>
    </html>
    """


# ============== Signup Verification ==============

def get_signup_email_html(code: str, context: EmailContext, ttl_seconds: int) -> str:
    """Generate HTML content for the signup verification email."""
    brand = html.escape(context.brand)
    body = f"""
                <p>Hi {html.escape(context.greeting_name)},</p>
                <p>Welcome to {brand}! Please use the verification code below to confirm your email address:</p>

                <div class="otp-box">
                    <div class="otp-code">{code}</div>
                </div>

                <p>This code will expire in <strong>{describe_duration(ttl_seconds)}</strong>.</p>
                <p>Never share this code with anyone. If you didn't create an account with {brand}, you can safely ignore this email.</p>
    """
    return _page(brand, body, context.brand, "#3b82f6", "#1e40af")


def get_signup_email_text(code: str, context: EmailContext, ttl_seconds: int) -> str:
    """Generate plain text content for the signup verification email."""
    return f"""
Hi {context.greeting_name},

Welcome to {context.brand}! Please use the verification code below to confirm your email address:

Your verification code: {code}

This code will expire in {describe_duration(ttl_seconds)}.

If you didn't create an account with {context.brand}, you can safely ignore this email.
    """


async def send_signup_code(
    gateway: EmailGateway,
    to_email: str,
    code: str,
    context: EmailContext,
    ttl_seconds: int,
) -> str:
    """
    Send a signup verification code.

    Returns:
        str: Name of the provider that delivered the email.

    Raises:
        DeliveryError: If no provider could deliver it.
    """
    message = EmailMessage(
        to=to_email,
        subject=f"{code} is your {context.brand} verification code",
        html=get_signup_email_html(code, context, ttl_seconds),
        text=get_signup_email_text(code, context, ttl_seconds),
    )
    return await gateway.send(message)


# ============== Password Reset ==============

def get_password_reset_email_html(code: str, context: EmailContext, ttl_seconds: int) -> str:
    """Generate HTML content for the password reset email."""
    body = f"""
                <p>Hi {html.escape(context.greeting_name)},</p>
                <p>We received a request to reset your {html.escape(context.brand)} password. Use the code below to reset it:</p>

                <div class="otp-box">
                    <div class="otp-code">{code}</div>
                </div>

                <p>This code will expire in <strong>{describe_duration(ttl_seconds)}</strong>.</p>

                <div class="warning">
                    <strong>Didn't request this?</strong><br>
                    If you didn't request a password reset, please ignore this email. Your account is still secure.
                </div>
    """
    return _page("Password Reset", body, context.brand, "#8b5cf6", "#6d28d9")


def get_password_reset_email_text(code: str, context: EmailContext, ttl_seconds: int) -> str:
    """Generate plain text content for the password reset email."""
    return f"""
Hi {context.greeting_name},

We received a request to reset your {context.brand} password. Use the code below to reset it:

Your reset code: {code}

This code will expire in {describe_duration(ttl_seconds)}.

If you didn't request a password reset, please ignore this email. Your account is still secure.
    """


async def send_password_reset_code(
    gateway: EmailGateway,
    to_email: str,
    code: str,
    context: EmailContext,
    ttl_seconds: int,
) -> str:
    """Send a password reset code. Raises ``DeliveryError`` on failure."""
    message = EmailMessage(
        to=to_email,
        subject=f"Reset your {context.brand} password - {code}",
        html=get_password_reset_email_html(code, context, ttl_seconds),
        text=get_password_reset_email_text(code, context, ttl_seconds),
    )
    return await gateway.send(message)


# ============== Message Notification ==============

def get_message_notification_html(
    business_name: str, sender_name: str, message: str, recipient_name: str
) -> str:
    body = f"""
                <p>Hi {html.escape(recipient_name)},</p>
                <p>You have a new message from <strong>{html.escape(sender_name)}</strong>:</p>
                <div class="message">{html.escape(message)}</div>
                <p>Sign in to {html.escape(business_name)} to reply.</p>
    """
    return _page("New Message", body, business_name, "#10b981", "#047857")


def get_message_notification_text(
    business_name: str, sender_name: str, message: str, recipient_name: str
) -> str:
    return f"""
Hi {recipient_name},

You have a new message from {sender_name}:

{message}

Sign in to {business_name} to reply.
    """


async def send_message_notification(
    gateway: EmailGateway,
    to_email: str,
    message: str,
    business_name: Optional[str] = None,
    sender_name: Optional[str] = None,
    recipient_name: Optional[str] = None,
) -> str:
    """Notify a store owner or customer that a new message arrived."""
    business = (business_name or "").strip() or "Your Store"
    sender = (sender_name or "").strip() or "A customer"
    recipient = (recipient_name or "").strip() or DEFAULT_DISPLAY_NAME

    email = EmailMessage(
        to=to_email,
        subject=f"New message from {sender} - {business}",
        html=get_message_notification_html(business, sender, message, recipient),
        text=get_message_notification_text(business, sender, message, recipient),
    )
    provider = await gateway.send(email)
    logger.info(f"Message notification for {business} delivered to {to_email} via {provider}")
    return provider
