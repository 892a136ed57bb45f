"""
OTP Record Model

One row per (purpose, recipient). A new issuance overwrites the row.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront_otp.core.database import Base
from storefront_otp.models.enums import OTPPurpose


class OTPRecordRow(Base):
    """
    Stored OTP for email verification or password reset.

    Attributes:
        purpose: Record namespace (signup_verification, password_reset).
        recipient: Normalized email address.
        code_hash: HMAC-SHA256 of the code keyed by ``salt``. Never exposed.
        salt: Per-issuance hex salt.
        attempts: Failed verification attempts since issuance.
        expires_at: End of the verification window.
        created_at: Issuance time, used to throttle the next issuance.
        verified_at: Set when a reset code is verified.
        subject_id: Identity store user id captured at reset verification.
        version: Incremented on every write; compare-and-swap token.
    """

    __tablename__ = "otp_records"

    purpose: Mapped[OTPPurpose] = mapped_column(
        Enum(
            OTPPurpose,
            name="otp_purpose",
            create_constraint=True,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        primary_key=True,
    )
    recipient: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    code_hash: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    salt: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        index=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    subject_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<OTPRecordRow(purpose={self.purpose}, recipient={self.recipient}, "
            f"attempts={self.attempts}, version={self.version})>"
        )
