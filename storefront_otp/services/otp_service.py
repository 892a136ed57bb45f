"""
OTP Service

Issuance, verification, and password reset completion for email one-time
codes.

Record lifecycle per (purpose, recipient):

    ABSENT -> ISSUED -> VERIFIED | EXPIRED | ATTEMPTS_EXHAUSTED | CONSUMED

Every terminal path deletes the record. Signup records are deleted as soon
as the code verifies. Reset records stay behind marked ``verified_at`` until
``complete_reset`` consumes them or their grace window lapses.

Each step reads the record and writes it back with a compare-and-swap on
``version``. If another request changed the record in between, the whole
step is re-run from a fresh read.
"""

import dataclasses
import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from storefront_otp.core.config import Settings
from storefront_otp.core.exceptions import (
    DeliveryError,
    ExpiredError,
    NotFoundError,
    RateLimitError,
    RecordConflictError,
    StorageError,
    ValidationError,
)
from storefront_otp.core.security import (
    MAX_PASSWORD_BYTES,
    code_matches,
    generate_code,
    generate_salt,
    hash_code,
)
from storefront_otp.models.enums import OTPPurpose
from storefront_otp.services import email_service
from storefront_otp.services.email_gateway import EmailGateway
from storefront_otp.services.email_service import EmailContext
from storefront_otp.services.identity import IdentityProvider
from storefront_otp.services.otp_store import OtpRecord, OtpRecordStore


logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_recipient(recipient: Optional[str]) -> str:
    """
    Normalize an email address into a record key.

    Raises:
        ValidationError: If the address is missing or malformed.
    """
    if not isinstance(recipient, str) or not recipient.strip():
        raise ValidationError("Email is required", reason="missing_email")
    value = recipient.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValidationError("Invalid email address", reason="invalid_email")
    return value


class OtpService:
    """
    OTP state machine over a record store, an email gateway and an
    identity provider.
    """

    def __init__(
        self,
        store: OtpRecordStore,
        gateway: EmailGateway,
        identity: IdentityProvider,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._gateway = gateway
        self._identity = identity
        self._settings = settings
        self._clock = clock

    def ttl_for(self, purpose: OTPPurpose) -> timedelta:
        """Verification window for a freshly issued code."""
        if purpose is OTPPurpose.PASSWORD_RESET:
            return timedelta(seconds=self._settings.RESET_OTP_TTL_SECONDS)
        return timedelta(seconds=self._settings.SIGNUP_OTP_TTL_SECONDS)

    @property
    def reset_grace(self) -> timedelta:
        return timedelta(seconds=self._settings.RESET_GRACE_SECONDS)

    # ============== Issue ==============

    async def issue(
        self,
        purpose: OTPPurpose,
        recipient: str,
        context: Optional[EmailContext] = None,
    ) -> None:
        """
        Issue a fresh code for ``recipient`` and email it.

        A new code replaces any previous record for the same key.

        Raises:
            ValidationError: If the address is missing or malformed.
            NotFoundError: For password reset, if no account uses the address.
            RateLimitError: If a code was issued less than the cooldown ago.
            DeliveryError: If the email could not be delivered.
            StorageError: If the record store is unavailable.
        """
        recipient = normalize_recipient(recipient)
        context = context or EmailContext()
        if context.store_name is None:
            context = dataclasses.replace(context, store_name=self._settings.EMAIL_FROM_NAME)

        if purpose is OTPPurpose.PASSWORD_RESET:
            if await self._identity.find_subject_id(recipient) is None:
                raise NotFoundError("No account found for this email", reason="no_account")

        code = generate_code(self._settings.OTP_CODE_LENGTH)
        record = await self._with_retries(lambda: self._store_new_code(purpose, recipient, code))

        try:
            await self._deliver(purpose, recipient, code, context)
        except DeliveryError:
            if self._settings.OTP_ROLLBACK_ON_DELIVERY_FAILURE:
                await self._discard(record)
            raise

    async def _store_new_code(self, purpose: OTPPurpose, recipient: str, code: str) -> OtpRecord:
        now = self._clock()
        existing = await self._store.get(purpose, recipient)
        if existing is not None:
            self._check_throttle(existing, now)

        salt = generate_salt(self._settings.OTP_SALT_BYTES)
        record = OtpRecord(
            purpose=purpose,
            recipient=recipient,
            code_hash=hash_code(code, salt),
            salt=salt,
            expires_at=now + self.ttl_for(purpose),
            created_at=now,
        )
        if existing is None:
            stored = await self._store.create(record)
        else:
            stored = await self._store.replace(record, existing.version)

        logger.info(
            f"Issued {purpose.value} code for {recipient} "
            f"(salt={salt}, expires_at={stored.expires_at.isoformat()})"
        )
        return stored

    def _check_throttle(self, existing: OtpRecord, now: datetime) -> None:
        cooldown = timedelta(seconds=self._settings.OTP_RESEND_COOLDOWN_SECONDS)
        elapsed = now - existing.created_at
        if elapsed >= cooldown:
            return
        # An expired reset code never blocks a new one
        if existing.purpose is OTPPurpose.PASSWORD_RESET and now >= existing.expires_at:
            return

        remaining = max(1, math.ceil((cooldown - elapsed).total_seconds()))
        raise RateLimitError(
            f"Please wait {remaining} seconds before requesting a new code",
            reason="throttled",
            retry_after=remaining,
        )

    async def _deliver(
        self, purpose: OTPPurpose, recipient: str, code: str, context: EmailContext
    ) -> None:
        ttl_seconds = int(self.ttl_for(purpose).total_seconds())
        if purpose is OTPPurpose.PASSWORD_RESET:
            await email_service.send_password_reset_code(
                self._gateway, recipient, code, context, ttl_seconds
            )
        else:
            await email_service.send_signup_code(
                self._gateway, recipient, code, context, ttl_seconds
            )

    async def _discard(self, record: OtpRecord) -> None:
        """Remove a record nobody received a code for, unless it was already replaced."""
        try:
            await self._store.delete(record.purpose, record.recipient, expected_version=record.version)
            logger.info(f"Discarded undelivered {record.purpose.value} code for {record.recipient}")
        except RecordConflictError:
            logger.info(f"Undelivered {record.purpose.value} code for {record.recipient} already superseded")
        except StorageError as e:
            logger.error(f"Could not discard undelivered code for {record.recipient}: {e.message}")

    # ============== Verify ==============

    async def verify(self, purpose: OTPPurpose, recipient: str, submitted_code: str) -> None:
        """
        Check a submitted code.

        Signup records are deleted on success. Reset records are kept and
        marked verified so ``complete_reset`` can consume them.

        Raises:
            ValidationError: Missing input, or the code is wrong.
            NotFoundError: No code was requested (or no account, for reset).
            ExpiredError: The code is past its expiry.
            RateLimitError: The attempt ceiling was reached.
        """
        recipient = normalize_recipient(recipient)
        code = submitted_code.strip() if isinstance(submitted_code, str) else ""
        if not code:
            raise ValidationError("Verification code is required", reason="missing_code")

        await self._with_retries(lambda: self._check_code(purpose, recipient, code))

    async def _check_code(self, purpose: OTPPurpose, recipient: str, code: str) -> None:
        now = self._clock()
        record = await self._store.get(purpose, recipient)
        if record is None:
            raise NotFoundError(
                "No verification code was requested for this email", reason="no_code"
            )

        if record.is_expired(now):
            await self._store.delete(purpose, recipient, expected_version=record.version)
            raise ExpiredError(
                "Verification code has expired. Please request a new one.", reason="code_expired"
            )

        if record.attempts >= self._settings.OTP_MAX_ATTEMPTS:
            await self._store.delete(purpose, recipient, expected_version=record.version)
            raise RateLimitError(
                "Too many attempts. Please request a new code.", reason="too_many_attempts"
            )

        if not code_matches(code, record.salt, record.code_hash):
            updated = await self._store.update(record, attempts=record.attempts + 1)
            logger.info(
                f"Invalid {purpose.value} code for {recipient} "
                f"(attempt {updated.attempts}/{self._settings.OTP_MAX_ATTEMPTS})"
            )
            raise ValidationError("Invalid verification code", reason="invalid_code")

        if purpose is not OTPPurpose.PASSWORD_RESET:
            await self._store.delete(purpose, recipient, expected_version=record.version)
            logger.info(f"Verified {purpose.value} code for {recipient}")
            return

        subject_id = await self._identity.find_subject_id(recipient)
        if subject_id is None:
            await self._store.delete(purpose, recipient, expected_version=record.version)
            raise NotFoundError("No account found for this email", reason="no_account")

        await self._store.update(record, verified_at=now, subject_id=subject_id)
        logger.info(f"Verified password reset code for {recipient}, awaiting new password")

    # ============== Complete Reset ==============

    async def complete_reset(self, recipient: str, new_credential: str) -> None:
        """
        Set a new password after a verified reset code.

        Raises:
            ValidationError: Missing input, or the password is too short or too long.
            NotFoundError: No verified reset exists for the address.
            ExpiredError: The grace window after verification has lapsed.
        """
        recipient = normalize_recipient(recipient)
        if not isinstance(new_credential, str) or not new_credential:
            raise ValidationError("New password is required", reason="missing_credential")

        await self._with_retries(lambda: self._consume_reset(recipient, new_credential))

    async def _consume_reset(self, recipient: str, new_credential: str) -> None:
        purpose = OTPPurpose.PASSWORD_RESET
        now = self._clock()
        record = await self._store.get(purpose, recipient)
        if record is None or record.verified_at is None or record.subject_id is None:
            raise NotFoundError(
                "Password reset is not authorized. Please verify your code first.",
                reason="not_authorized",
            )

        if now - record.verified_at > self.reset_grace:
            await self._store.delete(purpose, recipient, expected_version=record.version)
            raise ExpiredError(
                "Password reset session expired. Please request a new code.",
                reason="session_expired",
            )

        min_length = self._settings.MIN_CREDENTIAL_LENGTH
        if len(new_credential) < min_length:
            raise ValidationError(
                f"Password must be at least {min_length} characters",
                reason="credential_too_short",
            )
        if len(new_credential.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
                reason="credential_too_long",
            )

        await self._identity.set_credential(record.subject_id, new_credential)
        try:
            await self._store.delete(purpose, recipient, expected_version=record.version)
        except RecordConflictError:
            # A new reset was issued meanwhile; it stays live
            logger.info(f"Reset record for {recipient} was superseded before cleanup")
        logger.info(f"Password reset completed for {recipient}")

    # ============== Maintenance ==============

    async def purge_expired(self) -> int:
        """Delete expired records that are not inside a live reset grace window."""
        removed = await self._store.purge_expired(self._clock(), self.reset_grace)
        if removed:
            logger.info(f"Purged {removed} expired OTP records")
        return removed

    # ============== Helpers ==============

    async def _with_retries(self, step: Callable[[], Awaitable[T]]) -> T:
        tries = max(1, self._settings.OTP_STORE_RETRIES)
        last_error: Optional[RecordConflictError] = None
        for attempt in range(1, tries + 1):
            try:
                return await step()
            except RecordConflictError as e:
                last_error = e
                logger.warning(f"Concurrent OTP update, retrying ({attempt}/{tries}): {e.message}")
        raise StorageError(
            "The code is being updated by another request. Please try again.",
            reason="record_conflict",
        ) from last_error
