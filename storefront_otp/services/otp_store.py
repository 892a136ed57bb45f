"""
OTP Record Store

Keyed storage for OTP records, one record per (purpose, recipient).

Every write is conditional on the record's ``version``: a write that finds
a different version than the caller read raises ``RecordConflictError``
instead of silently overwriting a concurrent change.
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import and_, delete, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront_otp.core.exceptions import RecordConflictError, StorageError
from storefront_otp.models.enums import OTPPurpose
from storefront_otp.models.otp_record import OTPRecordRow


logger = logging.getLogger(__name__)


@dataclass
class OtpRecord:
    """In-flight OTP state for one (purpose, recipient) key."""
    purpose: OTPPurpose
    recipient: str
    code_hash: str = field(repr=False)
    salt: str
    expires_at: datetime
    created_at: datetime
    attempts: int = 0
    verified_at: Optional[datetime] = None
    subject_id: Optional[str] = None
    version: int = 1

    @property
    def key(self) -> Tuple[OTPPurpose, str]:
        return (self.purpose, self.recipient)

    def is_expired(self, now: datetime) -> bool:
        """Check if the verification window has passed."""
        return now > self.expires_at


# Columns a partial update may touch
UPDATABLE_FIELDS = frozenset(
    {"attempts", "verified_at", "subject_id", "expires_at"}
)


class OtpRecordStore(ABC):
    """Interface shared by every record store backend."""

    @abstractmethod
    async def get(self, purpose: OTPPurpose, recipient: str) -> Optional[OtpRecord]:
        """Return the live record for the key, or None."""

    @abstractmethod
    async def create(self, record: OtpRecord) -> OtpRecord:
        """Insert a record. Conflicts if one already exists for the key."""

    @abstractmethod
    async def replace(self, record: OtpRecord, expected_version: int) -> OtpRecord:
        """Overwrite the stored record if it is still at ``expected_version``."""

    @abstractmethod
    async def update(self, record: OtpRecord, **changes: Any) -> OtpRecord:
        """Apply ``changes`` if the stored record is still at ``record.version``."""

    @abstractmethod
    async def delete(
        self,
        purpose: OTPPurpose,
        recipient: str,
        expected_version: Optional[int] = None,
    ) -> bool:
        """Delete the record; conditional on ``expected_version`` when given."""

    @abstractmethod
    async def purge_expired(self, now: datetime, grace: timedelta) -> int:
        """
        Delete every expired record that is not inside a live reset grace window.

        Returns:
            int: Number of records deleted.
        """


def _check_changes(changes: Dict[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")


def _is_purgeable(record: OtpRecord, now: datetime, grace: timedelta) -> bool:
    if not record.is_expired(now):
        return False
    return record.verified_at is None or record.verified_at < now - grace


# ============== In-Memory Backend ==============

class InMemoryOtpStore(OtpRecordStore):
    """
    Process-local store for development and tests.

    Records are copied in and out so callers never hold a live reference.
    """

    def __init__(self) -> None:
        self._records: Dict[Tuple[OTPPurpose, str], OtpRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, purpose: OTPPurpose, recipient: str) -> Optional[OtpRecord]:
        async with self._lock:
            record = self._records.get((purpose, recipient))
            return dataclasses.replace(record) if record else None

    async def create(self, record: OtpRecord) -> OtpRecord:
        async with self._lock:
            if record.key in self._records:
                raise RecordConflictError(
                    f"Record already exists for {record.purpose.value}:{record.recipient}"
                )
            stored = dataclasses.replace(record, version=1)
            self._records[record.key] = stored
            return dataclasses.replace(stored)

    async def replace(self, record: OtpRecord, expected_version: int) -> OtpRecord:
        async with self._lock:
            self._check_version(record.purpose, record.recipient, expected_version)
            stored = dataclasses.replace(record, version=expected_version + 1)
            self._records[record.key] = stored
            return dataclasses.replace(stored)

    async def update(self, record: OtpRecord, **changes: Any) -> OtpRecord:
        _check_changes(changes)
        async with self._lock:
            current = self._check_version(record.purpose, record.recipient, record.version)
            stored = dataclasses.replace(current, version=current.version + 1, **changes)
            self._records[record.key] = stored
            return dataclasses.replace(stored)

    async def delete(
        self,
        purpose: OTPPurpose,
        recipient: str,
        expected_version: Optional[int] = None,
    ) -> bool:
        async with self._lock:
            current = self._records.get((purpose, recipient))
            if current is None:
                if expected_version is not None:
                    raise RecordConflictError(
                        f"Record for {purpose.value}:{recipient} is gone"
                    )
                return False
            if expected_version is not None and current.version != expected_version:
                raise RecordConflictError(
                    f"Record for {purpose.value}:{recipient} changed concurrently"
                )
            del self._records[(purpose, recipient)]
            return True

    async def purge_expired(self, now: datetime, grace: timedelta) -> int:
        async with self._lock:
            stale = [
                key for key, record in self._records.items()
                if _is_purgeable(record, now, grace)
            ]
            for key in stale:
                del self._records[key]
            return len(stale)

    def _check_version(
        self, purpose: OTPPurpose, recipient: str, expected_version: int
    ) -> OtpRecord:
        current = self._records.get((purpose, recipient))
        if current is None or current.version != expected_version:
            raise RecordConflictError(
                f"Record for {purpose.value}:{recipient} changed concurrently"
            )
        return current


# ============== SQLAlchemy Backend ==============

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Some drivers (SQLite) hand back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: OTPRecordRow) -> OtpRecord:
    return OtpRecord(
        purpose=OTPPurpose(row.purpose),
        recipient=row.recipient,
        code_hash=row.code_hash,
        salt=row.salt,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
        attempts=row.attempts,
        verified_at=_as_utc(row.verified_at),
        subject_id=row.subject_id,
        version=row.version,
    )


def _key_clause(purpose: OTPPurpose, recipient: str):
    return and_(OTPRecordRow.purpose == purpose, OTPRecordRow.recipient == recipient)


class SqlAlchemyOtpStore(OtpRecordStore):
    """
    Record store backed by the ``otp_records`` table.

    Each call runs in its own short transaction. Conditional writes are
    ``UPDATE``/``DELETE`` statements filtered on ``version``; zero affected
    rows means another request got there first.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, purpose: OTPPurpose, recipient: str) -> Optional[OtpRecord]:
        try:
            async with self._session_maker() as session:
                row = await session.get(OTPRecordRow, (purpose, recipient))
                return _to_record(row) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load OTP record {purpose.value}:{recipient}: {e}")
            raise StorageError("OTP storage is unavailable") from e

    async def create(self, record: OtpRecord) -> OtpRecord:
        row = OTPRecordRow(
            purpose=record.purpose,
            recipient=record.recipient,
            code_hash=record.code_hash,
            salt=record.salt,
            attempts=record.attempts,
            expires_at=record.expires_at,
            created_at=record.created_at,
            verified_at=record.verified_at,
            subject_id=record.subject_id,
            version=1,
        )
        try:
            async with self._session_maker() as session:
                session.add(row)
                await session.commit()
        except IntegrityError as e:
            raise RecordConflictError(
                f"Record already exists for {record.purpose.value}:{record.recipient}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to create OTP record {record.purpose.value}:{record.recipient}: {e}")
            raise StorageError("OTP storage is unavailable") from e
        return dataclasses.replace(record, version=1)

    async def replace(self, record: OtpRecord, expected_version: int) -> OtpRecord:
        values = {
            "code_hash": record.code_hash,
            "salt": record.salt,
            "attempts": record.attempts,
            "expires_at": record.expires_at,
            "created_at": record.created_at,
            "verified_at": record.verified_at,
            "subject_id": record.subject_id,
        }
        await self._conditional_update(record.purpose, record.recipient, expected_version, values)
        return dataclasses.replace(record, version=expected_version + 1)

    async def update(self, record: OtpRecord, **changes: Any) -> OtpRecord:
        _check_changes(changes)
        await self._conditional_update(record.purpose, record.recipient, record.version, changes)
        return dataclasses.replace(record, version=record.version + 1, **changes)

    async def delete(
        self,
        purpose: OTPPurpose,
        recipient: str,
        expected_version: Optional[int] = None,
    ) -> bool:
        stmt = delete(OTPRecordRow).where(_key_clause(purpose, recipient))
        if expected_version is not None:
            stmt = stmt.where(OTPRecordRow.version == expected_version)
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete OTP record {purpose.value}:{recipient}: {e}")
            raise StorageError("OTP storage is unavailable") from e

        if result.rowcount == 0 and expected_version is not None:
            raise RecordConflictError(
                f"Record for {purpose.value}:{recipient} changed concurrently"
            )
        return result.rowcount > 0

    async def purge_expired(self, now: datetime, grace: timedelta) -> int:
        stmt = delete(OTPRecordRow).where(
            OTPRecordRow.expires_at < now,
            or_(
                OTPRecordRow.verified_at.is_(None),
                OTPRecordRow.verified_at < now - grace,
            ),
        )
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to purge expired OTP records: {e}")
            raise StorageError("OTP storage is unavailable") from e
        return result.rowcount or 0

    async def _conditional_update(
        self,
        purpose: OTPPurpose,
        recipient: str,
        expected_version: int,
        values: Dict[str, Any],
    ) -> None:
        stmt = (
            update(OTPRecordRow)
            .where(_key_clause(purpose, recipient))
            .where(OTPRecordRow.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update OTP record {purpose.value}:{recipient}: {e}")
            raise StorageError("OTP storage is unavailable") from e

        if result.rowcount != 1:
            raise RecordConflictError(
                f"Record for {purpose.value}:{recipient} changed concurrently"
            )
