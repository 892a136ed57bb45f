"""
Identity Provider

Resolves an email address to a durable account id and sets a new
password for that account. The reset flow only ever talks to this
interface.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront_otp.core.exceptions import NotFoundError, StorageError
from storefront_otp.core.security import hash_password, verify_password
from storefront_otp.models.user import User


logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """Account lookup and credential update."""

    @abstractmethod
    async def find_subject_id(self, email: str) -> Optional[str]:
        """Return the account id for ``email``, or None if there is no account."""

    @abstractmethod
    async def set_credential(self, subject_id: str, new_credential: str) -> None:
        """
        Replace the account's password.

        Raises:
            NotFoundError: If the account no longer exists.
        """


class DatabaseIdentityProvider(IdentityProvider):
    """Accounts stored in the ``users`` table with bcrypt password hashes."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def find_subject_id(self, email: str) -> Optional[str]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(User.id).where(User.email == email.lower())
                )
                user_id = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to look up account for {email}: {e}")
            raise StorageError("Account storage is unavailable") from e
        return str(user_id) if user_id else None

    async def set_credential(self, subject_id: str, new_credential: str) -> None:
        try:
            user_id = uuid.UUID(subject_id)
        except ValueError:
            raise NotFoundError("Account not found", reason="no_account")

        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(password_hash=hash_password(new_credential))
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to set credential for account {subject_id}: {e}")
            raise StorageError("Account storage is unavailable") from e

        if result.rowcount == 0:
            raise NotFoundError("Account not found", reason="no_account")
        logger.info(f"Password updated for account {subject_id}")


class InMemoryIdentityProvider(IdentityProvider):
    """Process-local accounts for development and tests."""

    def __init__(self) -> None:
        self._subjects: Dict[str, str] = {}
        self._credentials: Dict[str, str] = {}

    def add_account(self, email: str, password: str = "") -> str:
        """Register an account and return its subject id."""
        subject_id = str(uuid.uuid4())
        self._subjects[email.lower()] = subject_id
        self._credentials[subject_id] = hash_password(password) if password else ""
        return subject_id

    def check_credential(self, subject_id: str, password: str) -> bool:
        hashed = self._credentials.get(subject_id)
        return bool(hashed) and verify_password(password, hashed)

    async def find_subject_id(self, email: str) -> Optional[str]:
        return self._subjects.get(email.lower())

    async def set_credential(self, subject_id: str, new_credential: str) -> None:
        if subject_id not in self._credentials:
            raise NotFoundError("Account not found", reason="no_account")
        self._credentials[subject_id] = hash_password(new_credential)
