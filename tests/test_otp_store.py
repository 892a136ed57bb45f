"""
OTP Record Store Unit Tests

The same behaviour is checked against the in-memory store and the
SQLAlchemy store (on in-memory SQLite).
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from conftest import START_TIME
from storefront_otp.core.exceptions import RecordConflictError
from storefront_otp.core.security import generate_salt, hash_code
from storefront_otp.models.enums import OTPPurpose
from storefront_otp.services.otp_store import InMemoryOtpStore, OtpRecord, SqlAlchemyOtpStore


SIGNUP = OTPPurpose.SIGNUP_VERIFICATION
RESET = OTPPurpose.PASSWORD_RESET
RECIPIENT = "ada@storefront.ng"


def make_record(purpose=SIGNUP, recipient=RECIPIENT, code="1234", ttl=600) -> OtpRecord:
    salt = generate_salt()
    return OtpRecord(
        purpose=purpose,
        recipient=recipient,
        code_hash=hash_code(code, salt),
        salt=salt,
        expires_at=START_TIME + timedelta(seconds=ttl),
        created_at=START_TIME,
    )


class StoreBehaviour:
    """Checks shared by every store backend. Subclasses provide ``store``."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        record = make_record()

        created = await store.create(record)
        loaded = await store.get(SIGNUP, RECIPIENT)

        assert created.version == 1
        assert loaded == created
        assert loaded.expires_at == record.expires_at

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get(SIGNUP, RECIPIENT) is None

    @pytest.mark.asyncio
    async def test_create_duplicate_conflicts(self, store):
        await store.create(make_record())

        with pytest.raises(RecordConflictError):
            await store.create(make_record())

    @pytest.mark.asyncio
    async def test_keys_are_scoped_by_purpose(self, store):
        await store.create(make_record(purpose=SIGNUP))
        await store.create(make_record(purpose=RESET))

        assert (await store.get(RESET, RECIPIENT)).purpose is RESET

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, store):
        created = await store.create(make_record())

        updated = await store.update(created, attempts=1)
        loaded = await store.get(SIGNUP, RECIPIENT)

        assert updated.version == 2
        assert loaded.attempts == 1
        assert loaded.version == 2

    @pytest.mark.asyncio
    async def test_stale_update_conflicts(self, store):
        """Verify a write based on an old read never lands."""
        created = await store.create(make_record())
        await store.update(created, attempts=1)

        with pytest.raises(RecordConflictError):
            await store.update(created, attempts=1)

        assert (await store.get(SIGNUP, RECIPIENT)).attempts == 1

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, store):
        created = await store.create(make_record())

        with pytest.raises(ValueError):
            await store.update(created, code_hash="tampered")

    @pytest.mark.asyncio
    async def test_replace_overwrites_record(self, store):
        created = await store.create(make_record(code="1111"))
        await store.update(created, attempts=3)

        fresh = make_record(code="2222")
        replaced = await store.replace(fresh, expected_version=2)
        loaded = await store.get(SIGNUP, RECIPIENT)

        assert replaced.version == 3
        assert loaded.attempts == 0
        assert loaded.salt == fresh.salt

    @pytest.mark.asyncio
    async def test_replace_with_stale_version_conflicts(self, store):
        await store.create(make_record())

        with pytest.raises(RecordConflictError):
            await store.replace(make_record(), expected_version=5)

    @pytest.mark.asyncio
    async def test_delete(self, store):
        created = await store.create(make_record())

        assert await store.delete(SIGNUP, RECIPIENT, expected_version=created.version) is True
        assert await store.get(SIGNUP, RECIPIENT) is None
        assert await store.delete(SIGNUP, RECIPIENT) is False

    @pytest.mark.asyncio
    async def test_stale_delete_conflicts(self, store):
        created = await store.create(make_record())
        await store.update(created, attempts=1)

        with pytest.raises(RecordConflictError):
            await store.delete(SIGNUP, RECIPIENT, expected_version=created.version)

        assert await store.get(SIGNUP, RECIPIENT) is not None

    @pytest.mark.asyncio
    async def test_purge_expired(self, store):
        grace = timedelta(seconds=60)
        await store.create(make_record(recipient="live@storefront.ng", ttl=600))
        await store.create(make_record(recipient="stale@storefront.ng", ttl=30))
        in_grace = await store.create(make_record(purpose=RESET, recipient="reset@storefront.ng", ttl=30))
        await store.update(in_grace, verified_at=START_TIME + timedelta(seconds=20))

        removed = await store.purge_expired(START_TIME + timedelta(seconds=40), grace)

        assert removed == 1
        assert await store.get(SIGNUP, "stale@storefront.ng") is None
        assert await store.get(SIGNUP, "live@storefront.ng") is not None
        assert await store.get(RESET, "reset@storefront.ng") is not None


class TestInMemoryOtpStore(StoreBehaviour):
    """In-memory backend."""

    @pytest.fixture
    def store(self):
        return InMemoryOtpStore()

    @pytest.mark.asyncio
    async def test_records_are_copies(self, store):
        created = await store.create(make_record())
        created.attempts = 4

        assert (await store.get(SIGNUP, RECIPIENT)).attempts == 0


class TestSqlAlchemyOtpStore(StoreBehaviour):
    """SQLAlchemy backend on SQLite."""

    @pytest_asyncio.fixture
    async def store(self, session_maker):
        return SqlAlchemyOtpStore(session_maker)

    @pytest.mark.asyncio
    async def test_loaded_datetimes_are_utc(self, store):
        await store.create(make_record())

        loaded = await store.get(SIGNUP, RECIPIENT)

        assert loaded.expires_at.tzinfo is not None
        assert loaded.created_at == START_TIME
