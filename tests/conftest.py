"""
Pytest Configuration and Fixtures

Provides reusable fixtures for testing the Storefront OTP Backend.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront_otp.core.config import Settings
from storefront_otp.core.database import create_session_maker, init_db
from storefront_otp.core.exceptions import DeliveryError
from storefront_otp.services.email_gateway import EmailGateway, EmailMessage
from storefront_otp.services.identity import InMemoryIdentityProvider
from storefront_otp.services.otp_service import OtpService
from storefront_otp.services.otp_store import InMemoryOtpStore


START_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
ACCOUNT_EMAIL = "ada@storefront.ng"
ACCOUNT_PASSWORD = "old-secret"


# ==================== Settings Fixtures ====================

def make_settings(**overrides) -> Settings:
    """Settings that ignore the local environment file."""
    values = {
        "ENVIRONMENT": "test",
        "CLIENT_RATE_PER_MINUTE": 6000,
        "CLIENT_RATE_BURST": 1000,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


# ==================== Clock Fixtures ====================

class FakeClock:
    """Manually advanced clock for expiry and throttle tests."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ==================== Email Fixtures ====================

class RecordingGateway(EmailGateway):
    """
    Gateway that keeps every message instead of sending it.

    Set ``fail`` to make the next sends raise ``DeliveryError``.
    """

    def __init__(self, settings: Settings):
        super().__init__([], settings)
        self.sent: List[EmailMessage] = []
        self.fail = False

    async def send(self, message: EmailMessage) -> str:
        if self.fail:
            raise DeliveryError("Email delivery failed: mailersend: responded 503")
        self.sent.append(message)
        return "recording"

    def last_code(self) -> Optional[str]:
        """Pull the one-time code out of the most recent email."""
        if not self.sent:
            return None
        match = re.search(r"code: (\d+)", self.sent[-1].text or "")
        return match.group(1) if match else None


@pytest.fixture
def gateway(settings) -> RecordingGateway:
    return RecordingGateway(settings)


@pytest.fixture
def mock_transport_client():
    """
    Factory fixture for an httpx.AsyncClient served by a request handler.

    Usage:
        client = mock_transport_client(lambda request: httpx.Response(202))
    """
    def _create_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _create_client


# ==================== Service Fixtures ====================

@pytest.fixture
def store() -> InMemoryOtpStore:
    return InMemoryOtpStore()


@pytest.fixture
def identity() -> InMemoryIdentityProvider:
    provider = InMemoryIdentityProvider()
    provider.add_account(ACCOUNT_EMAIL, ACCOUNT_PASSWORD)
    return provider


@pytest.fixture
def make_service(store, gateway, identity, clock):
    """
    Factory fixture for an OtpService over the in-memory fixtures.

    Usage:
        service = make_service(RESET_OTP_TTL_SECONDS=30)
    """
    def _create_service(**overrides) -> OtpService:
        return OtpService(
            store=store,
            gateway=gateway,
            identity=identity,
            settings=make_settings(**overrides),
            clock=clock,
        )
    return _create_service


@pytest.fixture
def service(make_service) -> OtpService:
    return make_service()


# ==================== Database Fixtures ====================

@pytest_asyncio.fixture
async def session_maker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield create_session_maker(engine)
    await engine.dispose()
