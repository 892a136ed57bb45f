
import asyncio

from storefront_otp.core.config import get_settings
from storefront_otp.core.database import create_engine, create_session_maker
from storefront_otp.services.email_gateway import EmailGateway
from storefront_otp.services.identity import DatabaseIdentityProvider
from storefront_otp.services.otp_service import OtpService
from storefront_otp.services.otp_store import SqlAlchemyOtpStore


async def purge_expired_otps():
    settings = get_settings()
    engine = create_engine(settings)
    session_maker = create_session_maker(engine)

    # Purging never sends email, so the gateway has no providers
    service = OtpService(
        store=SqlAlchemyOtpStore(session_maker),
        gateway=EmailGateway([], settings),
        identity=DatabaseIdentityProvider(session_maker),
        settings=settings,
    )

    try:
        print(f"Purging expired OTP records ({settings.ENVIRONMENT})")
        removed = await service.purge_expired()
        print(f"✅ Removed {removed} expired records")
    finally:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(purge_expired_otps())
