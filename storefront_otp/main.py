"""
Storefront OTP Backend - FastAPI Application

Main entry point for the application.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront_otp import __version__
from storefront_otp.api.v1 import router as api_v1_router
from storefront_otp.core.config import Settings, get_settings
from storefront_otp.core.database import create_engine, create_session_maker, init_db
from storefront_otp.core.exceptions import OTPError, RateLimitError
from storefront_otp.core.http_client import close_http_client, get_http_client
from storefront_otp.middleware.rate_limit import RateLimiter
from storefront_otp.services.email_gateway import EmailGateway, build_email_gateway
from storefront_otp.services.identity import DatabaseIdentityProvider
from storefront_otp.services.otp_service import OtpService
from storefront_otp.services.otp_store import SqlAlchemyOtpStore
from storefront_otp.services.upload_service import UploadService, build_upload_service


logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds whatever components were not injected by ``create_app`` and
    releases them on shutdown.
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting Storefront OTP Backend ({settings.ENVIRONMENT})...")

    engine = None
    if app.state.email_gateway is None:
        client = get_http_client(settings.EMAIL_TIMEOUT_SECONDS)
        app.state.email_gateway = build_email_gateway(settings, client)

    if app.state.otp_service is None:
        engine = create_engine(settings)
        if settings.DATABASE_AUTO_CREATE:
            await init_db(engine)
        session_maker = create_session_maker(engine)
        app.state.otp_service = OtpService(
            store=SqlAlchemyOtpStore(session_maker),
            gateway=app.state.email_gateway,
            identity=DatabaseIdentityProvider(session_maker),
            settings=settings,
        )

    if app.state.upload_service is None:
        if settings.STORAGE_BUCKET:
            app.state.upload_service = build_upload_service(settings)
        else:
            logger.info("STORAGE_BUCKET is not set, signed upload URLs are disabled")

    yield

    logger.info("Shutting down Storefront OTP Backend...")
    await close_http_client()
    if engine is not None:
        await engine.dispose()


# ============== Exception Handlers ==============

async def otp_error_handler(request: Request, exc: OTPError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.reason}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        if field and first.get("type") == "missing":
            message = f"Missing required field: {field}"
        elif field:
            message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"ok": False, "error": message, "reason": "validation_error"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "error": "Internal server error", "reason": "internal_error"},
    )


# ============== Application Factory ==============

def create_app(
    settings: Optional[Settings] = None,
    *,
    otp_service: Optional[OtpService] = None,
    email_gateway: Optional[EmailGateway] = None,
    upload_service: Optional[UploadService] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Components passed in are used as-is; the rest are created from
    ``settings`` when the application starts.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Storefront OTP Backend",
        description="Email one-time codes for storefront signup and password reset.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.otp_service = otp_service
    app.state.email_gateway = email_gateway
    app.state.upload_service = upload_service
    app.state.client_limiter = RateLimiter(
        requests_per_minute=settings.CLIENT_RATE_PER_MINUTE,
        burst_capacity=settings.CLIENT_RATE_BURST,
        trusted_proxies=settings.CLIENT_TRUSTED_PROXIES,
    )

    # Storefronts live on arbitrary subdomains and custom domains
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_exception_handler(OTPError, otp_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Returns:
            dict: Health status and environment info.
        """
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
