"""
API v1 Router

Aggregates all v1 endpoint routers.
"""

from fastapi import APIRouter

from storefront_otp.api.v1.endpoints import notifications, otp, uploads

router = APIRouter()

# Include OTP routes
router.include_router(otp.router)

# Include notification routes
router.include_router(notifications.router)

# Include upload routes
router.include_router(uploads.router)
