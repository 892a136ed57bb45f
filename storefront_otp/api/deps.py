"""
API Dependencies

Reusable dependencies for API routes. Components are built once by the
application factory and kept on ``app.state``.
"""

from typing import Annotated, Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storefront_otp.core.exceptions import StorageError
from storefront_otp.services.email_gateway import EmailGateway
from storefront_otp.services.otp_service import OtpService
from storefront_otp.services.upload_service import UploadService


# Bearer scheme for Firebase ID tokens; a missing header is reported by the upload service
bearer_scheme = HTTPBearer(auto_error=False)


def get_otp_service(request: Request) -> OtpService:
    """Dependency that provides the OTP state machine."""
    return request.app.state.otp_service


def get_email_gateway(request: Request) -> EmailGateway:
    """Dependency that provides the email gateway."""
    return request.app.state.email_gateway


def get_upload_service(request: Request) -> UploadService:
    """
    Dependency that provides the upload URL signer.

    Raises:
        StorageError: If no storage bucket is configured.
    """
    service = request.app.state.upload_service
    if service is None:
        raise StorageError("File uploads are not configured", reason="uploads_unavailable")
    return service


OtpServiceDep = Annotated[OtpService, Depends(get_otp_service)]
EmailGatewayDep = Annotated[EmailGateway, Depends(get_email_gateway)]
UploadServiceDep = Annotated[UploadService, Depends(get_upload_service)]


async def get_firebase_claims(
    service: UploadServiceDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Dict[str, Any]:
    """
    Dependency that verifies the caller's Firebase ID token.

    Runs before the request body is validated, so an unauthenticated
    caller always gets a 401.
    """
    token = credentials.credentials if credentials else None
    return await service.authenticate(token)


FirebaseClaimsDep = Annotated[Dict[str, Any], Depends(get_firebase_claims)]
