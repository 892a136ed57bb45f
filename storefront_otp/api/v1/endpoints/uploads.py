"""
Upload Routes

Signed URLs for storefront media uploads. The file itself goes straight
from the browser to Cloud Storage.
"""

from fastapi import APIRouter, Depends

from storefront_otp.api.deps import FirebaseClaimsDep, UploadServiceDep
from storefront_otp.middleware.rate_limit import enforce_client_rate_limit
from storefront_otp.schemas.upload import UploadUrlRequest, UploadUrlResponse


router = APIRouter(
    prefix="/uploads",
    tags=["Uploads"],
    dependencies=[Depends(enforce_client_rate_limit)],
)


@router.post(
    "/url",
    response_model=UploadUrlResponse,
    summary="Get a signed upload URL",
)
async def create_upload_url(
    data: UploadUrlRequest,
    service: UploadServiceDep,
    claims: FirebaseClaimsDep,
) -> UploadUrlResponse:
    """
    Sign a URL the caller can PUT one file to.

    Flow:
    1. Verify the Firebase ID token from the Authorization header
    2. Clean the requested object path
    3. Sign a v4 write URL bound to the content type

    Raises:
        401 if the bearer token is missing or invalid.
        400 if path or contentType is missing.
        500 if the URL could not be signed.
    """
    upload = await service.create_upload_url(data.path, data.content_type, uid=claims.get("uid"))
    return UploadUrlResponse(
        upload_url=upload.upload_url,
        public_url=upload.public_url,
        expires_at=upload.expires_at,
    )
