"""
Upload Service

Short-lived signed URLs that let a signed-in storefront user PUT a file
straight into the project's Cloud Storage bucket.
"""

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from firebase_admin import auth, storage
from firebase_admin.exceptions import FirebaseError
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud.storage import Bucket

from storefront_otp.core.config import Settings
from storefront_otp.core.exceptions import AuthenticationError, StorageError, ValidationError
from storefront_otp.core.firebase import init_firebase


logger = logging.getLogger(__name__)

TokenVerifier = Callable[[str], Dict[str, Any]]

PUBLIC_URL_BASE = "https://storage.googleapis.com"
# Characters a URI may carry unescaped besides letters, digits and "-_.~"
URI_SAFE = "/;,?:@&=+$#!*'()"

_LEADING_SLASHES = re.compile(r"^/+")
_DOT_RUNS = re.compile(r"\.\.+")


def clean_upload_path(path: str) -> str:
    """
    Make a client supplied object path safe to sign.

    Leading slashes are stripped and every run of two or more dots is
    removed, so the path can neither be absolute nor climb directories.
    """
    return _DOT_RUNS.sub("", _LEADING_SLASHES.sub("", path))


def public_url(bucket_name: str, path: str) -> str:
    return f"{PUBLIC_URL_BASE}/{bucket_name}/{quote(path, safe=URI_SAFE)}"


@dataclass
class UploadUrl:
    upload_url: str
    public_url: str
    expires_at: datetime


class UploadService:
    """Checks Firebase ID tokens and signs v4 write URLs for one bucket."""

    def __init__(
        self,
        bucket: Bucket,
        verify_token: TokenVerifier,
        settings: Settings,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._bucket = bucket
        self._verify_token = verify_token
        self._settings = settings
        self._clock = clock

    @property
    def bucket_name(self) -> str:
        return self._bucket.name

    async def authenticate(self, id_token: Optional[str]) -> Dict[str, Any]:
        """
        Verify a Firebase ID token.

        Returns:
            dict: The token's decoded claims.

        Raises:
            AuthenticationError: The token is missing or was rejected.
        """
        if not id_token:
            raise AuthenticationError("Missing Authorization Bearer token", reason="missing_token")
        try:
            return await asyncio.to_thread(self._verify_token, id_token)
        except (FirebaseError, ValueError) as e:
            logger.warning(f"Rejected ID token for upload: {e}")
            raise AuthenticationError("Unauthorized", reason="invalid_token") from e

    async def create_upload_url(
        self,
        path: Optional[str],
        content_type: Optional[str],
        uid: Optional[str] = None,
    ) -> UploadUrl:
        """
        Sign a URL that accepts one PUT of ``content_type`` at ``path``.

        Raises:
            ValidationError: ``path`` or ``content_type`` is missing.
            StorageError: The URL could not be signed.
        """
        clean_path = clean_upload_path(path or "")
        if not clean_path or not content_type:
            raise ValidationError(
                "Missing required fields: path, contentType", reason="missing_fields"
            )

        expires_at = self._clock() + timedelta(seconds=self._settings.UPLOAD_URL_TTL_SECONDS)
        blob = self._bucket.blob(clean_path)
        sign = functools.partial(
            blob.generate_signed_url,
            version="v4",
            expiration=expires_at,
            method="PUT",
            content_type=content_type,
        )
        try:
            upload_url = await asyncio.to_thread(sign)
        # Credentials without a private key raise AttributeError when signing
        except (GoogleAPIError, GoogleAuthError, AttributeError, ValueError) as e:
            logger.error(f"Failed to sign upload URL for {clean_path}: {e}")
            raise StorageError("Failed to generate upload url", reason="upload_url_failed") from e

        logger.info(f"Signed upload URL for {self.bucket_name}/{clean_path} (uid={uid})")
        return UploadUrl(
            upload_url=upload_url,
            public_url=public_url(self.bucket_name, clean_path),
            expires_at=expires_at,
        )


def build_upload_service(settings: Settings) -> UploadService:
    """Upload service over the Firebase project's storage bucket."""
    firebase_app = init_firebase(settings)
    return UploadService(
        bucket=storage.bucket(app=firebase_app),
        verify_token=functools.partial(auth.verify_id_token, app=firebase_app),
        settings=settings,
    )
