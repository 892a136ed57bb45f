"""
Upload Service Unit Tests

The storage bucket and the Firebase token check are replaced by mocks.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from firebase_admin import auth
from google.auth.exceptions import TransportError

from conftest import START_TIME, make_settings
from storefront_otp.core.exceptions import AuthenticationError, StorageError, ValidationError
from storefront_otp.services.upload_service import UploadService, clean_upload_path, public_url


SIGNED_URL = "https://storage.googleapis.com/tradyng-media/products/hat.jpg?X-Goog-Signature=abc"


def make_bucket(name="tradyng-media"):
    bucket = MagicMock()
    bucket.name = name
    bucket.blob.return_value.generate_signed_url.return_value = SIGNED_URL
    return bucket


def accept_token(token):
    return {"uid": "owner-1", "token": token}


def reject_token(token):
    raise auth.InvalidIdTokenError("Token expired")


@pytest.fixture
def bucket():
    return make_bucket()


@pytest.fixture
def upload_service(bucket, clock):
    return UploadService(bucket, accept_token, make_settings(), clock=clock)


class TestCleanUploadPath:
    """Tests for object path cleanup."""

    def test_strips_leading_slashes(self):
        assert clean_upload_path("///stores/ada/logo.png") == "stores/ada/logo.png"

    def test_removes_dot_runs(self):
        assert clean_upload_path("stores/../../etc/passwd") == "stores///etc/passwd"
        assert clean_upload_path("stores/ada/...hidden.png") == "stores/ada/hidden.png"

    def test_single_dots_kept(self):
        assert clean_upload_path("stores/ada/logo.v2.png") == "stores/ada/logo.v2.png"


class TestPublicUrl:
    def test_encodes_like_encode_uri(self):
        url = public_url("tradyng-media", "stores/ada/blue dress (1).png")

        assert url == "https://storage.googleapis.com/tradyng-media/stores/ada/blue%20dress%20(1).png"


class TestAuthenticate:
    """Tests for UploadService.authenticate."""

    @pytest.mark.asyncio
    async def test_missing_token(self, upload_service):
        with pytest.raises(AuthenticationError) as exc_info:
            await upload_service.authenticate(None)

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Missing Authorization Bearer token"

    @pytest.mark.asyncio
    async def test_rejected_token(self, bucket, clock):
        service = UploadService(bucket, reject_token, make_settings(), clock=clock)

        with pytest.raises(AuthenticationError) as exc_info:
            await service.authenticate("stale-token")

        assert exc_info.value.message == "Unauthorized"
        assert exc_info.value.reason == "invalid_token"

    @pytest.mark.asyncio
    async def test_valid_token_returns_claims(self, upload_service):
        claims = await upload_service.authenticate("good-token")

        assert claims["uid"] == "owner-1"


class TestCreateUploadUrl:
    """Tests for UploadService.create_upload_url."""

    @pytest.mark.asyncio
    async def test_signs_write_url(self, upload_service, bucket):
        upload = await upload_service.create_upload_url("/products/hat.jpg", "image/jpeg")

        bucket.blob.assert_called_once_with("products/hat.jpg")
        bucket.blob.return_value.generate_signed_url.assert_called_once_with(
            version="v4",
            expiration=START_TIME + timedelta(minutes=15),
            method="PUT",
            content_type="image/jpeg",
        )
        assert upload.upload_url == SIGNED_URL
        assert upload.public_url == "https://storage.googleapis.com/tradyng-media/products/hat.jpg"
        assert upload.expires_at == START_TIME + timedelta(minutes=15)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path, content_type",
        [(None, "image/jpeg"), ("products/hat.jpg", None), ("/..", "image/jpeg"), ("", "")],
    )
    async def test_missing_fields(self, upload_service, bucket, path, content_type):
        with pytest.raises(ValidationError) as exc_info:
            await upload_service.create_upload_url(path, content_type)

        assert exc_info.value.message == "Missing required fields: path, contentType"
        bucket.blob.assert_not_called()

    @pytest.mark.asyncio
    async def test_signing_failure(self, upload_service, bucket):
        bucket.blob.return_value.generate_signed_url.side_effect = TransportError("metadata server down")

        with pytest.raises(StorageError) as exc_info:
            await upload_service.create_upload_url("products/hat.jpg", "image/jpeg")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Failed to generate upload url"
