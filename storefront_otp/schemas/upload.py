"""
Upload Schemas

Pydantic models for signed upload URL requests.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadUrlRequest(BaseModel):
    """
    Schema for requesting a signed upload URL.

    Both fields are checked by the upload service so a missing one gets
    the same error as an empty one.
    """

    model_config = ConfigDict(populate_by_name=True)

    path: Optional[str] = Field(None, max_length=1024, description="Object path inside the bucket")
    content_type: Optional[str] = Field(
        None, alias="contentType", max_length=255, description="MIME type the upload must carry"
    )


class UploadUrlResponse(BaseModel):
    """Schema for a signed upload URL."""

    model_config = ConfigDict(populate_by_name=True)

    upload_url: str = Field(..., alias="uploadUrl")
    public_url: str = Field(..., alias="publicUrl")
    expires_at: datetime = Field(..., alias="expiresAt")
