"""
Notification Schemas

Pydantic models for transactional notification emails.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class MessageNotificationRequest(BaseModel):
    """Schema for a new-message notification email."""

    model_config = ConfigDict(populate_by_name=True)

    to: EmailStr = Field(..., description="Who to notify")
    message: str = Field(..., min_length=1, max_length=5000, description="Message body")
    business_name: Optional[str] = Field(None, alias="businessName", max_length=120)
    sender_name: Optional[str] = Field(None, alias="senderName", max_length=120)
    customer_name: Optional[str] = Field(None, alias="customerName", max_length=120)
