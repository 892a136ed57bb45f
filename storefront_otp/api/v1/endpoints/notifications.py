"""
Notification Routes

Transactional notification emails sent through the email gateway.
"""

from fastapi import APIRouter, Depends

from storefront_otp.api.deps import EmailGatewayDep
from storefront_otp.middleware.rate_limit import enforce_client_rate_limit
from storefront_otp.schemas.notification import MessageNotificationRequest
from storefront_otp.schemas.otp import OkResponse
from storefront_otp.services import email_service


router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(enforce_client_rate_limit)],
)


@router.post(
    "/message",
    response_model=OkResponse,
    summary="Email a new-message notification",
)
async def send_message_notification(
    data: MessageNotificationRequest,
    gateway: EmailGatewayDep,
) -> OkResponse:
    """
    Notify a store owner or customer that a new message arrived.

    Raises:
        400 if a required field is missing.
        429 if the client is over its request budget.
        500 if no email provider could deliver the notification.
    """
    await email_service.send_message_notification(
        gateway,
        to_email=data.to,
        message=data.message,
        business_name=data.business_name,
        sender_name=data.sender_name,
        recipient_name=data.customer_name,
    )
    return OkResponse()
