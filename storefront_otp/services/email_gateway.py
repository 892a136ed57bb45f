"""
Email Delivery Gateway

Sends transactional email through an ordered list of HTTP email providers.
The first provider that accepts the message wins; when every provider fails
the errors are combined into one ``DeliveryError``.

Outside production, a message no provider could deliver is logged instead
of sent so local signups keep working without provider credentials.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from storefront_otp.core.config import Settings
from storefront_otp.core.exceptions import DeliveryError


logger = logging.getLogger(__name__)

LOG_ONLY = "log-only"


@dataclass
class EmailMessage:
    """A single outbound email."""
    to: str
    subject: str
    html: str
    text: Optional[str] = None


class EmailProvider(ABC):
    """One outbound email API."""

    name: str = "provider"

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self._client = client
        self._settings = settings

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials for this provider are present."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """
        Deliver ``message``.

        Raises:
            DeliveryError: If the provider did not accept the message.
        """

    async def _post(
        self, url: str, payload: Dict[str, Any], headers: Dict[str, str]
    ) -> httpx.Response:
        try:
            return await self._client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise DeliveryError(f"{self.name} timed out calling {url}") from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"{self.name} request to {url} failed: {e}") from e

    def _rejected(self, response: httpx.Response) -> DeliveryError:
        return DeliveryError(
            f"{self.name} responded {response.status_code}: {response.text[:200]}"
        )


class MailerSendProvider(EmailProvider):
    """
    MailerSend email API.

    The configured endpoint is tried first; if it answers 404 the request
    is repeated once against the fallback endpoint.
    """

    name = "mailersend"

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.MAILERSEND_API_TOKEN)

    @property
    def endpoints(self) -> List[str]:
        urls = [self._settings.MAILERSEND_API_URL]
        fallback = self._settings.MAILERSEND_FALLBACK_URL
        if fallback and fallback not in urls:
            urls.append(fallback)
        return urls

    def _payload(self, message: EmailMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "from": {
                "email": self._settings.EMAIL_FROM_ADDRESS,
                "name": self._settings.EMAIL_FROM_NAME,
            },
            "to": [{"email": message.to}],
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            payload["text"] = message.text
        return payload

    async def send(self, message: EmailMessage) -> None:
        headers = {
            "Authorization": f"Bearer {self._settings.MAILERSEND_API_TOKEN}",
            "Content-Type": "application/json",
        }
        payload = self._payload(message)
        endpoints = self.endpoints

        for index, url in enumerate(endpoints):
            response = await self._post(url, payload, headers)
            if response.is_success:
                return
            if response.status_code == 404 and index + 1 < len(endpoints):
                logger.warning(f"MailerSend endpoint {url} returned 404, trying {endpoints[index + 1]}")
                continue
            raise self._rejected(response)


class SendGridProvider(EmailProvider):
    """SendGrid v3 mail/send API."""

    name = "sendgrid"

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.SENDGRID_API_KEY)

    def _payload(self, message: EmailMessage) -> Dict[str, Any]:
        # SendGrid requires text/plain to precede text/html
        content = []
        if message.text:
            content.append({"type": "text/plain", "value": message.text})
        content.append({"type": "text/html", "value": message.html})
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {
                "email": self._settings.EMAIL_FROM_ADDRESS,
                "name": self._settings.EMAIL_FROM_NAME,
            },
            "subject": message.subject,
            "content": content,
        }

    async def send(self, message: EmailMessage) -> None:
        headers = {
            "Authorization": f"Bearer {self._settings.SENDGRID_API_KEY}",
            "Content-Type": "application/json",
        }
        response = await self._post(self._settings.SENDGRID_API_URL, self._payload(message), headers)
        if not response.is_success:
            raise self._rejected(response)


class EmailGateway:
    """Ordered provider fallback with an opt-in log-only stub outside production."""

    def __init__(self, providers: Sequence[EmailProvider], settings: Settings):
        self._providers = list(providers)
        self._settings = settings

    @property
    def providers(self) -> List[EmailProvider]:
        return list(self._providers)

    @property
    def log_only(self) -> bool:
        """Whether undeliverable mail is logged instead of failing."""
        return self._settings.EMAIL_LOG_ONLY and not self._settings.is_production

    async def send(self, message: EmailMessage) -> str:
        """
        Deliver ``message`` through the first provider that accepts it.

        Returns:
            str: Name of the provider that delivered it, or ``"log-only"``.

        Raises:
            DeliveryError: When every provider failed, unless log-only
                delivery is switched on outside production.
        """
        errors: List[str] = []
        for provider in self._providers:
            try:
                await provider.send(message)
            except DeliveryError as e:
                logger.warning(f"{provider.name} failed to deliver to {message.to}: {e.message}")
                errors.append(f"{provider.name}: {e.message}")
                continue
            logger.info(f"Email '{message.subject}' sent to {message.to} via {provider.name}")
            return provider.name

        if self.log_only:
            logger.info(
                f"[LOG ONLY] Email not sent, logging instead. To: {message.to} "
                f"Subject: {message.subject}\n{message.text or message.html}"
            )
            return LOG_ONLY

        if not errors:
            errors.append("no email provider is configured")
        logger.error(f"Email delivery to {message.to} failed: {'; '.join(errors)}")
        raise DeliveryError("Email delivery failed: " + "; ".join(errors))


def build_email_gateway(settings: Settings, client: httpx.AsyncClient) -> EmailGateway:
    """Build the gateway with every configured provider, primary first."""
    candidates: List[EmailProvider] = [
        MailerSendProvider(client, settings),
        SendGridProvider(client, settings),
    ]
    providers = [provider for provider in candidates if provider.is_configured]
    if not providers:
        logger.warning("No email provider credentials configured")
    return EmailGateway(providers, settings)
