"""
Outbound message transports.

Each transport posts to one endpoint of the messaging provider gateway:
- SMS:      POST {api_url}/sms/send       {to, message, from}
- WhatsApp: POST {api_url}/whatsapp/send  {to, type: "text", text: {body}}
- Email:    POST {api_url}/email/send     {to, subject, message}

Every request carries the configured API key as a bearer token. A non-2xx
response or a network failure raises TransportError; callers that must not
fail (the dispatcher) catch it at their boundary.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import httpx

from shared.errors import TransportError
from shared.models import utcnow
from shared.settings import DispatchSettings

logger = logging.getLogger("dispatch")


class ChannelType(str, Enum):
    """Supported outbound channels."""
    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


# Channels addressed by mobile number
PHONE_CHANNELS = (ChannelType.SMS, ChannelType.WHATSAPP)


@dataclass
class DispatchResult:
    """
    Result of one send attempt.

    Captures success/failure and metadata for logging and per-recipient
    reporting.
    """
    success: bool
    channel: ChannelType
    recipient: str
    body: str
    subject: Optional[str] = None  # Email only
    timestamp: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        channel = getattr(self.channel, "value", self.channel)
        if self.channel == ChannelType.EMAIL:
            return f"{status} EMAIL to {self.recipient}: {self.subject}"
        return f"{status} {str(channel).upper()} to {self.recipient}: {self.body[:50]}..."


class HttpTransport:
    """
    Base class for provider gateway transports.

    Pass ``client`` to share one connection pool (or a mock transport in
    tests); otherwise a short-lived client is opened per request.
    """

    channel: ChannelType
    path: str

    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.api_url}{self.path}"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_payload(self, recipient: str, message: str, subject: Optional[str] = None) -> dict[str, Any]:
        raise NotImplementedError

    async def send(self, recipient: str, message: str, subject: Optional[str] = None) -> None:
        """
        Post one message to the provider.

        Raises:
            TransportError: On a non-2xx response, a network failure, or a
                missing gateway URL
        """
        if not self.api_url:
            raise TransportError(self.channel.value, recipient, "provider api_url is not configured")

        payload = self.build_payload(recipient, message, subject)
        try:
            if self._client is not None:
                response = await self._client.post(
                    self.url, json=payload, headers=self._headers(), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.RequestError as e:
            raise TransportError(self.channel.value, recipient, f"request error: {e!r}") from e

        if not response.is_success:
            raise TransportError(self.channel.value, recipient, f"HTTP {response.status_code}")


class SMSTransport(HttpTransport):
    """SMS via the provider gateway."""

    channel = ChannelType.SMS
    path = "/sms/send"

    # SMS typically have character limits
    MAX_LENGTH = 160

    def __init__(self, api_url: str, api_key: str = "", *, sender_id: str = "TailorBuddy", **kwargs):
        super().__init__(api_url, api_key, **kwargs)
        self.sender_id = sender_id

    def build_payload(self, recipient: str, message: str, subject: Optional[str] = None) -> dict[str, Any]:
        if len(message) > self.MAX_LENGTH:
            logger.warning(
                f"[SMS] Message length ({len(message)}) exceeds {self.MAX_LENGTH} chars, "
                "may be split into multiple messages"
            )
        return {"to": recipient, "message": message, "from": self.sender_id}


class WhatsAppTransport(HttpTransport):
    """WhatsApp Business text message via the provider gateway."""

    channel = ChannelType.WHATSAPP
    path = "/whatsapp/send"

    def build_payload(self, recipient: str, message: str, subject: Optional[str] = None) -> dict[str, Any]:
        return {"to": recipient, "type": "text", "text": {"body": message}}


class EmailTransport(HttpTransport):
    """Email via the provider gateway."""

    channel = ChannelType.EMAIL
    path = "/email/send"

    def build_payload(self, recipient: str, message: str, subject: Optional[str] = None) -> dict[str, Any]:
        return {"to": recipient, "subject": subject or "(no subject)", "message": message}


def build_transports(
    settings: DispatchSettings,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[ChannelType, HttpTransport]:
    """One transport per channel, all configured from ``settings``."""
    common = {
        "api_key": settings.api_key,
        "timeout": settings.request_timeout_seconds,
        "client": client,
    }
    return {
        ChannelType.SMS: SMSTransport(settings.api_url, sender_id=settings.sms_sender_id, **common),
        ChannelType.WHATSAPP: WhatsAppTransport(settings.api_url, **common),
        ChannelType.EMAIL: EmailTransport(settings.api_url, **common),
    }
