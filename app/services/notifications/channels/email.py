"""
Email delivery over a transactional email HTTP API.

The provider is called through its REST endpoint with a bearer API key; SMTP
credentials are never handled by this service.
"""

import asyncio
from typing import Dict, Optional

import httpx

from app.utils.errors import ChannelDeliveryError, EmailRejectedError
from app.utils.logging import get_logger

from ..contracts import (
    ChannelOutcome,
    ChannelType,
    DispatchMessage,
    EmailMessage,
    Recipient,
    RenderedMessage,
)

logger = get_logger()


class HttpEmailSender:
    """MailerSend-compatible sender using ``POST {base_url}/email``."""

    enabled = True

    def __init__(
        self,
        api_key: str,
        from_address: str,
        from_name: Optional[str] = None,
        base_url: str = "https://api.mailersend.com/v1",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.from_name = from_name
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def send(self, email: EmailMessage) -> Dict[str, Optional[str]]:
        """
        Send one email and return provider identifiers.

        Raises:
            EmailRejectedError: provider answered 4xx (not retried)
            ChannelDeliveryError: transport failure or provider 5xx
        """
        sender = {"email": self.from_address}
        if self.from_name:
            sender["name"] = self.from_name
        to = {"email": email.to_address}
        if email.to_name:
            to["name"] = email.to_name

        payload = {
            "from": sender,
            "to": [to],
            "subject": email.subject,
            "text": email.text,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/email",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Accept": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise ChannelDeliveryError(f"email provider timeout: {str(e)}") from e
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(f"email transport error: {str(e)}") from e

        if 400 <= response.status_code < 500:
            logger.error(
                f"Email provider rejected message to {email.to_address}: "
                f"status={response.status_code} body={response.text}"
            )
            raise EmailRejectedError(f"rejected by provider ({response.status_code})")
        if response.status_code >= 500:
            logger.error(
                f"Email provider error for {email.to_address}: "
                f"status={response.status_code} body={response.text}"
            )
            raise ChannelDeliveryError(f"provider error ({response.status_code})")

        return {
            "provider": "mailersend",
            "message_id": response.headers.get("X-Message-Id"),
        }


class NullEmailSender:
    """Used when no email provider is configured."""

    enabled = False

    async def send(self, email: EmailMessage) -> Dict[str, Optional[str]]:
        logger.debug(f"Email disabled; dropping email to {email.to_address}")
        return {"provider": None, "message_id": None}


class EmailChannel:
    channel = ChannelType.EMAIL

    def __init__(self, sender, timeout_seconds: float = 10.0):
        self.sender = sender
        self.timeout_seconds = timeout_seconds

    async def deliver(
        self, recipient: Recipient, rendered: RenderedMessage, message: DispatchMessage
    ) -> ChannelOutcome:
        if not self.sender.enabled:
            return ChannelOutcome.skipped(recipient.user_id, self.channel, "email disabled")
        if not recipient.email:
            return ChannelOutcome.skipped(
                recipient.user_id, self.channel, "no email address"
            )

        email = EmailMessage(
            to_address=recipient.email,
            to_name=recipient.name,
            subject=rendered.subject,
            text=rendered.body,
        )
        try:
            await asyncio.wait_for(self.sender.send(email), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Email to {recipient.email} timed out")
            return ChannelOutcome.failed(recipient.user_id, self.channel, "timeout")
        except ChannelDeliveryError as e:
            logger.warning(f"Email to {recipient.email} failed: {e.message}")
            return ChannelOutcome.failed(recipient.user_id, self.channel, e.message)

        return ChannelOutcome.sent(recipient.user_id, self.channel)
