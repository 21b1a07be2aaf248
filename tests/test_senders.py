import json
from unittest.mock import Mock, patch

import httpx
import requests
import pytest
from pywebpush import WebPushException

from app.services.notifications.channels import (
    HttpEmailSender,
    VapidConfig,
    WebPushSender,
)
from app.services.notifications.contracts import EmailMessage, PushMessage
from app.utils.errors import (
    ChannelDeliveryError,
    EmailRejectedError,
    StaleSubscriptionError,
)

EMAIL = EmailMessage(
    to_address="ana@epicq.test", to_name="Ana", subject="Subject", text="Body"
)


def _email_sender(handler) -> HttpEmailSender:
    return HttpEmailSender(
        api_key="test-key",
        from_address="noreply@epicq.test",
        from_name="EPIC-Q",
        base_url="https://mail.example/v1/",
        transport=httpx.MockTransport(handler),
    )


class TestHttpEmailSender:
    @pytest.mark.asyncio
    async def test_posts_message_with_bearer_key(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(202, headers={"X-Message-Id": "msg-1"})

        result = await _email_sender(handler).send(EMAIL)

        assert captured["url"] == "https://mail.example/v1/email"
        assert captured["auth"] == "Bearer test-key"
        assert captured["body"]["to"] == [{"email": "ana@epicq.test", "name": "Ana"}]
        assert captured["body"]["from"] == {"email": "noreply@epicq.test", "name": "EPIC-Q"}
        assert result["message_id"] == "msg-1"

    @pytest.mark.asyncio
    async def test_client_error_is_a_rejection(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"message": "invalid recipient"})

        with pytest.raises(EmailRejectedError):
            await _email_sender(handler).send(EMAIL)

    @pytest.mark.asyncio
    async def test_server_error_is_a_delivery_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        with pytest.raises(ChannelDeliveryError) as exc_info:
            await _email_sender(handler).send(EMAIL)
        assert not isinstance(exc_info.value, EmailRejectedError)

    @pytest.mark.asyncio
    async def test_transport_error_is_a_delivery_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ChannelDeliveryError):
            await _email_sender(handler).send(EMAIL)


class TestWebPushSender:
    MESSAGE = PushMessage(
        endpoint="https://push.example/sub",
        p256dh="p256dh",
        auth="auth",
        payload={"title": "Alert"},
    )

    def _sender(self) -> WebPushSender:
        return WebPushSender(
            VapidConfig(public_key="pub", private_key="priv", subject="mailto:a@b.c"),
            timeout_seconds=3,
        )

    def test_sends_signed_payload(self):
        with patch("app.services.notifications.channels.push.webpush") as webpush:
            self._sender().send(self.MESSAGE)

        kwargs = webpush.call_args.kwargs
        assert kwargs["subscription_info"]["endpoint"] == "https://push.example/sub"
        assert json.loads(kwargs["data"]) == {"title": "Alert"}
        assert kwargs["vapid_claims"] == {"sub": "mailto:a@b.c"}

    @pytest.mark.parametrize("status_code", [404, 410])
    def test_gone_subscription_is_stale(self, status_code):
        error = WebPushException("gone", response=Mock(status_code=status_code))
        with patch(
            "app.services.notifications.channels.push.webpush", side_effect=error
        ):
            with pytest.raises(StaleSubscriptionError):
                self._sender().send(self.MESSAGE)

    def test_other_failures_are_delivery_errors(self):
        error = WebPushException("boom", response=Mock(status_code=500))
        with patch(
            "app.services.notifications.channels.push.webpush", side_effect=error
        ):
            with pytest.raises(ChannelDeliveryError) as exc_info:
                self._sender().send(self.MESSAGE)
        assert not isinstance(exc_info.value, StaleSubscriptionError)

    def test_network_errors_are_delivery_errors(self):
        with patch(
            "app.services.notifications.channels.push.webpush",
            side_effect=requests.exceptions.ConnectionError("connection refused"),
        ):
            with pytest.raises(ChannelDeliveryError, match="connection refused"):
                self._sender().send(self.MESSAGE)
