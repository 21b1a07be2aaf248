"""Browser push delivery using the Web Push protocol with VAPID signing."""

import asyncio
import json
from dataclasses import dataclass
from http import HTTPStatus
from typing import List, Optional

from pywebpush import WebPushException, webpush
from requests.exceptions import RequestException
from sqlalchemy.orm import Session

from app.db.models import PushSubscription
from app.providers.push_subscription_provider import PushSubscriptionProvider
from app.utils.datetime_utils import utc_now
from app.utils.errors import ChannelDeliveryError, StaleSubscriptionError, StorageError
from app.utils.logging import get_logger

from ..contracts import (
    ChannelOutcome,
    ChannelType,
    DispatchMessage,
    PushMessage,
    Recipient,
    RenderedMessage,
)

logger = get_logger()


@dataclass(frozen=True)
class VapidConfig:
    public_key: str
    private_key: str
    subject: str


class WebPushSender:
    """
    ``pywebpush`` backed sender. ``send`` is blocking and is run in a worker
    thread by the channel.
    """

    enabled = True

    def __init__(self, vapid: VapidConfig, timeout_seconds: float = 10.0):
        self.vapid = vapid
        self.timeout_seconds = timeout_seconds

    def send(self, message: PushMessage) -> None:
        subscription_info = {
            "endpoint": message.endpoint,
            "keys": {"p256dh": message.p256dh, "auth": message.auth},
        }
        try:
            webpush(
                subscription_info=subscription_info,
                data=json.dumps(message.payload),
                vapid_private_key=self.vapid.private_key,
                vapid_claims={"sub": self.vapid.subject},
                timeout=self.timeout_seconds,
            )
        except WebPushException as e:
            status_code = _extract_status_code(e)
            if status_code in (HTTPStatus.GONE, HTTPStatus.NOT_FOUND):
                raise StaleSubscriptionError(
                    f"subscription gone (status={status_code})"
                ) from e
            raise ChannelDeliveryError(
                f"push service error (status={status_code or 'unknown'})"
            ) from e
        except RequestException as e:
            raise ChannelDeliveryError(f"push service unreachable: {str(e)}") from e


class NullPushSender:
    """Used when VAPID keys are not configured."""

    enabled = False

    def send(self, message: PushMessage) -> None:
        logger.debug("Push disabled; dropping push notification")


class PushChannel:
    """
    Delivers to every subscription of a recipient independently.

    A stale endpoint (404/410) is deleted and reported as skipped; any other
    failure is reported as failed and the subscription is kept.
    """

    channel = ChannelType.PUSH

    def __init__(
        self,
        db_session: Session,
        sender,
        subscriptions: Optional[PushSubscriptionProvider] = None,
        timeout_seconds: float = 10.0,
        icon_url: str = "/icons/icon-192x192.png",
        badge_url: str = "/icons/icon-72x72.png",
        default_url: str = "/notifications",
    ):
        self.sender = sender
        self.subscriptions = subscriptions or PushSubscriptionProvider(db_session)
        self.timeout_seconds = timeout_seconds
        self.icon_url = icon_url
        self.badge_url = badge_url
        self.default_url = default_url

    def build_payload(self, rendered: RenderedMessage, message: DispatchMessage) -> dict:
        return {
            "title": rendered.subject,
            "body": rendered.body,
            "icon": self.icon_url,
            "badge": self.badge_url,
            "url": message.url or self.default_url,
            "alertId": message.alert_id,
            "timestamp": int(utc_now().timestamp() * 1000),
        }

    async def deliver(
        self, recipient: Recipient, rendered: RenderedMessage, message: DispatchMessage
    ) -> List[ChannelOutcome]:
        subscriptions = await self.subscriptions.list_for_user(recipient.user_id)
        if not subscriptions:
            return [
                ChannelOutcome.skipped(recipient.user_id, self.channel, "no subscription")
            ]
        if not self.sender.enabled:
            return [ChannelOutcome.skipped(recipient.user_id, self.channel, "push disabled")]

        payload = self.build_payload(rendered, message)
        results = await asyncio.gather(
            *(
                self._send_one(recipient, subscription, payload)
                for subscription in subscriptions
            ),
            return_exceptions=True,
        )
        # Only storage failures get past _send_one; raise once every send has settled
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    async def _send_one(
        self, recipient: Recipient, subscription: PushSubscription, payload: dict
    ) -> ChannelOutcome:
        endpoint = subscription.endpoint
        push = PushMessage(
            endpoint=endpoint,
            p256dh=subscription.p256dh_key,
            auth=subscription.auth_key,
            payload=payload,
        )
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.sender.send, push), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(f"Push to {endpoint} timed out")
            return ChannelOutcome.failed(
                recipient.user_id, self.channel, "timeout", target=endpoint
            )
        except StaleSubscriptionError as e:
            removed = await self.subscriptions.delete_by_endpoint(endpoint)
            logger.info(
                f"Removed stale push subscription for user {recipient.user_id} "
                f"({e.message}, rows={removed})"
            )
            return ChannelOutcome.skipped(
                recipient.user_id, self.channel, "stale", target=endpoint
            )
        except ChannelDeliveryError as e:
            logger.warning(f"Push to {endpoint} failed: {e.message}")
            return ChannelOutcome.failed(
                recipient.user_id, self.channel, e.message, target=endpoint
            )
        except StorageError:
            raise
        except Exception as e:
            logger.opt(exception=e).error(f"Unexpected push failure for {endpoint}")
            return ChannelOutcome.failed(
                recipient.user_id, self.channel, str(e), target=endpoint
            )

        return ChannelOutcome.sent(recipient.user_id, self.channel, target=endpoint)


def _extract_status_code(exc: WebPushException) -> Optional[int]:
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None
