from typing import Optional

from sqlalchemy.orm import Session

from app.providers.notification_provider import NotificationProvider

from ..contracts import (
    ChannelOutcome,
    ChannelType,
    DispatchMessage,
    Recipient,
    RenderedMessage,
)


class InAppChannel:
    """Writes the in-app feed row. Storage failures propagate."""

    channel = ChannelType.IN_APP

    def __init__(
        self, db_session: Session, notifications: Optional[NotificationProvider] = None
    ):
        self.notifications = notifications or NotificationProvider(db_session)

    async def deliver(
        self, recipient: Recipient, rendered: RenderedMessage, message: DispatchMessage
    ) -> ChannelOutcome:
        await self.notifications.create(
            user_id=recipient.user_id,
            title=rendered.subject,
            message=rendered.body,
            notification_type=message.notification_type,
            alert_id=message.alert_id,
        )
        return ChannelOutcome.sent(recipient.user_id, self.channel)
