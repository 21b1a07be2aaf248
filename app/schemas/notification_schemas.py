from datetime import datetime
from typing import Optional

from pydantic import Field

from app.db.models import Notification, NotificationType
from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class NotificationResponse(BaseModel):
    id: str = Field(..., description="Notification ID")
    alert_id: Optional[str] = Field(None, description="Originating alert, if any")
    title: str
    message: str
    type: NotificationType
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_notification(cls, notification: Notification):
        return cls(
            id=notification.id,
            alert_id=notification.alert_id,
            title=notification.title,
            message=notification.message,
            type=notification.type,
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationListQueryParams(BaseModel):
    unread_only: bool = Field(False, description="Only unread notifications")
    type: Optional[NotificationType] = Field(None, description="Filter by type")
    limit: int = Field(50, ge=1, le=100, description="Maximum items to return")
    offset: int = Field(0, ge=0, description="Offset for pagination")


class PushSubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1, max_length=255)
    auth: str = Field(..., min_length=1, max_length=255)


class SubscribeRequest(BaseModel):
    """Browser PushSubscription as serialized by ``subscription.toJSON()``"""

    endpoint: str = Field(..., min_length=1, max_length=700)
    keys: PushSubscriptionKeys


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=700)
