from typing import Any, Dict, List

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_sync_session
from app.providers.notification_provider import NotificationProvider
from app.schemas.notification_schemas import (
    NotificationListQueryParams,
    NotificationResponse,
)
from app.utils.errors import NotFoundError
from app.utils.logging import get_logger

logger = get_logger()


class UserNotificationService:
    """Service for retrieving and managing a user's in-app notifications"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.notifications = NotificationProvider(db_session)

    async def get_user_notifications(
        self, user_id: str, query_params: NotificationListQueryParams
    ) -> List[Dict[str, Any]]:
        """
        Get notifications for a user, newest first.

        Args:
            user_id: The user's ID
            query_params: unread/type filters and limit/offset pagination

        Returns:
            List of camelCase notification dicts
        """
        notifications = await self.notifications.list_for_user(
            user_id,
            unread_only=query_params.unread_only,
            notification_type=query_params.type,
            limit=query_params.limit,
            offset=query_params.offset,
        )
        logger.debug(f"Retrieved {len(notifications)} notifications for user {user_id}")
        return [
            NotificationResponse.from_notification(n).model_dump(by_alias=True)
            for n in notifications
        ]

    async def get_unread_count(self, user_id: str) -> int:
        return await self.notifications.count_unread(user_id)

    async def mark_notification_as_read(self, user_id: str, notification_id: str) -> None:
        notification = await self.notifications.mark_read(notification_id, user_id)
        if notification is None:
            raise NotFoundError("Notification not found", "NOTIFICATION_NOT_FOUND")

    async def mark_all_as_read(self, user_id: str) -> int:
        updated = await self.notifications.mark_all_read(user_id)
        logger.info(f"Marked {updated} notifications as read for user {user_id}")
        return updated


def get_user_notification_service(
    db: Session = Depends(get_sync_session),
) -> UserNotificationService:
    """Dependency to provide UserNotificationService instance"""
    return UserNotificationService(db)
