from typing import List, Optional

from sqlalchemy import and_, desc, func, select, update
from sqlalchemy.orm import Session

from app.db.models import Notification, NotificationType
from app.providers.storage import storage_guard
from app.utils.datetime_utils import naive_utc_now


class NotificationProvider:
    """In-app notification rows."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def create(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
        alert_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            alert_id=alert_id,
            title=title,
            message=message,
            type=notification_type,
            is_read=False,
        )
        with storage_guard(self.db, "notification insert"):
            self.db.add(notification)
            self.db.commit()
        return notification

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        if notification_type is not None:
            query = query.where(Notification.type == notification_type)

        with storage_guard(self.db, "notification listing"):
            result = self.db.execute(
                query.order_by(desc(Notification.created_at)).limit(limit).offset(offset)
            )
            return list(result.scalars().all())

    async def count_unread(self, user_id: str) -> int:
        with storage_guard(self.db, "notification count"):
            return self.db.execute(
                select(func.count(Notification.id)).where(
                    and_(
                        Notification.user_id == user_id,
                        Notification.is_read == False,  # noqa: E712
                    )
                )
            ).scalar_one()

    async def mark_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        """Mark one of the user's notifications read. None when it is not theirs."""
        with storage_guard(self.db, "notification read"):
            notification = self.db.execute(
                select(Notification).where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                )
            ).scalar_one_or_none()
            if notification is None:
                return None

            if not notification.is_read:
                notification.is_read = True
                notification.read_at = naive_utc_now()
                self.db.commit()
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        with storage_guard(self.db, "notification bulk read"):
            result = self.db.execute(
                update(Notification)
                .where(
                    and_(
                        Notification.user_id == user_id,
                        Notification.is_read == False,  # noqa: E712
                    )
                )
                .values(is_read=True, read_at=naive_utc_now())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        return result.rowcount or 0
