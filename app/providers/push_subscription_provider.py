from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.db.models import PushSubscription
from app.providers.storage import storage_guard
from app.utils.logging import get_logger

logger = get_logger()


class PushSubscriptionProvider:
    """Persist and manage Web Push subscriptions keyed by endpoint."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def list_for_user(self, user_id: str) -> List[PushSubscription]:
        with storage_guard(self.db, "push subscription listing"):
            result = self.db.execute(
                select(PushSubscription).where(PushSubscription.user_id == user_id)
            )
            return list(result.scalars().all())

    async def upsert(
        self,
        user_id: str,
        endpoint: str,
        p256dh_key: str,
        auth_key: str,
        user_agent: Optional[str] = None,
    ) -> PushSubscription:
        """Insert or update a subscription; a browser re-subscribing rotates its keys."""
        with storage_guard(self.db, "push subscription upsert"):
            subscription = self.db.execute(
                select(PushSubscription).where(PushSubscription.endpoint == endpoint)
            ).scalar_one_or_none()

            if subscription is None:
                subscription = PushSubscription(endpoint=endpoint)
                self.db.add(subscription)

            subscription.user_id = user_id
            subscription.p256dh_key = p256dh_key
            subscription.auth_key = auth_key
            subscription.user_agent = user_agent
            self.db.commit()

        return subscription

    async def delete_by_endpoint(
        self, endpoint: str, user_id: Optional[str] = None
    ) -> int:
        """
        Delete by endpoint in a single statement.

        When user_id is given the delete is also constrained by ownership.
        Returns the number of rows removed.
        """
        stmt = delete(PushSubscription).where(PushSubscription.endpoint == endpoint)
        if user_id is not None:
            stmt = stmt.where(PushSubscription.user_id == user_id)

        with storage_guard(self.db, "push subscription delete"):
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            self.db.commit()

        return result.rowcount or 0
