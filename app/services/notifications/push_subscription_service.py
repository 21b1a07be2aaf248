from typing import Any, Dict, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.session import get_sync_session
from app.providers.push_subscription_provider import PushSubscriptionProvider
from app.schemas.notification_schemas import SubscribeRequest
from app.utils.errors import BusinessLogicError, NotFoundError
from app.utils.logging import get_logger

logger = get_logger()


class PushSubscriptionService:
    """Browser push registration for the current user"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.subscriptions = PushSubscriptionProvider(db_session)

    async def subscribe(
        self, user_id: str, request: SubscribeRequest, user_agent: Optional[str] = None
    ) -> Dict[str, Any]:
        """Upsert by endpoint; re-subscribing moves the endpoint to this user."""
        subscription = await self.subscriptions.upsert(
            user_id=user_id,
            endpoint=request.endpoint,
            p256dh_key=request.keys.p256dh,
            auth_key=request.keys.auth,
            user_agent=user_agent[:500] if user_agent else None,
        )
        logger.info(f"Push subscription registered for user {user_id}")
        return {"id": subscription.id, "endpoint": subscription.endpoint}

    async def unsubscribe(self, user_id: str, endpoint: str) -> None:
        removed = await self.subscriptions.delete_by_endpoint(endpoint, user_id=user_id)
        if not removed:
            raise NotFoundError("Push subscription not found", "PUSH_SUBSCRIPTION_NOT_FOUND")
        logger.info(f"Push subscription removed for user {user_id}")

    @staticmethod
    def vapid_public_key() -> str:
        if not settings.VAPID_PUBLIC_KEY:
            raise BusinessLogicError(
                "Push notifications are not configured", "PUSH_NOT_CONFIGURED"
            )
        return settings.VAPID_PUBLIC_KEY


def get_push_subscription_service(
    db: Session = Depends(get_sync_session),
) -> PushSubscriptionService:
    """Dependency to provide PushSubscriptionService instance"""
    return PushSubscriptionService(db)
