from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.db.models import AlertConfiguration, User
from app.providers.user_provider import UserProvider
from app.utils.errors import RecipientResolutionError
from app.utils.logging import get_logger

from .contracts import DispatchMessage, Recipient

logger = get_logger()


class RecipientResolver:
    """Turns a dispatch message plus alert configuration into active users."""

    def __init__(self, db_session: Session, users: Optional[UserProvider] = None):
        self.users = users or UserProvider(db_session)

    async def resolve(
        self, message: DispatchMessage, config: Optional[AlertConfiguration] = None
    ) -> List[Recipient]:
        if message.is_alert:
            return await self.for_alert(message, config)
        return await self.for_manual(message.recipient_ids)

    async def for_alert(
        self, message: DispatchMessage, config: Optional[AlertConfiguration]
    ) -> List[Recipient]:
        """
        Admins and/or coordinators according to the alert configuration.

        An empty list is a valid result for alerts.
        """
        if config is None:
            return []

        found: Dict[str, User] = {}
        if config.notify_admin:
            for user in await self.users.list_active_admins():
                found.setdefault(user.id, user)
        if config.notify_coordinator:
            coordinators = await self.users.list_coordinators(
                message.hospital_id, message.project_id
            )
            for user in coordinators:
                found.setdefault(user.id, user)

        if not found:
            logger.info(
                f"No recipients for alert {message.alert_id} "
                f"(notify_admin={config.notify_admin}, notify_coordinator={config.notify_coordinator})"
            )
        return [_to_recipient(user) for user in found.values()]

    async def for_manual(self, recipient_ids: List[str]) -> List[Recipient]:
        users = await self.users.list_active_by_ids(recipient_ids)
        if not users:
            raise RecipientResolutionError(
                "None of the requested recipients is an active user"
            )

        unknown = set(recipient_ids) - {user.id for user in users}
        if unknown:
            logger.warning(f"Ignoring unknown or inactive recipients: {sorted(unknown)}")
        return [_to_recipient(user) for user in users]


def _to_recipient(user: User) -> Recipient:
    return Recipient(user_id=user.id, name=user.name, email=user.email or None)
