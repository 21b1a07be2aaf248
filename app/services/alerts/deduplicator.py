from typing import Optional

from app.db.models import Alert
from app.providers.alert_provider import AlertProvider
from app.utils.logging import get_logger

from .base import CandidateAlert

logger = get_logger()


class AlertDeduplicator:
    """Decides whether a candidate is already tracked by an unresolved alert."""

    def __init__(self, alerts: AlertProvider):
        self.alerts = alerts

    async def existing_alert(self, candidate: CandidateAlert) -> Optional[Alert]:
        return await self.alerts.find_unresolved(
            candidate.alert_type, candidate.hospital_id, candidate.project_id
        )

    async def should_create(self, candidate: CandidateAlert) -> bool:
        existing = await self.existing_alert(candidate)
        if existing is not None:
            logger.debug(
                f"Skipping {candidate.alert_type.value} for hospital={candidate.hospital_id} "
                f"project={candidate.project_id}: alert {existing.id} still open"
            )
            return False
        return True

    async def resolve(self, alert: Alert) -> Alert:
        """Resolve an open alert whose violating condition has cleared."""
        resolved = await self.alerts.resolve(alert)
        logger.info(
            f"Resolved {alert.type.value} alert {alert.id} "
            f"(hospital={alert.hospital_id} project={alert.project_id}): condition cleared"
        )
        return resolved
