from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import AlertConfiguration, AlertType
from app.providers.storage import storage_guard
from app.utils.logging import get_logger

logger = get_logger()

EDITABLE_FIELDS = {
    "enabled",
    "notify_admin",
    "notify_coordinator",
    "auto_send_email",
    "threshold_value",
    "email_template_id",
}


class AlertConfigurationProvider:
    """
    Read access to AlertConfiguration rows.

    One instance is created per alert run; rows are loaded once and cached for
    the lifetime of the instance.
    """

    def __init__(self, db_session: Session):
        self.db = db_session
        self._cache: Optional[Dict[AlertType, AlertConfiguration]] = None

    async def _load(self) -> Dict[AlertType, AlertConfiguration]:
        if self._cache is None:
            with storage_guard(self.db, "alert configuration load"):
                result = self.db.execute(select(AlertConfiguration))
                self._cache = {row.alert_type: row for row in result.scalars().all()}
            logger.debug(f"Loaded {len(self._cache)} alert configurations")
        return self._cache

    async def get(self, alert_type: AlertType) -> Optional[AlertConfiguration]:
        configurations = await self._load()
        return configurations.get(alert_type)

    async def list_all(self) -> List[AlertConfiguration]:
        configurations = await self._load()
        return sorted(configurations.values(), key=lambda c: c.alert_type.value)

    async def upsert(self, alert_type: AlertType, **fields: Any) -> AlertConfiguration:
        """Create or update the single configuration row of an alert type."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown alert configuration fields: {sorted(unknown)}")

        with storage_guard(self.db, "alert configuration update"):
            configuration = self.db.execute(
                select(AlertConfiguration).where(
                    AlertConfiguration.alert_type == alert_type
                )
            ).scalar_one_or_none()

            if configuration is None:
                configuration = AlertConfiguration(alert_type=alert_type)
                self.db.add(configuration)

            for name, value in fields.items():
                setattr(configuration, name, value)

            self.db.commit()

        self._cache = None
        logger.info(f"Alert configuration {alert_type.value} updated: {fields}")
        return configuration
