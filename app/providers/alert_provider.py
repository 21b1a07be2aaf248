from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, desc, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.db.models import Alert, AlertSeverity, AlertType, Hospital
from app.providers.storage import storage_guard
from app.utils.datetime_utils import naive_utc_now
from app.utils.logging import get_logger

logger = get_logger()


class AlertProvider:
    """Data access for Alert rows. Alerts are never deleted."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def find_unresolved(
        self,
        alert_type: AlertType,
        hospital_id: Optional[str],
        project_id: Optional[str],
    ) -> Optional[Alert]:
        """Return the open alert for a dedup key, if any."""
        with storage_guard(self.db, "unresolved alert lookup"):
            result = self.db.execute(
                select(Alert).where(
                    and_(
                        Alert.type == alert_type,
                        _nullable_eq(Alert.hospital_id, hospital_id),
                        _nullable_eq(Alert.project_id, project_id),
                        Alert.is_resolved == False,  # noqa: E712
                    )
                )
            )
            return result.scalars().first()

    async def list_unresolved(self, alert_type: AlertType) -> List[Alert]:
        with storage_guard(self.db, "unresolved alert listing"):
            result = self.db.execute(
                select(Alert).where(
                    Alert.type == alert_type,
                    Alert.is_resolved == False,  # noqa: E712
                )
            )
            return list(result.scalars().all())

    async def create(
        self,
        alert_type: AlertType,
        title: str,
        message: str,
        severity: AlertSeverity,
        hospital_id: Optional[str],
        project_id: Optional[str],
        metadata_json: Optional[str],
    ) -> Optional[Alert]:
        """
        Insert a new unresolved alert.

        Returns None when the partial unique index rejects the row, meaning a
        concurrent run already opened an alert for the same dedup key.
        """
        alert = Alert(
            type=alert_type,
            title=title,
            message=message,
            severity=severity,
            hospital_id=hospital_id,
            project_id=project_id,
            alert_metadata=metadata_json,
            is_resolved=False,
        )
        with storage_guard(self.db, "alert creation"):
            self.db.add(alert)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.info(
                    f"Open {alert_type.value} alert already exists for "
                    f"hospital={hospital_id} project={project_id}; insert skipped"
                )
                return None
        return alert

    async def resolve(self, alert: Alert, resolved_by: Optional[str] = None) -> Alert:
        with storage_guard(self.db, "alert resolution"):
            alert.is_resolved = True
            alert.resolved_at = naive_utc_now()
            alert.resolved_by = resolved_by
            self.db.commit()
        return alert

    async def get(self, alert_id: str) -> Optional[Alert]:
        with storage_guard(self.db, "alert lookup"):
            result = self.db.execute(
                select(Alert)
                .options(selectinload(Alert.hospital), selectinload(Alert.project))
                .where(Alert.id == alert_id)
            )
            return result.scalar_one_or_none()

    async def list_alerts(
        self,
        alert_type: Optional[AlertType] = None,
        severity: Optional[AlertSeverity] = None,
        is_resolved: Optional[bool] = None,
        hospital_id: Optional[str] = None,
        project_id: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 25,
    ) -> Tuple[List[Alert], int]:
        """Paginated alert listing, newest first."""
        conditions = []
        if alert_type is not None:
            conditions.append(Alert.type == alert_type)
        if severity is not None:
            conditions.append(Alert.severity == severity)
        if is_resolved is not None:
            conditions.append(Alert.is_resolved == is_resolved)
        if hospital_id:
            conditions.append(Alert.hospital_id == hospital_id)
        if project_id:
            conditions.append(Alert.project_id == project_id)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Alert.title.ilike(pattern),
                    Alert.message.ilike(pattern),
                    Hospital.name.ilike(pattern),
                )
            )

        base = select(Alert).outerjoin(Hospital, Alert.hospital_id == Hospital.id)
        if conditions:
            base = base.where(and_(*conditions))

        with storage_guard(self.db, "alert listing"):
            total = self.db.execute(
                select(func.count()).select_from(base.subquery())
            ).scalar_one()
            result = self.db.execute(
                base.options(selectinload(Alert.hospital), selectinload(Alert.project))
                .order_by(desc(Alert.created_at))
                .limit(limit)
                .offset((page - 1) * limit)
            )
            return list(result.scalars().all()), total

    async def stats(self) -> Dict[str, Any]:
        """Counts by resolution state and, for open alerts, by severity."""
        with storage_guard(self.db, "alert statistics"):
            total = self.db.execute(select(func.count(Alert.id))).scalar_one()
            resolved = self.db.execute(
                select(func.count(Alert.id)).where(Alert.is_resolved == True)  # noqa: E712
            ).scalar_one()
            rows = self.db.execute(
                select(Alert.severity, func.count(Alert.id))
                .where(Alert.is_resolved == False)  # noqa: E712
                .group_by(Alert.severity)
            ).all()

        by_severity = {severity.value: 0 for severity in AlertSeverity}
        for severity, count in rows:
            by_severity[severity.value] = count

        return {
            "total": total,
            "active": total - resolved,
            "resolved": resolved,
            **by_severity,
        }


def _nullable_eq(column, value):
    return column.is_(None) if value is None else column == value
