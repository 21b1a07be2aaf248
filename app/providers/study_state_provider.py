from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.db.models import (
    Hospital,
    HospitalStatus,
    Project,
    ProjectHospital,
    ProjectHospitalStatus,
    ProjectStatus,
)
from app.providers.storage import storage_guard

CLOSED_PARTICIPATION = (ProjectHospitalStatus.COMPLETED, ProjectHospitalStatus.INACTIVE)


class StudyStateProvider:
    """Read-only snapshot of the operational state alert rules evaluate."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def list_open_participations(self) -> List[ProjectHospital]:
        """Project-hospital links of active projects that are not closed."""
        with storage_guard(self.db, "participation load"):
            result = self.db.execute(
                select(ProjectHospital)
                .join(Project, ProjectHospital.project_id == Project.id)
                .join(Hospital, ProjectHospital.hospital_id == Hospital.id)
                .options(
                    selectinload(ProjectHospital.progress),
                    selectinload(ProjectHospital.recruitment_periods),
                    selectinload(ProjectHospital.hospital),
                    selectinload(ProjectHospital.project),
                )
                .where(
                    Project.status == ProjectStatus.ACTIVE,
                    ProjectHospital.status.not_in(CLOSED_PARTICIPATION),
                )
                .order_by(Hospital.name)
            )
            return list(result.scalars().all())

    async def list_active_hospitals(self) -> List[Hospital]:
        with storage_guard(self.db, "hospital load"):
            result = self.db.execute(
                select(Hospital)
                .where(Hospital.status == HospitalStatus.ACTIVE)
                .order_by(Hospital.name)
            )
            return list(result.scalars().all())
