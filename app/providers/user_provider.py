from typing import Iterable, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from app.db.models import ProjectCoordinator, User, UserRole
from app.providers.storage import storage_guard


class UserProvider:
    """User lookups used for recipient resolution."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def get(self, user_id: str) -> Optional[User]:
        with storage_guard(self.db, "user lookup"):
            return self.db.get(User, user_id)

    async def list_active_by_ids(self, user_ids: Iterable[str]) -> List[User]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []

        with storage_guard(self.db, "user listing"):
            result = self.db.execute(
                select(User).where(User.id.in_(ids), User.is_active == True)  # noqa: E712
            )
            users = {user.id: user for user in result.scalars().all()}
        return [users[user_id] for user_id in ids if user_id in users]

    async def list_active_admins(self) -> List[User]:
        with storage_guard(self.db, "admin listing"):
            result = self.db.execute(
                select(User)
                .where(User.role == UserRole.ADMIN, User.is_active == True)  # noqa: E712
                .order_by(User.email)
            )
            return list(result.scalars().all())

    async def list_coordinators(
        self, hospital_id: Optional[str], project_id: Optional[str] = None
    ) -> List[User]:
        """Active coordinators of a hospital, narrowed to a project when one is given."""
        if hospital_id is None and project_id is None:
            return []

        conditions = [
            ProjectCoordinator.is_active == True,  # noqa: E712
            User.is_active == True,  # noqa: E712
        ]
        if hospital_id is not None:
            conditions.append(ProjectCoordinator.hospital_id == hospital_id)
        if project_id is not None:
            conditions.append(ProjectCoordinator.project_id == project_id)

        with storage_guard(self.db, "coordinator listing"):
            result = self.db.execute(
                select(User)
                .join(ProjectCoordinator, ProjectCoordinator.user_id == User.id)
                .where(and_(*conditions))
                .order_by(User.email)
            )
            return list(result.scalars().unique().all())
