from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.db.models import CommunicationTemplate
from app.providers.storage import storage_guard


class TemplateProvider:
    """CRUD over communication templates."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def get(self, template_id: str) -> Optional[CommunicationTemplate]:
        with storage_guard(self.db, "template lookup"):
            return self.db.get(CommunicationTemplate, template_id)

    async def get_by_name(self, name: str) -> Optional[CommunicationTemplate]:
        with storage_guard(self.db, "template lookup"):
            return self.db.execute(
                select(CommunicationTemplate).where(CommunicationTemplate.name == name)
            ).scalar_one_or_none()

    async def list_templates(
        self, category: Optional[str] = None, active_only: bool = False
    ) -> List[CommunicationTemplate]:
        query = select(CommunicationTemplate)
        if category:
            query = query.where(CommunicationTemplate.category == category)
        if active_only:
            query = query.where(CommunicationTemplate.is_active == True)  # noqa: E712

        with storage_guard(self.db, "template listing"):
            result = self.db.execute(query.order_by(CommunicationTemplate.name))
            return list(result.scalars().all())

    async def create(self, **fields: Any) -> CommunicationTemplate:
        template = CommunicationTemplate(**fields)
        with storage_guard(self.db, "template insert"):
            self.db.add(template)
            self.db.commit()
        return template

    async def update(
        self, template: CommunicationTemplate, **fields: Any
    ) -> CommunicationTemplate:
        with storage_guard(self.db, "template update"):
            for name, value in fields.items():
                setattr(template, name, value)
            self.db.commit()
        return template

    async def delete(self, template: CommunicationTemplate) -> None:
        with storage_guard(self.db, "template delete"):
            self.db.delete(template)
            self.db.commit()

    async def increment_usage(self, template_id: str) -> None:
        # Atomic counter bump so concurrent dispatches do not lose increments
        with storage_guard(self.db, "template usage update"):
            self.db.execute(
                update(CommunicationTemplate)
                .where(CommunicationTemplate.id == template_id)
                .values(usage_count=CommunicationTemplate.usage_count + 1)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
