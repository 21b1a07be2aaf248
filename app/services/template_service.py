from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import CommunicationTemplate
from app.db.session import get_sync_session
from app.providers.template_provider import TemplateProvider
from app.schemas.template_schemas import (
    CreateTemplateRequest,
    TemplateResponse,
    UpdateTemplateRequest,
)
from app.services.notifications.template_renderer import TemplateRenderer
from app.utils.errors import BusinessLogicError, NotFoundError
from app.utils.logging import get_logger

logger = get_logger()


class TemplateService:
    """Communication template management with unique names"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.templates = TemplateProvider(db_session)

    async def list_templates(
        self, category: Optional[str] = None, active_only: bool = False
    ) -> List[Dict[str, Any]]:
        templates = await self.templates.list_templates(category, active_only)
        return [TemplateResponse.from_template(t).model_dump(by_alias=True) for t in templates]

    async def get_template(self, template_id: str) -> CommunicationTemplate:
        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found", "TEMPLATE_NOT_FOUND")
        return template

    async def create_template(self, request: CreateTemplateRequest) -> Dict[str, Any]:
        await self._ensure_name_available(request.name)
        _warn_undeclared(request.name, request.subject + request.body, request.variables)

        try:
            template = await self.templates.create(**request.model_dump())
        except IntegrityError:
            self.db.rollback()
            raise _name_taken(request.name)

        logger.info(f"Created communication template: {template.name}")
        return TemplateResponse.from_template(template).model_dump(by_alias=True)

    async def update_template(
        self, template_id: str, request: UpdateTemplateRequest
    ) -> Dict[str, Any]:
        template = await self.get_template(template_id)
        fields = {
            key: value
            for key, value in request.model_dump(exclude_unset=True).items()
            if value is not None
        }
        if fields.get("name") and fields["name"] != template.name:
            await self._ensure_name_available(fields["name"])

        try:
            template = await self.templates.update(template, **fields)
        except IntegrityError:
            self.db.rollback()
            raise _name_taken(fields.get("name", template.name))

        _warn_undeclared(template.name, template.subject + template.body, template.variables or [])
        logger.info(f"Updated communication template: {template.name}")
        return TemplateResponse.from_template(template).model_dump(by_alias=True)

    async def delete_template(self, template_id: str) -> None:
        template = await self.get_template(template_id)
        await self.templates.delete(template)
        logger.info(f"Deleted communication template: {template.name}")

    async def _ensure_name_available(self, name: str) -> None:
        if await self.templates.get_by_name(name) is not None:
            raise _name_taken(name)


def _name_taken(name: str) -> BusinessLogicError:
    return BusinessLogicError(
        f"A template named '{name}' already exists", "TEMPLATE_NAME_EXISTS"
    )


def _warn_undeclared(name: str, text: str, declared: List[str]) -> None:
    undeclared = TemplateRenderer.placeholders(text) - set(declared)
    if undeclared:
        logger.warning(f"Template {name} references undeclared variables: {sorted(undeclared)}")


def get_template_service(db: Session = Depends(get_sync_session)) -> TemplateService:
    """Dependency to provide TemplateService instance"""
    return TemplateService(db)
