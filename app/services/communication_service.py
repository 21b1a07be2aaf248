from typing import Any, Dict

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_sync_session
from app.providers.template_provider import TemplateProvider
from app.schemas.communication_schemas import SendCommunicationRequest
from app.services.notifications.contracts import DispatchMessage
from app.services.notifications.dispatcher import DispatchOrchestrator
from app.services.notifications.factory import build_dispatch_orchestrator
from app.utils.errors import BusinessLogicError, NotFoundError
from app.utils.logging import get_logger

logger = get_logger()


class CommunicationService:
    """Manual communications sent by administrators through the dispatch path"""

    def __init__(self, db_session: Session, dispatcher: DispatchOrchestrator):
        self.db = db_session
        self.dispatcher = dispatcher
        self.templates = TemplateProvider(db_session)

    async def send(
        self, sender_id: str, request: SendCommunicationRequest
    ) -> Dict[str, Any]:
        if request.template_id:
            template = await self.templates.get(request.template_id)
            if template is None:
                raise NotFoundError(
                    f"Template {request.template_id} not found", "TEMPLATE_NOT_FOUND"
                )
            if not template.is_active:
                raise BusinessLogicError(
                    f"Template {template.name} is inactive", "TEMPLATE_INACTIVE"
                )

        message = DispatchMessage.manual(
            sender_id=sender_id,
            recipient_ids=request.recipient_ids,
            subject=request.subject,
            body=request.body,
            channels=request.channels,
            template_id=request.template_id,
            variables=request.variables,
            hospital_id=request.hospital_id,
            project_id=request.project_id,
        )
        result = await self.dispatcher.dispatch(message)

        logger.info(
            f"User {sender_id} sent a communication to {len(result.recipient_ids)} recipients "
            f"over {sorted(c.value for c in message.channels)}"
        )
        return result.to_dict()


def get_communication_service(
    db: Session = Depends(get_sync_session),
) -> CommunicationService:
    """Dependency to provide CommunicationService instance"""
    return CommunicationService(db, build_dispatch_orchestrator(db))
