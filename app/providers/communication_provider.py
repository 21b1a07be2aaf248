from typing import Any, List, Optional

from sqlalchemy.orm import Session

from app.db.models import Communication, CommunicationType, DeliveryStatus
from app.providers.storage import storage_guard


class CommunicationProvider:
    """Audit trail of communications sent to users."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def create(
        self,
        user_id: str,
        communication_type: CommunicationType,
        subject: str,
        body: str,
        channels: List[str],
        email_status: DeliveryStatus,
        sender_id: Optional[str] = None,
        alert_id: Optional[str] = None,
        template_id: Optional[str] = None,
        hospital_id: Optional[str] = None,
        project_id: Optional[str] = None,
        delivery_details: Optional[Any] = None,
    ) -> Communication:
        communication = Communication(
            user_id=user_id,
            type=communication_type,
            subject=subject,
            body=body,
            channels=channels,
            email_status=email_status,
            sender_id=sender_id,
            alert_id=alert_id,
            template_id=template_id,
            hospital_id=hospital_id,
            project_id=project_id,
            delivery_details=delivery_details,
        )
        with storage_guard(self.db, "communication insert"):
            self.db.add(communication)
            self.db.commit()
        return communication
