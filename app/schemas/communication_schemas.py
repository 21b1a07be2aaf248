from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from app.services.notifications.contracts import ChannelType


class SendCommunicationRequest(BaseModel):
    """Manual communication sent by an administrator"""

    recipient_ids: List[str] = Field(..., min_length=1, description="Recipient user IDs")
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    channels: List[ChannelType] = Field(
        default_factory=lambda: [ChannelType.IN_APP],
        description="Delivery channels; in-app is always included",
    )
    template_id: Optional[str] = Field(None, description="Template to render instead of subject/body")
    variables: Dict[str, Any] = Field(default_factory=dict)
    hospital_id: Optional[str] = None
    project_id: Optional[str] = None

    @field_validator("recipient_ids")
    @classmethod
    def unique_recipients(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))
