from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.db.models import CommunicationTemplate
from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class CreateTemplateRequest(BaseModel):
    """Request schema for creating a communication template"""

    name: str = Field(..., min_length=1, max_length=200, description="Unique template name")
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    variables: List[str] = Field(
        default_factory=list, description="Declared placeholder names"
    )
    category: str = Field("general", max_length=50)
    is_active: bool = True


class UpdateTemplateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    subject: Optional[str] = Field(None, min_length=1, max_length=500)
    body: Optional[str] = Field(None, min_length=1)
    variables: Optional[List[str]] = None
    category: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None


class TemplateResponse(BaseModel):
    id: str
    name: str
    subject: str
    body: str
    variables: List[str]
    category: str
    is_active: bool
    usage_count: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_template(cls, template: CommunicationTemplate):
        return cls(
            id=template.id,
            name=template.name,
            subject=template.subject,
            body=template.body,
            variables=template.variables or [],
            category=template.category,
            is_active=template.is_active,
            usage_count=template.usage_count,
            created_at=template.created_at,
            updated_at=template.updated_at,
        )
