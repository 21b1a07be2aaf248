from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import Field

from app.db.models import Alert, AlertConfiguration, AlertSeverity, AlertType
from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class AlertListQueryParams(BaseModel):
    """Query parameters for alert list filtering and pagination"""

    type: Optional[AlertType] = Field(None, description="Filter by alert type")
    status: Literal["active", "resolved", "all"] = Field(
        "active", description="Filter by resolution status"
    )
    severity: Optional[AlertSeverity] = Field(None, description="Filter by severity")
    hospital_id: Optional[str] = Field(None, description="Filter by hospital")
    project_id: Optional[str] = Field(None, description="Filter by project")
    search: Optional[str] = Field(
        None, max_length=200, description="Search title, message or hospital name"
    )
    page: int = Field(1, ge=1, description="Page number")
    limit: int = Field(25, ge=1, le=100, description="Items per page")

    @property
    def is_resolved(self) -> Optional[bool]:
        return {"active": False, "resolved": True}.get(self.status)


class AlertResponse(BaseModel):
    id: str = Field(..., description="Alert ID")
    type: AlertType = Field(..., description="Alert rule type")
    title: str
    message: str
    severity: AlertSeverity
    hospital_id: Optional[str] = None
    hospital_name: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        None, description="Rule-specific details of the violation"
    )
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_alert(cls, alert: Alert, metadata: Optional[Dict[str, Any]] = None):
        return cls(
            id=alert.id,
            type=alert.type,
            title=alert.title,
            message=alert.message,
            severity=alert.severity,
            hospital_id=alert.hospital_id,
            hospital_name=alert.hospital.name if alert.hospital else None,
            project_id=alert.project_id,
            project_name=alert.project.name if alert.project else None,
            metadata=metadata,
            is_resolved=alert.is_resolved,
            resolved_at=alert.resolved_at,
            resolved_by=alert.resolved_by,
            created_at=alert.created_at,
        )


class AlertStatsResponse(BaseModel):
    total: int
    active: int
    resolved: int
    critical: int
    high: int
    medium: int
    low: int


class AlertConfigurationResponse(BaseModel):
    id: str
    alert_type: AlertType
    enabled: bool
    notify_admin: bool
    notify_coordinator: bool
    auto_send_email: bool
    threshold_value: Optional[int] = None
    threshold_unit: Optional[str] = Field(
        None, description="'days', 'percent' or empty when the rule has no threshold"
    )
    email_template_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_configuration(
        cls, configuration: AlertConfiguration, threshold_unit: Optional[str] = None
    ):
        return cls(
            id=configuration.id,
            alert_type=configuration.alert_type,
            enabled=configuration.enabled,
            notify_admin=configuration.notify_admin,
            notify_coordinator=configuration.notify_coordinator,
            auto_send_email=configuration.auto_send_email,
            threshold_value=configuration.threshold_value,
            threshold_unit=threshold_unit,
            email_template_id=configuration.email_template_id,
            updated_at=configuration.updated_at,
        )


class UpdateAlertConfigurationRequest(BaseModel):
    """Partial update; omitted fields keep their stored value"""

    enabled: Optional[bool] = None
    notify_admin: Optional[bool] = None
    notify_coordinator: Optional[bool] = None
    auto_send_email: Optional[bool] = None
    threshold_value: Optional[int] = Field(None, ge=0)
    email_template_id: Optional[str] = None
