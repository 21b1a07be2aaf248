from typing import Any, List, Optional
from datetime import datetime, date
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Text,
    ForeignKey,
    Enum,
    Index,
    func,
    UniqueConstraint,
    CheckConstraint,
    DateTime,
    Date,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum

from app.db.custom_types import JSONText, StringUUID, new_uuid
from app.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


# Enums
class UserRole(enum.Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    COLLABORATOR = "collaborator"


class HospitalStatus(enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ProjectStatus(enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ProjectHospitalStatus(enum.Enum):
    INITIAL_CONTACT = "initial_contact"
    PENDING_EVALUATION = "pending_evaluation"
    IN_PROGRESS = "in_progress"
    ETHICS_APPROVED = "ethics_approved"
    ACTIVE_RECRUITING = "active_recruiting"
    COMPLETED = "completed"
    INACTIVE = "inactive"


class FormStatus(enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"


class RecruitmentPeriodStatus(enum.Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AlertType(enum.Enum):
    ETHICS_APPROVAL_PENDING = "ethics_approval_pending"
    MISSING_DOCUMENTATION = "missing_documentation"
    UPCOMING_RECRUITMENT_PERIOD = "upcoming_recruitment_period"
    NO_ACTIVITY_30_DAYS = "no_activity_30_days"
    LOW_COMPLETION_RATE = "low_completion_rate"


class AlertSeverity(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(AlertSeverity).index(self)


class NotificationType(enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class CommunicationType(enum.Enum):
    MANUAL = "manual"
    AUTO_ALERT = "auto_alert"


class DeliveryStatus(enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=naive_utc_now,
        server_default=func.now(),
        onupdate=naive_utc_now,
    )


def _pk() -> Mapped[str]:
    return mapped_column(StringUUID, primary_key=True, default=new_uuid)


# Models
class User(Base, AuditMixin):
    __tablename__ = "users"

    id: Mapped[str] = _pk()
    email: Mapped[str] = mapped_column(String(320), unique=True)  # RFC 5321 max length
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    push_subscriptions: Mapped[List["PushSubscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    coordinator_assignments: Mapped[List["ProjectCoordinator"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_users_role_active", "role", "is_active"),)


class Hospital(Base, AuditMixin):
    __tablename__ = "hospitals"

    id: Mapped[str] = _pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(120))
    province: Mapped[Optional[str]] = mapped_column(String(120))
    status: Mapped[HospitalStatus] = mapped_column(
        Enum(HospitalStatus), default=HospitalStatus.ACTIVE, nullable=False
    )
    # Touched by the CRUD surface on meaningful hospital activity
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    project_links: Mapped[List["ProjectHospital"]] = relationship(
        back_populates="hospital", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_hospitals_status", "status"),)


class Project(Base, AuditMixin):
    __tablename__ = "projects"

    id: Mapped[str] = _pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ProjectStatus] = mapped_column(
        Enum(ProjectStatus), default=ProjectStatus.ACTIVE, nullable=False
    )

    # Relationships
    hospital_links: Mapped[List["ProjectHospital"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )


class ProjectHospital(Base, AuditMixin):
    __tablename__ = "project_hospitals"

    id: Mapped[str] = _pk()
    project_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    hospital_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[ProjectHospitalStatus] = mapped_column(
        Enum(ProjectHospitalStatus),
        default=ProjectHospitalStatus.INITIAL_CONTACT,
        nullable=False,
    )
    required_periods: Mapped[int] = mapped_column(Integer, default=2, nullable=False)

    # Relationships
    project: Mapped["Project"] = relationship(back_populates="hospital_links")
    hospital: Mapped["Hospital"] = relationship(back_populates="project_links")
    progress: Mapped[Optional["HospitalProgress"]] = relationship(
        back_populates="project_hospital", cascade="all, delete-orphan", uselist=False
    )
    recruitment_periods: Mapped[List["RecruitmentPeriod"]] = relationship(
        back_populates="project_hospital", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("project_id", "hospital_id", name="uq_proj_hosp_project_hospital"),
        Index("idx_proj_hosp_status", "status"),
    )


class HospitalProgress(Base, AuditMixin):
    __tablename__ = "hospital_progress"

    id: Mapped[str] = _pk()
    project_hospital_id: Mapped[str] = mapped_column(
        StringUUID,
        ForeignKey("project_hospitals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    descriptive_form_status: Mapped[FormStatus] = mapped_column(
        Enum(FormStatus), default=FormStatus.PENDING, nullable=False
    )
    ethics_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ethics_submitted_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    ethics_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ethics_approved_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cases_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cases_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_contact_date: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    project_hospital: Mapped["ProjectHospital"] = relationship(back_populates="progress")


class RecruitmentPeriod(Base, AuditMixin):
    __tablename__ = "recruitment_periods"

    id: Mapped[str] = _pk()
    project_hospital_id: Mapped[str] = mapped_column(
        StringUUID,
        ForeignKey("project_hospitals.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[RecruitmentPeriodStatus] = mapped_column(
        Enum(RecruitmentPeriodStatus),
        default=RecruitmentPeriodStatus.PLANNED,
        nullable=False,
    )

    # Relationships
    project_hospital: Mapped["ProjectHospital"] = relationship(
        back_populates="recruitment_periods"
    )

    __table_args__ = (
        UniqueConstraint(
            "project_hospital_id", "period_number", name="uq_recr_period_ph_number"
        ),
        CheckConstraint("end_date >= start_date", name="ck_recr_period_end_after_start"),
        Index("idx_recr_period_start_status", "start_date", "status"),
    )


class ProjectCoordinator(Base, AuditMixin):
    __tablename__ = "project_coordinators"

    id: Mapped[str] = _pk()
    project_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    hospital_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(50), default="coordinator", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="coordinator_assignments")

    __table_args__ = (
        Index("idx_proj_coord_hospital_project", "hospital_id", "project_id"),
        Index("idx_proj_coord_user", "user_id"),
    )


class CommunicationTemplate(Base, AuditMixin):
    __tablename__ = "communication_templates"

    id: Mapped[str] = _pk()
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    # Declared placeholder names, JSON list
    variables: Mapped[Optional[List[str]]] = mapped_column(JSONText)
    category: Mapped[str] = mapped_column(String(50), default="general", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (Index("idx_comm_templ_category_active", "category", "is_active"),)


class AlertConfiguration(Base, AuditMixin):
    __tablename__ = "alert_configurations"

    id: Mapped[str] = _pk()
    alert_type: Mapped[AlertType] = mapped_column(
        Enum(AlertType), unique=True, nullable=False
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_admin: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_coordinator: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    auto_send_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Days or percent depending on alert_type
    threshold_value: Mapped[Optional[int]] = mapped_column(Integer)
    email_template_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("communication_templates.id", ondelete="SET NULL")
    )

    # Relationships
    email_template: Mapped[Optional["CommunicationTemplate"]] = relationship()


class Alert(Base, AuditMixin):
    __tablename__ = "alerts"

    id: Mapped[str] = _pk()
    type: Mapped[AlertType] = mapped_column(Enum(AlertType), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[AlertSeverity] = mapped_column(Enum(AlertSeverity), nullable=False)
    hospital_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("hospitals.id", ondelete="NO ACTION")
    )
    project_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("projects.id", ondelete="NO ACTION")
    )
    # Typed payload per alert type, serialized by app.services.alerts.payloads
    alert_metadata: Mapped[Optional[str]] = mapped_column(Text)
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolved_by: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("users.id", ondelete="SET NULL")
    )

    # Relationships
    hospital: Mapped[Optional["Hospital"]] = relationship()
    project: Mapped[Optional["Project"]] = relationship()

    __table_args__ = (
        CheckConstraint(
            "hospital_id IS NOT NULL OR project_id IS NOT NULL",
            name="ck_alerts_has_target",
        ),
        Index("idx_alerts_type_resolved", "type", "is_resolved"),
        Index("idx_alerts_hospital", "hospital_id"),
        Index("idx_alerts_created_at", "created_at"),
        Index("idx_alerts_severity", "severity"),
    )

    @property
    def dedup_key(self) -> tuple:
        return (self.type, self.hospital_id, self.project_id)


# At most one unresolved alert per (type, hospital_id, project_id)
Index(
    "uq_alerts_open_dedup_key",
    Alert.type,
    func.coalesce(Alert.hospital_id, ""),
    func.coalesce(Alert.project_id, ""),
    unique=True,
    sqlite_where=Alert.is_resolved == False,  # noqa: E712
    postgresql_where=Alert.is_resolved == False,  # noqa: E712
)


class Notification(Base, AuditMixin):
    __tablename__ = "notifications"

    id: Mapped[str] = _pk()
    user_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    alert_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("alerts.id", ondelete="SET NULL")
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType), default=NotificationType.INFO, nullable=False
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_notif_user_read", "user_id", "is_read"),
        Index("idx_notif_created_at", "created_at"),
    )


class PushSubscription(Base, AuditMixin):
    __tablename__ = "push_subscriptions"

    id: Mapped[str] = _pk()
    endpoint: Mapped[str] = mapped_column(String(700), unique=True, nullable=False)
    p256dh_key: Mapped[str] = mapped_column(String(255), nullable=False)
    auth_key: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))

    # Relationships
    user: Mapped["User"] = relationship(back_populates="push_subscriptions")

    __table_args__ = (Index("idx_push_sub_user", "user_id"),)


class Communication(Base, AuditMixin):
    __tablename__ = "communications"

    id: Mapped[str] = _pk()
    sender_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("users.id", ondelete="SET NULL")
    )
    user_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    alert_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("alerts.id", ondelete="SET NULL")
    )
    template_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("communication_templates.id", ondelete="SET NULL")
    )
    hospital_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("hospitals.id", ondelete="SET NULL")
    )
    project_id: Mapped[Optional[str]] = mapped_column(
        StringUUID, ForeignKey("projects.id", ondelete="SET NULL")
    )
    type: Mapped[CommunicationType] = mapped_column(
        Enum(CommunicationType), nullable=False
    )
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    channels: Mapped[Optional[List[str]]] = mapped_column(JSONText)
    email_status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False
    )
    # Per-channel outcome detail for the admin audit trail
    delivery_details: Mapped[Optional[Any]] = mapped_column(JSONText)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_comm_user", "user_id"),
        Index("idx_comm_alert", "alert_id"),
        Index("idx_comm_created_at", "created_at"),
    )


class CronReport(Base, AuditMixin):
    __tablename__ = "cron_reports"

    id: Mapped[str] = _pk()
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    run_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(String(500))
    details: Mapped[Optional[Any]] = mapped_column(JSONText)

    __table_args__ = (Index("idx_cron_reports_job_run_at", "job_name", "run_at"),)
