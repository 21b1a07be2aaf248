"""Typed alert metadata, one payload shape per alert type."""

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class EthicsApprovalPendingPayload(BaseModel):
    alert_type: Literal["ethics_approval_pending"] = "ethics_approval_pending"
    days_pending: int
    threshold_days: int
    submitted_on: date


class MissingDocumentationPayload(BaseModel):
    alert_type: Literal["missing_documentation"] = "missing_documentation"
    missing_documents: List[str]


class UpcomingRecruitmentPeriodPayload(BaseModel):
    alert_type: Literal["upcoming_recruitment_period"] = "upcoming_recruitment_period"
    period_id: str
    period_number: int
    start_date: date
    days_until_start: int
    threshold_days: int


class NoActivityPayload(BaseModel):
    alert_type: Literal["no_activity_30_days"] = "no_activity_30_days"
    days_inactive: int
    threshold_days: int
    last_activity_at: datetime


class LowCompletionRatePayload(BaseModel):
    alert_type: Literal["low_completion_rate"] = "low_completion_rate"
    completion_rate: float
    threshold_percent: int
    cases_created: int
    cases_completed: int


AlertPayload = Annotated[
    Union[
        EthicsApprovalPendingPayload,
        MissingDocumentationPayload,
        UpcomingRecruitmentPeriodPayload,
        NoActivityPayload,
        LowCompletionRatePayload,
    ],
    Field(discriminator="alert_type"),
]

_payload_adapter: TypeAdapter = TypeAdapter(AlertPayload)


def dump_payload(payload: Optional[BaseModel]) -> Optional[str]:
    if payload is None:
        return None
    return payload.model_dump_json()


def load_payload(raw: Optional[str]):
    """Parse stored metadata back into its payload model (None when absent)."""
    if not raw:
        return None
    return _payload_adapter.validate_json(raw)
