from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db.models import AlertSeverity, AlertType
from app.providers.study_state_provider import StudyStateProvider
from app.utils.errors import ConfigurationError

from .severity import SeverityPolicy

TargetT = TypeVar("TargetT")

DedupTarget = Tuple[Optional[str], Optional[str]]


@dataclass(frozen=True)
class CandidateAlert:
    """A detected violation that has not been checked for duplication yet."""

    alert_type: AlertType
    hospital_id: Optional[str]
    project_id: Optional[str]
    severity: AlertSeverity
    title: str
    message: str
    payload: Optional[BaseModel] = None

    @property
    def dedup_key(self) -> Tuple[AlertType, Optional[str], Optional[str]]:
        return (self.alert_type, self.hospital_id, self.project_id)


class BaseAlertRule(ABC, Generic[TargetT]):
    """
    One alert rule type.

    Subclasses load the entities the rule covers and evaluate each one as a
    pure predicate over its loaded state plus the configured threshold.
    """

    alert_type: AlertType
    default_threshold: Optional[int] = None
    threshold_unit: Optional[str] = None  # "days" | "percent" | None

    def __init__(
        self, db_session: Session, severity_policy: SeverityPolicy, state=None
    ):
        self.db = db_session
        self.severity_policy = severity_policy
        self.state = state or StudyStateProvider(db_session)

    def resolve_threshold(self, configured: Optional[int]) -> Optional[int]:
        """Apply the default and validate the configured threshold."""
        if self.threshold_unit is None:
            return None

        threshold = self.default_threshold if configured is None else configured
        if threshold is None:
            raise ConfigurationError(
                f"{self.alert_type.value}: threshold_value is required"
            )
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise ConfigurationError(
                f"{self.alert_type.value}: threshold_value must be an integer, got {threshold!r}"
            )
        if threshold < 0:
            raise ConfigurationError(
                f"{self.alert_type.value}: threshold_value must not be negative, got {threshold}"
            )
        if self.threshold_unit == "percent" and threshold > 100:
            raise ConfigurationError(
                f"{self.alert_type.value}: percentage threshold must be at most 100, got {threshold}"
            )
        return threshold

    @abstractmethod
    async def load_targets(self, now: datetime) -> List[TargetT]:
        """Entities this rule covers in the current run."""

    @abstractmethod
    def target_key(self, target: TargetT) -> DedupTarget:
        """(hospital_id, project_id) an alert for this target is keyed on."""

    @abstractmethod
    def describe(self, target: TargetT) -> str:
        """Human-readable target label used in error reports."""

    @abstractmethod
    def evaluate(
        self, target: TargetT, threshold: Optional[int], now: datetime
    ) -> Optional[CandidateAlert]:
        """Return a candidate alert when the target violates the rule."""

    def candidate(
        self,
        target: TargetT,
        title: str,
        message: str,
        overshoot: Optional[float],
        payload: Any = None,
    ) -> CandidateAlert:
        hospital_id, project_id = self.target_key(target)
        return CandidateAlert(
            alert_type=self.alert_type,
            hospital_id=hospital_id,
            project_id=project_id,
            severity=self.severity_policy.severity_for(overshoot),
            title=title,
            message=message,
            payload=payload,
        )
