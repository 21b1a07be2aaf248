from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from app.db.models import AlertSeverity, AlertType


@dataclass(frozen=True)
class SeverityPolicy:
    """
    Maps how far an entity is past its threshold to a severity.

    ``overshoot`` is a ratio computed by the rule (e.g. days overdue divided
    by the threshold); each escalation step applies once the ratio reaches
    its bound. Rules without a threshold always get ``base``.
    """

    base: AlertSeverity
    escalations: Sequence[Tuple[float, AlertSeverity]] = field(default_factory=tuple)

    def severity_for(self, overshoot: Optional[float]) -> AlertSeverity:
        if overshoot is None:
            return self.base

        severity = self.base
        for bound, escalated in sorted(self.escalations, key=lambda step: step[0]):
            if overshoot >= bound and escalated.rank > severity.rank:
                severity = escalated
        return severity


DEFAULT_SEVERITY_POLICIES: Dict[AlertType, SeverityPolicy] = {
    AlertType.ETHICS_APPROVAL_PENDING: SeverityPolicy(
        AlertSeverity.HIGH, ((2.0, AlertSeverity.CRITICAL),)
    ),
    AlertType.MISSING_DOCUMENTATION: SeverityPolicy(AlertSeverity.MEDIUM),
    # Overshoot is window / days remaining, so 4.0 means a quarter of the window left
    AlertType.UPCOMING_RECRUITMENT_PERIOD: SeverityPolicy(
        AlertSeverity.MEDIUM, ((4.0, AlertSeverity.HIGH),)
    ),
    AlertType.NO_ACTIVITY_30_DAYS: SeverityPolicy(
        AlertSeverity.LOW, ((2.0, AlertSeverity.MEDIUM), (3.0, AlertSeverity.HIGH))
    ),
    # Overshoot is threshold / rate, so 2.0 means below half the threshold
    AlertType.LOW_COMPLETION_RATE: SeverityPolicy(
        AlertSeverity.MEDIUM, ((2.0, AlertSeverity.HIGH),)
    ),
}
