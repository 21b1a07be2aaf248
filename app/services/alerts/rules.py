from datetime import datetime
from typing import List, Optional

from app.db.models import (
    AlertType,
    FormStatus,
    Hospital,
    ProjectHospital,
    ProjectHospitalStatus,
    RecruitmentPeriodStatus,
)
from app.utils.datetime_utils import days_between

from .base import BaseAlertRule, CandidateAlert, DedupTarget
from .payloads import (
    EthicsApprovalPendingPayload,
    LowCompletionRatePayload,
    MissingDocumentationPayload,
    NoActivityPayload,
    UpcomingRecruitmentPeriodPayload,
)
from .registry import alert_rule


def _overshoot(value: float, bound: float) -> float:
    return value / bound if bound > 0 else float("inf")


class ParticipationRule(BaseAlertRule[ProjectHospital]):
    """Rules evaluated once per hospital participation in a project."""

    async def load_targets(self, now: datetime) -> List[ProjectHospital]:
        return await self.state.list_open_participations()

    def target_key(self, target: ProjectHospital) -> DedupTarget:
        return (target.hospital_id, target.project_id)

    def describe(self, target: ProjectHospital) -> str:
        return f"{target.hospital.name} / {target.project.name}"


@alert_rule(AlertType.ETHICS_APPROVAL_PENDING)
class EthicsApprovalPendingRule(ParticipationRule):
    """Ethics submitted but not approved for at least N days."""

    default_threshold = 30
    threshold_unit = "days"

    def evaluate(
        self, target: ProjectHospital, threshold: Optional[int], now: datetime
    ) -> Optional[CandidateAlert]:
        progress = target.progress
        if progress is None or not progress.ethics_submitted or progress.ethics_approved:
            return None
        if progress.ethics_submitted_date is None:
            raise ValueError("ethics marked as submitted without a submission date")

        days_pending = days_between(progress.ethics_submitted_date, now)
        if days_pending < 0:
            raise ValueError("ethics submission date is in the future")
        if days_pending < threshold:
            return None

        return self.candidate(
            target,
            title=f"Ethics approval pending at {target.hospital.name}",
            message=(
                f"The ethics submission for {target.project.name} at "
                f"{target.hospital.name} has been awaiting approval for "
                f"{days_pending} days (limit {threshold})."
            ),
            overshoot=_overshoot(days_pending, threshold),
            payload=EthicsApprovalPendingPayload(
                days_pending=days_pending,
                threshold_days=threshold,
                submitted_on=progress.ethics_submitted_date.date(),
            ),
        )


@alert_rule(AlertType.MISSING_DOCUMENTATION)
class MissingDocumentationRule(ParticipationRule):
    """Descriptive form incomplete or ethics never submitted."""

    def evaluate(
        self, target: ProjectHospital, threshold: Optional[int], now: datetime
    ) -> Optional[CandidateAlert]:
        progress = target.progress
        missing = []
        if progress is None or progress.descriptive_form_status != FormStatus.COMPLETE:
            missing.append("descriptive_form")
        if progress is None or not progress.ethics_submitted:
            missing.append("ethics_submission")

        if not missing:
            return None

        return self.candidate(
            target,
            title=f"Missing documentation at {target.hospital.name}",
            message=(
                f"{target.hospital.name} has pending documentation for "
                f"{target.project.name}: {', '.join(missing)}."
            ),
            overshoot=None,
            payload=MissingDocumentationPayload(missing_documents=missing),
        )


@alert_rule(AlertType.UPCOMING_RECRUITMENT_PERIOD)
class UpcomingRecruitmentPeriodRule(ParticipationRule):
    """A planned recruitment period starts within N days and recruiting has not begun."""

    default_threshold = 60
    threshold_unit = "days"

    def evaluate(
        self, target: ProjectHospital, threshold: Optional[int], now: datetime
    ) -> Optional[CandidateAlert]:
        if target.status == ProjectHospitalStatus.ACTIVE_RECRUITING:
            return None

        upcoming = [
            (days_between(now, period.start_date), period)
            for period in target.recruitment_periods
            if period.status == RecruitmentPeriodStatus.PLANNED
        ]
        upcoming = [(days, period) for days, period in upcoming if 0 <= days <= threshold]
        if not upcoming:
            return None

        days_until, period = min(upcoming, key=lambda item: (item[0], item[1].period_number))
        return self.candidate(
            target,
            title=f"Recruitment period {period.period_number} starts soon at {target.hospital.name}",
            message=(
                f"Recruitment period {period.period_number} of {target.project.name} "
                f"at {target.hospital.name} starts on {period.start_date.isoformat()} "
                f"({days_until} days) and the hospital is not recruiting yet."
            ),
            overshoot=_overshoot(threshold, days_until),
            payload=UpcomingRecruitmentPeriodPayload(
                period_id=period.id,
                period_number=period.period_number,
                start_date=period.start_date,
                days_until_start=days_until,
                threshold_days=threshold,
            ),
        )


@alert_rule(AlertType.NO_ACTIVITY_30_DAYS)
class NoActivityRule(BaseAlertRule[Hospital]):
    """No recorded activity for a hospital in N days."""

    default_threshold = 30
    threshold_unit = "days"

    async def load_targets(self, now: datetime) -> List[Hospital]:
        return await self.state.list_active_hospitals()

    def target_key(self, target: Hospital) -> DedupTarget:
        return (target.id, None)

    def describe(self, target: Hospital) -> str:
        return target.name

    def evaluate(
        self, target: Hospital, threshold: Optional[int], now: datetime
    ) -> Optional[CandidateAlert]:
        last_activity = target.last_activity_at or target.updated_at
        if last_activity is None:
            raise ValueError("hospital has no activity timestamp")

        days_inactive = days_between(last_activity, now)
        if days_inactive < threshold:
            return None

        return self.candidate(
            target,
            title=f"No activity at {target.name}",
            message=(
                f"{target.name} has had no recorded activity for {days_inactive} "
                f"days (limit {threshold})."
            ),
            overshoot=_overshoot(days_inactive, threshold),
            payload=NoActivityPayload(
                days_inactive=days_inactive,
                threshold_days=threshold,
                last_activity_at=last_activity,
            ),
        )


@alert_rule(AlertType.LOW_COMPLETION_RATE)
class LowCompletionRateRule(ParticipationRule):
    """Completed cases below N percent of created cases (strictly less than)."""

    default_threshold = 65
    threshold_unit = "percent"

    def evaluate(
        self, target: ProjectHospital, threshold: Optional[int], now: datetime
    ) -> Optional[CandidateAlert]:
        progress = target.progress
        if progress is None:
            return None

        created, completed = progress.cases_created, progress.cases_completed
        if created < 0 or completed < 0 or completed > created:
            raise ValueError(
                f"inconsistent case counts (created={created}, completed={completed})"
            )

        rate = completed / created * 100 if created else 0.0
        if rate >= threshold:
            return None

        return self.candidate(
            target,
            title=f"Low completion rate at {target.hospital.name}",
            message=(
                f"{target.hospital.name} has completed {rate:.1f}% of its cases for "
                f"{target.project.name} (minimum {threshold}%)."
            ),
            overshoot=_overshoot(threshold, rate),
            payload=LowCompletionRatePayload(
                completion_rate=round(rate, 2),
                threshold_percent=threshold,
                cases_created=created,
                cases_completed=completed,
            ),
        )
