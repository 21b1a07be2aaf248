from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from app.db.models import (
    Alert,
    AlertSeverity,
    AlertType,
    FormStatus,
    ProjectHospitalStatus,
)
from app.providers.alert_provider import AlertProvider
from app.services.alerts.engine import AlertRuleEngine
from app.services.alerts.payloads import load_payload
from app.services.alerts.registry import AlertRuleRegistry
from app.services.alerts.severity import SeverityPolicy
from app.utils.datetime_utils import naive_utc_now
from app.utils.errors import ConfigurationError


def _open_alerts(db_session, alert_type: AlertType):
    return list(
        db_session.execute(
            select(Alert).where(Alert.type == alert_type, Alert.is_resolved == False)  # noqa: E712
        ).scalars()
    )


class TestThresholdResolution:
    """Configured thresholds are validated before a rule runs."""

    def test_default_applies_when_unset(self, db_session):
        rule = AlertRuleRegistry.create_rule(AlertType.LOW_COMPLETION_RATE, db_session)
        assert rule.resolve_threshold(None) == 65

    def test_percentage_above_100_is_rejected(self, db_session):
        rule = AlertRuleRegistry.create_rule(AlertType.LOW_COMPLETION_RATE, db_session)
        with pytest.raises(ConfigurationError):
            rule.resolve_threshold(150)

    def test_negative_days_are_rejected(self, db_session):
        rule = AlertRuleRegistry.create_rule(AlertType.ETHICS_APPROVAL_PENDING, db_session)
        with pytest.raises(ConfigurationError):
            rule.resolve_threshold(-1)

    def test_rule_without_threshold_ignores_value(self, db_session):
        rule = AlertRuleRegistry.create_rule(AlertType.MISSING_DOCUMENTATION, db_session)
        assert rule.resolve_threshold(99) is None

    def test_every_alert_type_has_a_rule(self):
        assert set(AlertRuleRegistry.list_registered_types()) == set(AlertType)


class TestSeverityPolicy:
    def test_base_without_overshoot(self):
        policy = SeverityPolicy(AlertSeverity.LOW, ((2.0, AlertSeverity.HIGH),))
        assert policy.severity_for(None) == AlertSeverity.LOW

    def test_escalates_at_bound(self):
        policy = SeverityPolicy(
            AlertSeverity.LOW, ((3.0, AlertSeverity.HIGH), (2.0, AlertSeverity.MEDIUM))
        )
        assert policy.severity_for(1.9) == AlertSeverity.LOW
        assert policy.severity_for(2.0) == AlertSeverity.MEDIUM
        assert policy.severity_for(3.5) == AlertSeverity.HIGH


class TestLowCompletionRate:
    @pytest.mark.asyncio
    async def test_threshold_boundary_is_strict(
        self, db_session, make_participation, configure_alert
    ):
        """65% completion with a 65% threshold is not an alert; 64% is."""
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        at_threshold = make_participation("Hospital A", cases_created=100, cases_completed=65)
        below = make_participation("Hospital B", cases_created=100, cases_completed=64)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.LOW_COMPLETION_RATE, configuration
        )

        assert result.errors == []
        assert [a.hospital_id for a in result.generated] == [below.hospital_id]
        assert at_threshold.hospital_id not in {a.hospital_id for a in result.generated}

        payload = load_payload(result.generated[0].alert_metadata)
        assert payload.completion_rate == 64.0
        assert payload.threshold_percent == 65

    @pytest.mark.asyncio
    async def test_no_cases_counts_as_zero_percent(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        make_participation(cases_created=0, cases_completed=0)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.LOW_COMPLETION_RATE, configuration
        )

        assert len(result.generated) == 1
        assert result.generated[0].severity == AlertSeverity.HIGH

    @pytest.mark.asyncio
    async def test_inconsistent_counts_are_reported_per_target(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        make_participation("Broken Hospital", cases_created=5, cases_completed=9)
        make_participation("Healthy Hospital", cases_created=10, cases_completed=1)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.LOW_COMPLETION_RATE, configuration
        )

        assert len(result.errors) == 1
        assert result.errors[0].startswith("Broken Hospital / EPIC-Q Sepsis:")
        assert len(result.generated) == 1


class TestEthicsApprovalPending:
    @pytest.mark.asyncio
    async def test_alerts_after_threshold_days(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.ETHICS_APPROVAL_PENDING, threshold_value=30)
        make_participation("Recent", ethics_submitted_days_ago=29, ethics_approved=False)
        late = make_participation("Late", ethics_submitted_days_ago=30, ethics_approved=False)
        make_participation("Approved", ethics_submitted_days_ago=90, ethics_approved=True)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.ETHICS_APPROVAL_PENDING, configuration
        )

        assert [a.hospital_id for a in result.generated] == [late.hospital_id]
        assert result.generated[0].severity == AlertSeverity.HIGH

    @pytest.mark.asyncio
    async def test_escalates_to_critical_at_double_threshold(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.ETHICS_APPROVAL_PENDING, threshold_value=30)
        make_participation(ethics_submitted_days_ago=61, ethics_approved=False)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.ETHICS_APPROVAL_PENDING, configuration
        )

        assert result.generated[0].severity == AlertSeverity.CRITICAL


class TestMissingDocumentation:
    @pytest.mark.asyncio
    async def test_lists_missing_documents(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.MISSING_DOCUMENTATION)
        make_participation(
            form_status=FormStatus.PARTIAL,
            ethics_submitted_days_ago=None,
            ethics_approved=False,
        )

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.MISSING_DOCUMENTATION, configuration
        )

        payload = load_payload(result.generated[0].alert_metadata)
        assert payload.missing_documents == ["descriptive_form", "ethics_submission"]
        assert result.generated[0].severity == AlertSeverity.MEDIUM

    @pytest.mark.asyncio
    async def test_closed_participations_are_ignored(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.MISSING_DOCUMENTATION)
        make_participation(
            status=ProjectHospitalStatus.COMPLETED, form_status=FormStatus.PENDING
        )

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.MISSING_DOCUMENTATION, configuration
        )

        assert result.generated == []


class TestUpcomingRecruitmentPeriod:
    @pytest.mark.asyncio
    async def test_alerts_for_period_inside_window(
        self, db_session, make_participation, add_recruitment_period, configure_alert
    ):
        configuration = configure_alert(
            AlertType.UPCOMING_RECRUITMENT_PERIOD, threshold_value=60
        )
        soon = make_participation("Soon")
        add_recruitment_period(soon, starts_in_days=20, number=1)
        add_recruitment_period(soon, starts_in_days=50, number=2)
        far = make_participation("Far")
        add_recruitment_period(far, starts_in_days=90)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.UPCOMING_RECRUITMENT_PERIOD, configuration
        )

        assert [a.hospital_id for a in result.generated] == [soon.hospital_id]
        payload = load_payload(result.generated[0].alert_metadata)
        assert payload.period_number == 1
        assert payload.days_until_start == 20

    @pytest.mark.asyncio
    async def test_recruiting_hospitals_are_skipped(
        self, db_session, make_participation, add_recruitment_period, configure_alert
    ):
        configuration = configure_alert(
            AlertType.UPCOMING_RECRUITMENT_PERIOD, threshold_value=60
        )
        link = make_participation(status=ProjectHospitalStatus.ACTIVE_RECRUITING)
        add_recruitment_period(link, starts_in_days=5)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.UPCOMING_RECRUITMENT_PERIOD, configuration
        )

        assert result.generated == []


class TestNoActivity:
    @pytest.mark.asyncio
    async def test_keys_alert_on_hospital_only(
        self, db_session, make_hospital, configure_alert
    ):
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS, threshold_value=30)
        idle = make_hospital("Idle Hospital", inactive_days=95)
        make_hospital("Busy Hospital", inactive_days=3)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.NO_ACTIVITY_30_DAYS, configuration
        )

        assert len(result.generated) == 1
        alert = result.generated[0]
        assert (alert.hospital_id, alert.project_id) == (idle.id, None)
        assert alert.severity == AlertSeverity.HIGH


class TestEngineLifecycle:
    """Deduplication, resolution and configuration handling."""

    @pytest.mark.asyncio
    async def test_second_run_skips_open_alert(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        make_participation(cases_created=10, cases_completed=1)
        engine = AlertRuleEngine(db_session)

        first = await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)
        second = await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        assert len(first.generated) == 1
        assert second.generated == []
        assert len(second.skipped) == 1
        assert len(_open_alerts(db_session, AlertType.LOW_COMPLETION_RATE)) == 1

    @pytest.mark.asyncio
    async def test_unique_index_turns_racing_insert_into_skip(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        make_participation(cases_created=10, cases_completed=1)
        engine = AlertRuleEngine(db_session)
        await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        # A concurrent run that read before the first insert committed
        with patch.object(
            engine.deduplicator, "should_create", AsyncMock(return_value=True)
        ):
            racing = await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        assert racing.generated == []
        assert len(racing.skipped) == 1
        assert racing.errors == []
        assert len(_open_alerts(db_session, AlertType.LOW_COMPLETION_RATE)) == 1

    @pytest.mark.asyncio
    async def test_unique_index_only_covers_open_alerts(self, db_session, make_hospital):
        hospital = make_hospital()
        alerts = AlertProvider(db_session)
        fields = dict(
            alert_type=AlertType.NO_ACTIVITY_30_DAYS,
            title="No activity",
            message="Idle",
            severity=AlertSeverity.LOW,
            hospital_id=hospital.id,
            project_id=None,
            metadata_json=None,
        )

        first = await alerts.create(**fields)
        duplicate = await alerts.create(**fields)
        await alerts.resolve(first)
        reopened = await alerts.create(**fields)

        assert first is not None
        assert duplicate is None
        assert reopened is not None and reopened.id != first.id

    @pytest.mark.asyncio
    async def test_alert_resolves_when_condition_clears(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        link = make_participation(cases_created=10, cases_completed=1)
        engine = AlertRuleEngine(db_session)
        first = await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        link.progress.cases_completed = 9
        db_session.commit()
        second = await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        assert second.generated == []
        assert [a.id for a in second.resolved] == [first.generated[0].id]
        assert second.resolved[0].resolved_at is not None
        assert second.resolved[0].resolved_by is None
        assert _open_alerts(db_session, AlertType.LOW_COMPLETION_RATE) == []

    @pytest.mark.asyncio
    async def test_new_alert_after_resolution(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        link = make_participation(cases_created=10, cases_completed=1)
        engine = AlertRuleEngine(db_session)
        await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)
        link.progress.cases_completed = 9
        db_session.commit()
        await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        link.progress.cases_completed = 2
        db_session.commit()
        third = await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        assert len(third.generated) == 1
        total = db_session.execute(select(func.count(Alert.id))).scalar_one()
        assert total == 2

    @pytest.mark.asyncio
    async def test_errored_target_keeps_its_open_alert(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=65)
        link = make_participation(cases_created=10, cases_completed=1)
        engine = AlertRuleEngine(db_session)
        await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        link.progress.cases_completed = 50
        db_session.commit()
        result = await engine.evaluate(AlertType.LOW_COMPLETION_RATE, configuration)

        assert len(result.errors) == 1
        assert result.resolved == []
        assert len(_open_alerts(db_session, AlertType.LOW_COMPLETION_RATE)) == 1

    @pytest.mark.asyncio
    async def test_disabled_rule_is_skipped(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(
            AlertType.LOW_COMPLETION_RATE, enabled=False, threshold_value=65
        )
        make_participation(cases_created=10, cases_completed=0)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.LOW_COMPLETION_RATE, configuration
        )

        assert result.rule_skipped is True
        assert result.generated == [] and result.errors == []

    @pytest.mark.asyncio
    async def test_missing_configuration_is_skipped(self, db_session, make_participation):
        make_participation(cases_created=10, cases_completed=0)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.LOW_COMPLETION_RATE, None
        )

        assert result.rule_skipped is True

    @pytest.mark.asyncio
    async def test_invalid_threshold_is_recorded(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.LOW_COMPLETION_RATE, threshold_value=150)
        make_participation(cases_created=10, cases_completed=0)

        result = await AlertRuleEngine(db_session).evaluate(
            AlertType.LOW_COMPLETION_RATE, configuration
        )

        assert result.generated == []
        assert len(result.errors) == 1
        assert "at most 100" in result.errors[0]

    @pytest.mark.asyncio
    async def test_injected_clock_drives_evaluation(
        self, db_session, make_participation, configure_alert
    ):
        configuration = configure_alert(AlertType.ETHICS_APPROVAL_PENDING, threshold_value=30)
        make_participation(ethics_submitted_days_ago=10, ethics_approved=False)

        def future() -> datetime:
            return naive_utc_now() + timedelta(days=25)

        result = await AlertRuleEngine(db_session, clock=future).evaluate(
            AlertType.ETHICS_APPROVAL_PENDING, configuration
        )

        assert len(result.generated) == 1
