from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.db.models import Alert, AlertConfiguration, AlertType
from app.providers.alert_provider import AlertProvider
from app.providers.study_state_provider import StudyStateProvider
from app.utils.datetime_utils import naive_utc_now
from app.utils.errors import ConfigurationError, StorageError
from app.utils.logging import get_logger

from .base import CandidateAlert
from .deduplicator import AlertDeduplicator
from .payloads import dump_payload
from .registry import AlertRuleRegistry
from .severity import SeverityPolicy

# Registers the built-in rules
from . import rules  # noqa: F401

logger = get_logger()


@dataclass
class RuleEvaluationResult:
    alert_type: AlertType
    generated: List[Alert] = field(default_factory=list)
    skipped: List[CandidateAlert] = field(default_factory=list)
    resolved: List[Alert] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    # Rule type not evaluated at all (disabled or unconfigured)
    rule_skipped: bool = False


class AlertRuleEngine:
    """Evaluates one rule type against current state and persists new alerts."""

    def __init__(
        self,
        db_session: Session,
        alerts: Optional[AlertProvider] = None,
        state: Optional[StudyStateProvider] = None,
        severity_policies: Optional[Dict[AlertType, SeverityPolicy]] = None,
        clock: Callable[[], datetime] = naive_utc_now,
    ):
        self.db = db_session
        self.alerts = alerts or AlertProvider(db_session)
        self.state = state or StudyStateProvider(db_session)
        self.deduplicator = AlertDeduplicator(self.alerts)
        self.severity_policies = severity_policies or {}
        self.clock = clock

    async def evaluate(
        self, alert_type: AlertType, config: Optional[AlertConfiguration]
    ) -> RuleEvaluationResult:
        """
        Evaluate a rule type.

        Disabled or missing configuration skips the rule type. Configuration
        errors and per-entity evaluation errors are collected in ``errors``;
        StorageError propagates to the caller.
        """
        result = RuleEvaluationResult(alert_type=alert_type)
        log = logger.bind(alert_type=alert_type.value)

        if config is None or not config.enabled:
            result.rule_skipped = True
            log.info(f"Alert rule {alert_type.value} is disabled or unconfigured; skipped")
            return result

        try:
            rule = AlertRuleRegistry.create_rule(
                alert_type,
                self.db,
                severity_policy=self.severity_policies.get(alert_type),
                state=self.state,
            )
            threshold = rule.resolve_threshold(config.threshold_value)
        except ConfigurationError as e:
            log.error(f"Alert rule {alert_type.value} misconfigured: {e.message}")
            result.errors.append(e.message)
            return result

        now = self.clock()
        targets = await rule.load_targets(now)

        candidates: List[CandidateAlert] = []
        cleared_keys = set()
        for target in targets:
            try:
                candidate = rule.evaluate(target, threshold, now)
            except StorageError:
                raise
            except Exception as e:
                label = rule.describe(target)
                log.warning(f"Failed to evaluate {alert_type.value} for {label}: {str(e)}")
                result.errors.append(f"{label}: {str(e)}")
                continue

            if candidate is None:
                cleared_keys.add(rule.target_key(target))
            else:
                candidates.append(candidate)

        for candidate in candidates:
            await self._persist_candidate(candidate, result)

        await self._resolve_cleared(alert_type, cleared_keys, result)

        log.info(
            f"Alert rule {alert_type.value} evaluated: {len(targets)} targets, "
            f"{len(result.generated)} generated, {len(result.skipped)} skipped, "
            f"{len(result.resolved)} resolved, {len(result.errors)} errors"
        )
        return result

    async def _persist_candidate(
        self, candidate: CandidateAlert, result: RuleEvaluationResult
    ) -> None:
        if not await self.deduplicator.should_create(candidate):
            result.skipped.append(candidate)
            return

        alert = await self.alerts.create(
            alert_type=candidate.alert_type,
            title=candidate.title,
            message=candidate.message,
            severity=candidate.severity,
            hospital_id=candidate.hospital_id,
            project_id=candidate.project_id,
            metadata_json=dump_payload(candidate.payload),
        )
        if alert is None:
            # Lost an insert race against an overlapping run
            result.skipped.append(candidate)
        else:
            result.generated.append(alert)

    async def _resolve_cleared(
        self, alert_type: AlertType, cleared_keys: set, result: RuleEvaluationResult
    ) -> None:
        if not cleared_keys:
            return

        for alert in await self.alerts.list_unresolved(alert_type):
            if (alert.hospital_id, alert.project_id) in cleared_keys:
                result.resolved.append(await self.deduplicator.resolve(alert))
