import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import Alert, AlertConfiguration, AlertType
from app.providers.alert_configuration_provider import AlertConfigurationProvider
from app.providers.cron_report_provider import CronReportProvider
from app.services.notifications.contracts import DispatchMessage
from app.services.notifications.dispatcher import DispatchOrchestrator
from app.services.notifications.factory import build_dispatch_orchestrator
from app.utils.datetime_utils import naive_utc_now
from app.utils.errors import StorageError
from app.utils.logging import get_logger

from .engine import AlertRuleEngine
from .payloads import load_payload
from .registry import AlertRuleRegistry

logger = get_logger()

DEFAULT_JOB_NAME = "daily_alert_generator"


@dataclass
class RuleRunResult:
    alert_type: AlertType
    generated: int = 0
    skipped: int = 0
    resolved: int = 0
    errors: List[str] = field(default_factory=list)
    rule_skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alertType": self.alert_type.value,
            "generated": self.generated,
            "skipped": self.skipped,
            "resolved": self.resolved,
            "errors": len(self.errors),
            "errorMessages": list(self.errors),
            "ruleSkipped": self.rule_skipped,
        }


@dataclass
class RunSummary:
    per_rule_type: List[RuleRunResult] = field(default_factory=list)
    fatal_error: Optional[str] = None

    @property
    def total_generated(self) -> int:
        return sum(r.generated for r in self.per_rule_type)

    @property
    def total_skipped(self) -> int:
        return sum(r.skipped for r in self.per_rule_type)

    @property
    def total_resolved(self) -> int:
        return sum(r.resolved for r in self.per_rule_type)

    @property
    def total_errors(self) -> int:
        return sum(len(r.errors) for r in self.per_rule_type)

    @property
    def success(self) -> bool:
        return self.fatal_error is None

    @property
    def status(self) -> str:
        if self.fatal_error:
            return "FAILED"
        return "PARTIAL" if self.total_errors else "SUCCESS"

    def to_results(self) -> Dict[str, Any]:
        return {
            "totalGenerated": self.total_generated,
            "totalSkipped": self.total_skipped,
            "totalErrors": self.total_errors,
            "totalResolved": self.total_resolved,
            "details": [r.to_dict() for r in self.per_rule_type],
        }


class AlertScheduler:
    """
    Runs every registered alert rule type once and dispatches what they generate.

    Rule types run concurrently. A failure in one rule type is recorded as an
    error for that type only. A storage failure marks the run fatal but a
    summary is still returned.
    """

    def __init__(
        self,
        db_session: Session,
        dispatcher: Optional[DispatchOrchestrator] = None,
        engine: Optional[AlertRuleEngine] = None,
        configurations: Optional[AlertConfigurationProvider] = None,
        rule_types: Optional[List[AlertType]] = None,
        job_name: str = DEFAULT_JOB_NAME,
    ):
        self.db = db_session
        self.dispatcher = dispatcher or build_dispatch_orchestrator(db_session)
        self.engine = engine or AlertRuleEngine(db_session)
        self.configurations = configurations or AlertConfigurationProvider(db_session)
        self.rule_types = rule_types
        self.job_name = job_name

    async def run_all_alert_checks(self) -> RunSummary:
        run_at = naive_utc_now()
        rule_types = self.rule_types or AlertRuleRegistry.list_registered_types()
        logger.info(f"Alert run started for {len(rule_types)} rule types")

        outcomes = await asyncio.gather(
            *(self._run_rule_type(alert_type) for alert_type in rule_types),
            return_exceptions=True,
        )

        summary = RunSummary()
        for alert_type, outcome in zip(rule_types, outcomes):
            if isinstance(outcome, StorageError):
                summary.fatal_error = summary.fatal_error or outcome.message
                summary.per_rule_type.append(
                    RuleRunResult(alert_type=alert_type, errors=[outcome.message])
                )
            elif isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.opt(exception=outcome).error(
                    f"Alert rule {alert_type.value} failed unexpectedly: {str(outcome)}"
                )
                summary.per_rule_type.append(
                    RuleRunResult(alert_type=alert_type, errors=[str(outcome)])
                )
            else:
                summary.per_rule_type.append(outcome)

        log_fn = logger.error if summary.fatal_error else logger.info
        log_fn(
            f"Alert run finished ({summary.status}): {summary.total_generated} generated, "
            f"{summary.total_skipped} skipped, {summary.total_resolved} resolved, "
            f"{summary.total_errors} errors"
        )

        await self._record_run(run_at, summary)
        return summary

    async def _run_rule_type(self, alert_type: AlertType) -> RuleRunResult:
        config = await self.configurations.get(alert_type)
        evaluation = await self.engine.evaluate(alert_type, config)

        result = RuleRunResult(
            alert_type=alert_type,
            generated=len(evaluation.generated),
            skipped=len(evaluation.skipped),
            resolved=len(evaluation.resolved),
            errors=list(evaluation.errors),
            rule_skipped=evaluation.rule_skipped,
        )

        for alert in evaluation.generated:
            error = await self._dispatch_alert(alert, config)
            if error:
                result.errors.append(error)
        return result

    async def _dispatch_alert(
        self, alert: Alert, config: Optional[AlertConfiguration]
    ) -> Optional[str]:
        """Dispatch one generated alert; returns an error message on failure."""
        try:
            payload = load_payload(alert.alert_metadata)
            metadata = payload.model_dump(mode="json") if payload else None
            await self.dispatcher.dispatch(DispatchMessage.for_alert(alert, metadata), config)
        except StorageError:
            raise
        except Exception as e:
            logger.exception(f"Dispatch of alert {alert.id} failed: {str(e)}")
            return f"dispatch {alert.id}: {str(e)}"
        return None

    async def _record_run(self, run_at, summary: RunSummary) -> None:
        # Best effort: the summary is returned even when the audit row cannot be written
        try:
            await CronReportProvider(self.db).create(
                job_name=self.job_name,
                run_at=run_at,
                status=summary.status,
                message=summary.fatal_error
                or f"{summary.total_generated} alerts generated",
                details=summary.to_results(),
            )
        except StorageError as e:
            logger.warning(f"Could not record cron report for {self.job_name}: {e.message}")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Could not record cron report for {self.job_name}: {str(e)}")
