from .base import BaseAlertRule, CandidateAlert
from .deduplicator import AlertDeduplicator
from .engine import AlertRuleEngine, RuleEvaluationResult
from .registry import AlertRuleRegistry, alert_rule
from .scheduler import AlertScheduler, RuleRunResult, RunSummary
from .severity import DEFAULT_SEVERITY_POLICIES, SeverityPolicy

__all__ = [
    "AlertDeduplicator",
    "AlertRuleEngine",
    "AlertRuleRegistry",
    "AlertScheduler",
    "BaseAlertRule",
    "CandidateAlert",
    "DEFAULT_SEVERITY_POLICIES",
    "RuleEvaluationResult",
    "RuleRunResult",
    "RunSummary",
    "SeverityPolicy",
    "alert_rule",
]
