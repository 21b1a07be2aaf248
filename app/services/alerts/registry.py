from typing import Callable, Dict, List, Optional, Type

from sqlalchemy.orm import Session

from app.db.models import AlertType
from app.utils.errors import ConfigurationError
from app.utils.logging import get_logger

from .base import BaseAlertRule
from .severity import DEFAULT_SEVERITY_POLICIES, SeverityPolicy

logger = get_logger()


class AlertRuleRegistry:
    """Registry mapping alert types to rule classes"""

    _rules: Dict[AlertType, Type[BaseAlertRule]] = {}

    @classmethod
    def create_rule(
        cls,
        alert_type: AlertType,
        db_session: Session,
        severity_policy: Optional[SeverityPolicy] = None,
        state=None,
    ) -> BaseAlertRule:
        """Create rule instance for an alert type"""
        rule_class = cls._rules.get(alert_type)
        if rule_class is None:
            raise ConfigurationError(f"No rule registered for alert type: {alert_type.value}")

        policy = severity_policy or DEFAULT_SEVERITY_POLICIES[alert_type]
        return rule_class(db_session, policy, state=state)

    @classmethod
    def register_rule(cls, alert_type: AlertType, rule_class: Type[BaseAlertRule]):
        """Register a rule class for an alert type"""
        rule_class.alert_type = alert_type
        cls._rules[alert_type] = rule_class
        logger.debug(f"Registered alert rule for {alert_type.value}: {rule_class.__name__}")

    @classmethod
    def list_registered_types(cls) -> List[AlertType]:
        """List all registered alert types"""
        return list(cls._rules.keys())

    @classmethod
    def get_rule_class(cls, alert_type: AlertType) -> Optional[Type[BaseAlertRule]]:
        return cls._rules.get(alert_type)

    @classmethod
    def is_registered(cls, alert_type: AlertType) -> bool:
        return alert_type in cls._rules


def alert_rule(alert_type: AlertType) -> Callable[[Type[BaseAlertRule]], Type[BaseAlertRule]]:
    """Class decorator registering an alert rule for ``alert_type``."""

    def decorator(rule_class: Type[BaseAlertRule]) -> Type[BaseAlertRule]:
        AlertRuleRegistry.register_rule(alert_type, rule_class)
        return rule_class

    return decorator
