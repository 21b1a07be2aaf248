from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.db.models import AlertType
from app.db.session import get_sync_session
from app.providers.alert_configuration_provider import AlertConfigurationProvider
from app.providers.alert_provider import AlertProvider
from app.providers.template_provider import TemplateProvider
from app.schemas.alert_schemas import (
    AlertConfigurationResponse,
    AlertListQueryParams,
    AlertResponse,
    AlertStatsResponse,
    UpdateAlertConfigurationRequest,
)
from app.services.alerts.payloads import load_payload
from app.services.alerts.registry import AlertRuleRegistry
from app.utils.errors import BusinessLogicError, NotFoundError
from app.utils.logging import get_logger

logger = get_logger()


class AlertService:
    """Read and resolve alerts; manage per-type alert configuration."""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.alerts = AlertProvider(db_session)
        self.configurations = AlertConfigurationProvider(db_session)
        self.templates = TemplateProvider(db_session)

    async def list_alerts(
        self, query_params: AlertListQueryParams
    ) -> Tuple[List[Dict[str, Any]], int]:
        alerts, total = await self.alerts.list_alerts(
            alert_type=query_params.type,
            severity=query_params.severity,
            is_resolved=query_params.is_resolved,
            hospital_id=query_params.hospital_id,
            project_id=query_params.project_id,
            search=query_params.search,
            page=query_params.page,
            limit=query_params.limit,
        )
        return [self._to_response(alert) for alert in alerts], total

    async def get_alert(self, alert_id: str) -> Dict[str, Any]:
        alert = await self.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found", "ALERT_NOT_FOUND")
        return self._to_response(alert)

    async def resolve_alert(self, alert_id: str, resolved_by: str) -> Dict[str, Any]:
        alert = await self.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found", "ALERT_NOT_FOUND")
        if alert.is_resolved:
            raise BusinessLogicError("Alert is already resolved", "ALERT_ALREADY_RESOLVED")

        await self.alerts.resolve(alert, resolved_by=resolved_by)
        logger.info(f"Alert {alert_id} resolved by user {resolved_by}")
        return self._to_response(alert)

    async def get_stats(self) -> Dict[str, Any]:
        stats = await self.alerts.stats()
        return AlertStatsResponse(**stats).model_dump(by_alias=True)

    async def list_configurations(self) -> List[Dict[str, Any]]:
        return [
            AlertConfigurationResponse.from_configuration(
                configuration, _threshold_unit(configuration.alert_type)
            ).model_dump(by_alias=True)
            for configuration in await self.configurations.list_all()
        ]

    async def update_configuration(
        self, alert_type: AlertType, request: UpdateAlertConfigurationRequest
    ) -> Dict[str, Any]:
        """
        Create or update the configuration of one alert type.

        The threshold is validated with the same rules the engine applies, so a
        configuration accepted here never fails at run time.
        """
        fields = request.model_dump(exclude_unset=True)

        if "threshold_value" in fields and AlertRuleRegistry.is_registered(alert_type):
            rule = AlertRuleRegistry.create_rule(alert_type, self.db)
            if rule.threshold_unit is not None and fields["threshold_value"] is not None:
                rule.resolve_threshold(fields["threshold_value"])

        template_id = fields.get("email_template_id")
        if template_id and await self.templates.get(template_id) is None:
            raise NotFoundError(f"Template {template_id} not found", "TEMPLATE_NOT_FOUND")

        configuration = await self.configurations.upsert(alert_type, **fields)
        return AlertConfigurationResponse.from_configuration(
            configuration, _threshold_unit(alert_type)
        ).model_dump(by_alias=True)

    def _to_response(self, alert) -> Dict[str, Any]:
        metadata = None
        try:
            payload = load_payload(alert.alert_metadata)
            metadata = payload.model_dump(mode="json") if payload else None
        except ValidationError as e:
            logger.warning(f"Alert {alert.id} has unreadable metadata: {str(e)}")
        return AlertResponse.from_alert(alert, metadata).model_dump(by_alias=True)


def _threshold_unit(alert_type: AlertType) -> Optional[str]:
    rule_class = AlertRuleRegistry.get_rule_class(alert_type)
    return rule_class.threshold_unit if rule_class else None


def get_alert_service(db: Session = Depends(get_sync_session)) -> AlertService:
    """Dependency to provide AlertService instance"""
    return AlertService(db)
