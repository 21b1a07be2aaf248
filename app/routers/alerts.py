from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, status

from app.db.models import AlertType
from app.middlewares.auth_middleware import AuthState, get_current_user, require_admin
from app.schemas.alert_schemas import (
    AlertListQueryParams,
    UpdateAlertConfigurationRequest,
)
from app.services.alert_service import AlertService, get_alert_service
from app.utils.responses import ResponseBuilder

alerts_router = APIRouter(dependencies=[Depends(get_current_user)])


@alerts_router.get(
    "/",
    summary="List alerts",
    description="Paginated alert list filtered by type, status, severity, hospital, project or free text.",
)
async def list_alerts(
    request: Request,
    query_params: Annotated[AlertListQueryParams, Depends()],
    alert_service: AlertService = Depends(get_alert_service),
):
    alerts, total = await alert_service.list_alerts(query_params)
    return ResponseBuilder.paginated(
        request=request,
        data=alerts,
        page=query_params.page,
        per_page=query_params.limit,
        total=total,
        message=f"Retrieved {len(alerts)} alerts",
    )


@alerts_router.get("/stats", summary="Alert counts by status, severity and type")
async def get_alert_stats(
    request: Request, alert_service: AlertService = Depends(get_alert_service)
):
    return ResponseBuilder.success(
        request=request,
        data=await alert_service.get_stats(),
        message="Alert statistics retrieved",
    )


@alerts_router.get("/configurations", summary="List alert rule configurations")
async def list_alert_configurations(
    request: Request, alert_service: AlertService = Depends(get_alert_service)
):
    configurations = await alert_service.list_configurations()
    return ResponseBuilder.success(
        request=request,
        data=configurations,
        message=f"Retrieved {len(configurations)} alert configurations",
    )


@alerts_router.put(
    "/configurations/{alert_type}",
    summary="Create or update the configuration of one alert type",
    dependencies=[Depends(require_admin)],
)
async def update_alert_configuration(
    request: Request,
    alert_type: Annotated[AlertType, Path(description="Alert rule type")],
    payload: UpdateAlertConfigurationRequest,
    alert_service: AlertService = Depends(get_alert_service),
):
    configuration = await alert_service.update_configuration(alert_type, payload)
    return ResponseBuilder.success(
        request=request,
        data=configuration,
        message=f"Configuration for {alert_type.value} saved",
    )


@alerts_router.get("/{alert_id}", summary="Get a single alert")
async def get_alert(
    request: Request,
    alert_id: Annotated[str, Path(description="Alert ID")],
    alert_service: AlertService = Depends(get_alert_service),
):
    return ResponseBuilder.success(
        request=request,
        data=await alert_service.get_alert(alert_id),
        message="Alert retrieved",
    )


@alerts_router.patch(
    "/{alert_id}/resolve",
    status_code=status.HTTP_200_OK,
    summary="Resolve an alert",
)
async def resolve_alert(
    request: Request,
    alert_id: Annotated[str, Path(description="Alert ID")],
    current_user: Annotated[AuthState, Depends(get_current_user)],
    alert_service: AlertService = Depends(get_alert_service),
):
    alert = await alert_service.resolve_alert(alert_id, resolved_by=current_user.user_id)
    return ResponseBuilder.success(
        request=request, data=alert, message="Alert resolved"
    )
