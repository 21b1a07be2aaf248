from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.db.session import get_sync_session
from app.middlewares.auth_middleware import verify_cron_secret
from app.middlewares.rate_limit import cron_rate_limit
from app.services.alerts.scheduler import AlertScheduler
from app.utils.datetime_utils import utc_now
from app.utils.logging import get_logger

cron_router = APIRouter(dependencies=[Depends(verify_cron_secret), Depends(cron_rate_limit)])
logger = get_logger()


def get_alert_scheduler(db: Session = Depends(get_sync_session)) -> AlertScheduler:
    """Dependency to provide AlertScheduler instance"""
    return AlertScheduler(db, job_name="http_alert_generator")


@cron_router.api_route(
    "/generate-alerts",
    methods=["GET", "POST"],
    summary="Run every alert rule and dispatch the generated alerts",
)
async def generate_alerts(
    response: Response,
    scheduler: Annotated[AlertScheduler, Depends(get_alert_scheduler)],
) -> Dict[str, Any]:
    """
    Scheduler trigger for external cron services.

    Returns the run summary in a flat shape rather than the API envelope.
    A storage failure answers 503 with whatever partial results were collected.
    """
    summary = await scheduler.run_all_alert_checks()

    if summary.fatal_error:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        message = f"Alert generation aborted: {summary.fatal_error}"
    else:
        message = (
            f"Alert generation completed: {summary.total_generated} generated, "
            f"{summary.total_resolved} resolved"
        )

    return {
        "success": summary.success,
        "message": message,
        "results": summary.to_results(),
        "timestamp": utc_now().isoformat(),
    }
