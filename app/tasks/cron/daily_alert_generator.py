import asyncio
from typing import Any, Dict

from app.celery import celery
from app.db.session import get_sync_session
from app.services.alerts.scheduler import AlertScheduler
from app.utils.context import set_request_id
from app.utils.errors import StorageError
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def daily_alert_generator_task(self, request_id: str):
    """
    Daily task that evaluates every alert rule and dispatches new alerts.

    Runs once a day from Celery beat to:
    1. Evaluate each enabled alert rule type against current study data
    2. Persist alerts that are not already open for the same target
    3. Resolve open alerts whose condition has cleared
    4. Fan each new alert out to admins and coordinators over in-app, email and push

    A data store outage leaves the run incomplete, so the task is retried.

    Args:
        request_id: Request ID for tracking purposes
    """
    result = asyncio.run(_async_daily_alert_generator(request_id))

    if result.get("fatal_error"):
        raise self.retry(exc=StorageError(result["fatal_error"]))
    return result


async def _async_daily_alert_generator(request_id: str) -> Dict[str, Any]:
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    for db_session in get_sync_session():
        summary = await AlertScheduler(db_session).run_all_alert_checks()

        logger.info(
            f"Daily alert generator finished with status {summary.status}: "
            f"{summary.total_generated} generated, {summary.total_errors} errors"
        )
        return {
            "success": summary.success,
            "status": summary.status,
            "fatal_error": summary.fatal_error,
            "results": summary.to_results(),
            "request_id": request_id,
        }

    return {"success": False, "fatal_error": "No database session", "request_id": request_id}
