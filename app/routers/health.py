from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.session import get_sync_session
from app.utils.logging import get_logger
from app.utils.responses import ResponseBuilder

health_router = APIRouter()
logger = get_logger()


@health_router.get("/")
async def health_check(request: Request, db: Session = Depends(get_sync_session)):
    """
    Basic health check endpoint

    Returns application status and whether the database answers
    """
    try:
        db.execute(text("SELECT 1"))
        database = "up"
    except SQLAlchemyError as e:
        logger.warning(f"Health check could not reach the database: {str(e)}")
        database = "down"

    data = {
        "status": "healthy" if database == "up" else "degraded",
        "service": settings.NAME,
        "version": settings.VERSION,
        "database": database,
    }
    if database == "up":
        return ResponseBuilder.success(request=request, data=data, message="Service is running")
    return ResponseBuilder.error(
        request=request,
        message="Service is degraded",
        data=data,
        error_code="DATABASE_UNAVAILABLE",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )
