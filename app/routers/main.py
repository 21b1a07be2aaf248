from fastapi import APIRouter

from app.routers.alerts import alerts_router
from app.routers.communications import communications_router
from app.routers.health import health_router
from app.routers.notifications import notifications_router
from app.routers.templates import templates_router

main_router = APIRouter()

# Include domain-based routers
main_router.include_router(alerts_router, prefix="/alerts", tags=["Alerts"])
main_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notifications"]
)
main_router.include_router(
    communications_router, prefix="/communications", tags=["Communications"]
)
main_router.include_router(templates_router, prefix="/templates", tags=["Templates"])
main_router.include_router(health_router, prefix="/health", tags=["Health Checks"])
