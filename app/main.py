from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import settings
from app.utils.logging import get_logger
from app.routers import cron_router, main_router
from app.utils.errors import setup_error_handlers
from app.middlewares import (
    REQUEST_ID_HEADER,
    USER_ID_HEADER,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    build_counter_store,
)

# Initialize the logger
logger = get_logger()


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info(f"{settings.NAME} is starting up ({settings.ENVIRONMENT})...")
    application.state.counter_store = build_counter_store()
    yield
    logger.info(f"{settings.NAME} is shutting down...")
    await application.state.counter_store.close()


def create_application() -> FastAPI:
    """Initialize the FastAPI application with settings and lifespan events."""
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )

    # Setup error handlers
    setup_error_handlers(application)

    # Add CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", USER_ID_HEADER, REQUEST_ID_HEADER],
        expose_headers=[
            REQUEST_ID_HEADER,
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    # Add custom middlewares
    application.add_middleware(
        SecurityHeadersMiddleware, environment=settings.ENVIRONMENT
    )
    application.add_middleware(RequestIDMiddleware)

    # Routers
    application.include_router(main_router, prefix=settings.API_PREFIX, tags=["APIs"])
    application.include_router(
        cron_router, prefix=settings.CRON_PREFIX, tags=["Scheduler"]
    )

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
        log_level=None,
    )
