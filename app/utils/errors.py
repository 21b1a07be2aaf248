from typing import Dict, Optional, Tuple, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class AppError(Exception):
    """Base for errors that carry a message and a machine-readable code."""

    default_code = "APP_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code


class DatabaseError(AppError):
    default_code = "DB_ERROR"


class StorageError(DatabaseError):
    """The data store is unreachable. Fatal for the current alert run."""

    default_code = "STORAGE_UNAVAILABLE"


class BusinessLogicError(AppError):
    default_code = "BLOC_ERROR"


class ConfigurationError(BusinessLogicError):
    """An alert configuration row cannot be used (e.g. malformed threshold)."""

    default_code = "ALERT_CONFIGURATION_ERROR"


class RecipientResolutionError(BusinessLogicError):
    """A manual communication has no recipient that can be resolved."""

    default_code = "NO_RECIPIENTS"


class AuthenticationError(AppError):
    default_code = "AUTH_ERROR"

    def __init__(
        self, message: str = "Authentication failed", error_code: Optional[str] = None
    ):
        super().__init__(message, error_code)


class AuthorizationError(AppError):
    default_code = "AUTHZ_ERROR"

    def __init__(
        self, message: str = "Access denied", error_code: Optional[str] = None
    ):
        super().__init__(message, error_code)


class NotFoundError(AppError):
    default_code = "NOT_FOUND"

    def __init__(
        self, message: str = "Resource not found", error_code: Optional[str] = None
    ):
        super().__init__(message, error_code)


class RateLimitExceededError(AppError):
    """Raised when a client goes over its request allowance for the current window."""

    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, limit: int, retry_after: int, message: str = "Too many requests"):
        super().__init__(message)
        self.limit = limit
        self.retry_after = retry_after


class ChannelDeliveryError(AppError):
    """A single channel send failed. Always downgraded to a recorded outcome."""

    default_code = "CHANNEL_DELIVERY_FAILED"


class EmailRejectedError(ChannelDeliveryError):
    """The email provider refused the message (invalid address, quota)."""

    default_code = "EMAIL_REJECTED"


class StaleSubscriptionError(ChannelDeliveryError):
    """The push service reported the endpoint as gone (404/410)."""

    default_code = "PUSH_SUBSCRIPTION_STALE"


# Exception class -> (HTTP status, meta.error_type)
_APP_ERROR_RESPONSES: Dict[Type[AppError], Tuple[int, str]] = {
    BusinessLogicError: (status.HTTP_400_BAD_REQUEST, "BUSINESS_ERROR"),
    AuthenticationError: (status.HTTP_401_UNAUTHORIZED, "AUTHENTICATION_ERROR"),
    AuthorizationError: (status.HTTP_403_FORBIDDEN, "AUTHORIZATION_ERROR"),
    NotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND_ERROR"),
    DatabaseError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR"),
    StorageError: (status.HTTP_503_SERVICE_UNAVAILABLE, "STORAGE_ERROR"),
    ChannelDeliveryError: (status.HTTP_502_BAD_GATEWAY, "DELIVERY_ERROR"),
}


def setup_error_handlers(app: FastAPI):
    """Register the envelope-producing handlers on the application."""

    async def app_error_handler(request: Request, exc: AppError):
        status_code, error_type = _lookup(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(f"{type(exc).__name__} on {request.url.path}: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status_code,
            meta={"error_type": error_type},
        )

    for error_class in _APP_ERROR_RESPONSES:
        app.add_exception_handler(error_class, app_error_handler)

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exception_handler(
        request: Request, exc: RateLimitExceededError
    ):
        logger.warning(f"Rate limit exceeded on {request.url.path}")

        response = ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            meta={"error_type": "RATE_LIMIT_ERROR", "retry_after": exc.retry_after},
        )
        response.headers["Retry-After"] = str(exc.retry_after)
        response.headers["X-RateLimit-Limit"] = str(exc.limit)
        response.headers["X-RateLimit-Remaining"] = "0"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
            meta={"http_status": exc.status_code},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.warning(f"Request validation failed on {request.url.path}: {exc.errors()}")

        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=[
                {
                    "field": " -> ".join(str(loc) for loc in error["loc"]),
                    "message": error["msg"],
                    "type": error["type"],
                }
                for error in exc.errors()
            ],
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_exception_handler(
        request: Request, exc: ValidationError
    ):
        logger.error(f"Response model validation failed: {exc.errors()}")

        return ResponseBuilder.error(
            request=request,
            message="Data validation failed",
            error_code="INTERNAL_VALIDATION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.opt(exception=exc).error("Unhandled database error")

        # Driver messages stay in the logs
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "SQLALCHEMY_ERROR"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.warning(f"Value Error: {str(exc)}")

        return ResponseBuilder.error(
            request=request,
            message=str(exc),
            error_code="VALUE_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            meta={"error_type": "VALUE_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"Unhandled exception on {request.url.path}")

        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "INTERNAL_ERROR"},
        )


def _lookup(exc: AppError) -> Tuple[int, str]:
    for error_class in type(exc).__mro__:
        if error_class in _APP_ERROR_RESPONSES:
            return _APP_ERROR_RESPONSES[error_class]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"
