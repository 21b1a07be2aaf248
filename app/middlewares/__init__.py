from .auth_middleware import (
    USER_ID_HEADER,
    AuthState,
    get_current_user,
    require_admin,
    require_role,
    verify_cron_secret,
)
from .rate_limit import (
    RateLimiter,
    RateLimitResult,
    api_rate_limit,
    build_counter_store,
    client_identifier,
    cron_rate_limit,
    get_counter_store,
    rate_limit,
)
from .request_id_middleware import REQUEST_ID_HEADER, RequestIDMiddleware
from .security_middleware import SecurityHeadersMiddleware, security_headers_for

__all__ = [
    "AuthState",
    "REQUEST_ID_HEADER",
    "RateLimitResult",
    "RateLimiter",
    "RequestIDMiddleware",
    "SecurityHeadersMiddleware",
    "USER_ID_HEADER",
    "api_rate_limit",
    "build_counter_store",
    "client_identifier",
    "cron_rate_limit",
    "get_counter_store",
    "get_current_user",
    "rate_limit",
    "require_admin",
    "require_role",
    "security_headers_for",
    "verify_cron_secret",
]
