from typing import Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# JSON API only: nothing here is meant to be framed or to load sub-resources
_BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}

_PRODUCTION_HEADERS = {
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Cross-Origin-Resource-Policy": "same-origin",
}

_DEVELOPMENT_HEADERS = {
    "X-Frame-Options": "SAMEORIGIN",
    # Swagger UI pulls its assets from a CDN
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; img-src 'self' data: https:"
    ),
}


def security_headers_for(environment: str) -> Dict[str, str]:
    profile = _DEVELOPMENT_HEADERS if environment == "development" else _PRODUCTION_HEADERS
    return {**_BASE_HEADERS, **profile}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        environment: str = "production",
        custom_headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(app)
        self.headers = {**security_headers_for(environment), **(custom_headers or {})}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for header_name, header_value in self.headers.items():
            response.headers.setdefault(header_name, header_value)
        return response
