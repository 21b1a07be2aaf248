import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.context import set_request_id
from app.utils.logging import get_logger

REQUEST_ID_HEADER = "X-Request-ID"
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

logger = get_logger()


def _incoming_request_id(value: Optional[str]) -> str:
    # Accept upstream ids (load balancer, scheduler) when they are log-safe
    if value and _SAFE_REQUEST_ID.match(value):
        return value
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, echo it back and log the request duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _incoming_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_id(request_id)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.bind(request_id=request_id).info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f} ms)"
        )
        return response
