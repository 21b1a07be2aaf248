from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from app.utils.context import get_request_id
from app.utils.datetime_utils import utc_now


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class PaginationMeta(BaseModel):
    """Page window of a list endpoint, serialized under ``pagination``"""

    page: int
    per_page: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None

    @classmethod
    def for_page(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        total_pages = (total + per_page - 1) // per_page if per_page else 0
        has_next = page < total_pages
        has_prev = page > 1
        return cls(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=total_pages,
            has_next=has_next,
            has_prev=has_prev,
            next_page=page + 1 if has_next else None,
            prev_page=page - 1 if has_prev else None,
        )


class ApiResponse(BaseModel):
    """
    Envelope shared by every /api/v1 endpoint.

    Error responses carry the machine-readable code in ``meta.error_code``.
    ``request_id`` matches the X-Request-ID header of the same response.
    """

    success: bool
    status: ResponseStatus
    message: str
    data: Optional[Any] = None
    meta: Optional[Dict[str, Any]] = None
    pagination: Optional[PaginationMeta] = None
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Field-level validation errors"
    )
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    request_id: Optional[str] = Field(default_factory=get_request_id)
    path: Optional[str] = None
