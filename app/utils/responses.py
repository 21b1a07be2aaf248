from typing import Any, Dict, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.schemas.response_schemas import ApiResponse, PaginationMeta, ResponseStatus


def _envelope(request: Request, status_code: int, **fields: Any) -> JSONResponse:
    response = ApiResponse(path=str(request.url.path), **fields)
    # Middleware-assigned id wins over the context default
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        response.request_id = request_id
    return JSONResponse(
        status_code=status_code, content=response.model_dump(exclude_none=True)
    )


class ResponseBuilder:
    """Builds the ApiResponse envelope for success, error and paginated results"""

    @staticmethod
    def success(
        request: Request,
        data: Any = None,
        message: str = "Request successful",
        meta: Optional[Dict[str, Any]] = None,
        pagination: Optional[PaginationMeta] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        return _envelope(
            request,
            status_code,
            success=True,
            status=ResponseStatus.SUCCESS,
            message=message,
            data=data,
            meta=meta,
            pagination=pagination,
        )

    @staticmethod
    def error(
        request: Request,
        message: str = "An error occurred",
        errors: Optional[List[Dict[str, Any]]] = None,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        data: Any = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        response_meta = dict(meta or {})
        if error_code:
            response_meta["error_code"] = error_code

        return _envelope(
            request,
            status_code,
            success=False,
            status=ResponseStatus.ERROR,
            message=message,
            data=data,
            meta=response_meta or None,
            errors=errors,
        )

    @staticmethod
    def paginated(
        request: Request,
        data: List[Any],
        page: int,
        per_page: int,
        total: int,
        message: str = "Data retrieved successfully",
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        return ResponseBuilder.success(
            request=request,
            data=data,
            message=message,
            meta=meta,
            pagination=PaginationMeta.for_page(page, per_page, total),
        )
