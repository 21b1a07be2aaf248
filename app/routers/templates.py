from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query, Request, status

from app.middlewares.auth_middleware import get_current_user, require_admin
from app.schemas.template_schemas import CreateTemplateRequest, UpdateTemplateRequest
from app.services.template_service import TemplateService, get_template_service
from app.utils.responses import ResponseBuilder

templates_router = APIRouter(dependencies=[Depends(get_current_user)])


@templates_router.get("/", summary="List communication templates")
async def list_templates(
    request: Request,
    category: Annotated[Optional[str], Query(description="Filter by category")] = None,
    active_only: Annotated[bool, Query(alias="activeOnly")] = False,
    template_service: TemplateService = Depends(get_template_service),
):
    templates = await template_service.list_templates(category, active_only)
    return ResponseBuilder.success(
        request=request,
        data=templates,
        message=f"Retrieved {len(templates)} templates",
    )


@templates_router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
    summary="Create a communication template",
    dependencies=[Depends(require_admin)],
)
async def create_template(
    request: Request,
    payload: CreateTemplateRequest,
    template_service: TemplateService = Depends(get_template_service),
):
    template = await template_service.create_template(payload)
    return ResponseBuilder.success(
        request=request,
        data=template,
        message="Template created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@templates_router.put(
    "/{template_id}",
    summary="Update a communication template",
    dependencies=[Depends(require_admin)],
)
async def update_template(
    request: Request,
    payload: UpdateTemplateRequest,
    template_id: Annotated[str, Path(description="Template ID")],
    template_service: TemplateService = Depends(get_template_service),
):
    template = await template_service.update_template(template_id, payload)
    return ResponseBuilder.success(
        request=request, data=template, message="Template updated successfully"
    )


@templates_router.delete(
    "/{template_id}",
    summary="Delete a communication template",
    dependencies=[Depends(require_admin)],
)
async def delete_template(
    request: Request,
    template_id: Annotated[str, Path(description="Template ID")],
    template_service: TemplateService = Depends(get_template_service),
):
    await template_service.delete_template(template_id)
    return ResponseBuilder.success(request=request, message="Template deleted successfully")
