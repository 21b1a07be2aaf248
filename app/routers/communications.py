from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.middlewares.auth_middleware import AuthState, require_admin
from app.middlewares.rate_limit import api_rate_limit
from app.schemas.communication_schemas import SendCommunicationRequest
from app.services.communication_service import (
    CommunicationService,
    get_communication_service,
)
from app.utils.responses import ResponseBuilder

communications_router = APIRouter()


@communications_router.post(
    "/send",
    summary="Send a manual communication",
    description="Deliver a message to the given users over in-app and the requested channels.",
    dependencies=[Depends(api_rate_limit)],
)
async def send_communication(
    request: Request,
    payload: SendCommunicationRequest,
    current_user: Annotated[AuthState, Depends(require_admin)],
    service: CommunicationService = Depends(get_communication_service),
):
    result = await service.send(current_user.user_id, payload)
    return ResponseBuilder.success(
        request=request,
        data=result,
        message=(
            f"Communication delivered: {result['sent']} sent, "
            f"{result['failed']} failed, {result['skipped']} skipped"
        ),
    )
