from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from app.middlewares.auth_middleware import AuthState, get_current_user
from app.schemas.notification_schemas import (
    NotificationListQueryParams,
    SubscribeRequest,
    UnsubscribeRequest,
)
from app.services.notifications.push_subscription_service import (
    PushSubscriptionService,
    get_push_subscription_service,
)
from app.services.notifications.user_notification_service import (
    UserNotificationService,
    get_user_notification_service,
)
from app.utils.responses import ResponseBuilder

notifications_router = APIRouter()


@notifications_router.get("/", summary="List the current user's notifications")
async def get_notifications(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    query_params: Annotated[NotificationListQueryParams, Depends()],
    service: UserNotificationService = Depends(get_user_notification_service),
):
    """
    Get notifications for the current user, newest first.

    Supports unread-only and type filters with limit/offset pagination.
    """
    notifications = await service.get_user_notifications(current_user.user_id, query_params)
    unread_count = await service.get_unread_count(current_user.user_id)

    return ResponseBuilder.success(
        request=request,
        data={
            "notifications": notifications,
            "unreadCount": unread_count,
            "limit": query_params.limit,
            "offset": query_params.offset,
            "hasMore": len(notifications) == query_params.limit,
        },
        message=f"Retrieved {len(notifications)} notifications",
    )


@notifications_router.get("/count", summary="Unread notification count")
async def get_unread_count(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    service: UserNotificationService = Depends(get_user_notification_service),
):
    unread_count = await service.get_unread_count(current_user.user_id)
    return ResponseBuilder.success(
        request=request,
        data={"unreadCount": unread_count},
        message="Unread count retrieved",
    )


@notifications_router.patch("/read-all", summary="Mark all notifications as read")
async def mark_all_notifications_as_read(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    service: UserNotificationService = Depends(get_user_notification_service),
):
    updated_count = await service.mark_all_as_read(current_user.user_id)
    return ResponseBuilder.success(
        request=request,
        data={"allAsReadCount": updated_count},
        message=f"Marked {updated_count} notifications as read",
    )


@notifications_router.patch("/{notification_id}/read", summary="Mark one notification as read")
async def mark_notification_as_read(
    request: Request,
    notification_id: str,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    service: UserNotificationService = Depends(get_user_notification_service),
):
    await service.mark_notification_as_read(current_user.user_id, notification_id)
    unread_count = await service.get_unread_count(current_user.user_id)
    return ResponseBuilder.success(
        request=request,
        data={"unreadCount": unread_count},
        message="Notification marked as read",
    )


@notifications_router.post(
    "/subscribe",
    status_code=status.HTTP_201_CREATED,
    summary="Register a browser push subscription",
)
async def subscribe(
    request: Request,
    payload: SubscribeRequest,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    service: PushSubscriptionService = Depends(get_push_subscription_service),
):
    subscription = await service.subscribe(
        current_user.user_id, payload, user_agent=request.headers.get("user-agent")
    )
    return ResponseBuilder.success(
        request=request,
        data=subscription,
        message="Push subscription saved",
        status_code=status.HTTP_201_CREATED,
    )


@notifications_router.delete("/subscribe", summary="Remove a browser push subscription")
async def unsubscribe(
    request: Request,
    payload: UnsubscribeRequest,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    service: PushSubscriptionService = Depends(get_push_subscription_service),
):
    await service.unsubscribe(current_user.user_id, payload.endpoint)
    return ResponseBuilder.success(request=request, message="Push subscription removed")


@notifications_router.get("/vapid-public-key", summary="Public VAPID key for browser subscription")
async def get_vapid_public_key(request: Request):
    return ResponseBuilder.success(
        request=request,
        data={"publicKey": PushSubscriptionService.vapid_public_key()},
        message="VAPID public key retrieved",
    )
