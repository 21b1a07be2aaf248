from sqlalchemy.orm import Session

from app.config.settings import Settings, settings as default_settings
from app.utils.logging import get_logger

from .channels import (
    EmailChannel,
    HttpEmailSender,
    InAppChannel,
    NullEmailSender,
    NullPushSender,
    PushChannel,
    VapidConfig,
    WebPushSender,
)
from .dispatcher import DispatchOrchestrator

logger = get_logger()


def build_email_sender(settings: Settings):
    if not settings.EMAIL_API_KEY:
        return NullEmailSender()
    return HttpEmailSender(
        api_key=settings.EMAIL_API_KEY,
        from_address=settings.EMAIL_FROM_ADDRESS,
        from_name=settings.EMAIL_FROM_NAME,
        base_url=settings.EMAIL_API_BASE_URL,
        timeout_seconds=settings.NOTIFICATION_HTTP_TIMEOUT_SECONDS,
    )


def build_push_sender(settings: Settings):
    if not (settings.VAPID_PUBLIC_KEY and settings.VAPID_PRIVATE_KEY):
        return NullPushSender()
    return WebPushSender(
        VapidConfig(
            public_key=settings.VAPID_PUBLIC_KEY,
            private_key=settings.VAPID_PRIVATE_KEY,
            subject=settings.VAPID_SUBJECT,
        ),
        timeout_seconds=settings.NOTIFICATION_HTTP_TIMEOUT_SECONDS,
    )


def build_dispatch_orchestrator(
    db_session: Session,
    settings: Settings = default_settings,
    email_sender=None,
    push_sender=None,
) -> DispatchOrchestrator:
    """Wire the orchestrator from settings; senders can be overridden."""
    email_sender = email_sender or build_email_sender(settings)
    push_sender = push_sender or build_push_sender(settings)
    if not email_sender.enabled:
        logger.debug("Email channel disabled: EMAIL_API_KEY not set")
    if not push_sender.enabled:
        logger.debug("Push channel disabled: VAPID keys not set")

    timeout = settings.NOTIFICATION_HTTP_TIMEOUT_SECONDS
    return DispatchOrchestrator(
        db_session,
        in_app=InAppChannel(db_session),
        email=EmailChannel(email_sender, timeout_seconds=timeout),
        push=PushChannel(
            db_session,
            push_sender,
            timeout_seconds=timeout,
            icon_url=settings.PUSH_ICON_URL,
            badge_url=settings.PUSH_BADGE_URL,
            default_url=settings.PUSH_DEFAULT_URL,
        ),
        max_concurrency=settings.DISPATCH_MAX_CONCURRENCY,
    )
