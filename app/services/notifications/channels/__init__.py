from .email import EmailChannel, HttpEmailSender, NullEmailSender
from .in_app import InAppChannel
from .push import NullPushSender, PushChannel, VapidConfig, WebPushSender

__all__ = [
    "EmailChannel",
    "HttpEmailSender",
    "NullEmailSender",
    "InAppChannel",
    "PushChannel",
    "WebPushSender",
    "NullPushSender",
    "VapidConfig",
]
