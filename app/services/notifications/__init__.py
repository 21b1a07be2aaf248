from .contracts import (
    ChannelOutcome,
    ChannelType,
    DispatchMessage,
    DispatchResult,
    OutcomeStatus,
    Recipient,
    RenderedMessage,
)
from .dispatcher import DispatchOrchestrator
from .factory import build_dispatch_orchestrator
from .recipient_resolver import RecipientResolver
from .template_renderer import TemplateRenderer

__all__ = [
    "ChannelOutcome",
    "ChannelType",
    "DispatchMessage",
    "DispatchOrchestrator",
    "DispatchResult",
    "OutcomeStatus",
    "Recipient",
    "RecipientResolver",
    "RenderedMessage",
    "TemplateRenderer",
    "build_dispatch_orchestrator",
]
