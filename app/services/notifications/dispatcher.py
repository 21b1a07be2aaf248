import asyncio
from typing import Any, Awaitable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from app.db.models import (
    AlertConfiguration,
    CommunicationTemplate,
    DeliveryStatus,
)
from app.providers.communication_provider import CommunicationProvider
from app.providers.template_provider import TemplateProvider
from app.utils.errors import StorageError
from app.utils.logging import get_logger

from .channels import EmailChannel, InAppChannel, PushChannel
from .contracts import (
    ChannelOutcome,
    ChannelType,
    DispatchMessage,
    DispatchResult,
    OutcomeStatus,
    Recipient,
    RenderedMessage,
)
from .recipient_resolver import RecipientResolver
from .template_renderer import TemplateRenderer

logger = get_logger()

_EMAIL_STATUS = {
    OutcomeStatus.SENT: DeliveryStatus.SENT,
    OutcomeStatus.FAILED: DeliveryStatus.FAILED,
    OutcomeStatus.SKIPPED: DeliveryStatus.SKIPPED,
}


class DispatchOrchestrator:
    """
    Fans a message out to its recipients over in-app, email and push.

    Recipients are processed concurrently up to ``max_concurrency``. Every
    channel attempt is isolated: a failure becomes a ``failed`` outcome and
    never stops the other channels or recipients. Only storage failures
    propagate, since they make the whole run unusable.
    """

    def __init__(
        self,
        db_session: Session,
        in_app: InAppChannel,
        email: EmailChannel,
        push: PushChannel,
        max_concurrency: int = 8,
        resolver: Optional[RecipientResolver] = None,
        templates: Optional[TemplateProvider] = None,
        communications: Optional[CommunicationProvider] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.db = db_session
        self.in_app = in_app
        self.email = email
        self.push = push
        self.max_concurrency = max(1, max_concurrency)
        self.resolver = resolver or RecipientResolver(db_session)
        self.templates = templates or TemplateProvider(db_session)
        self.communications = communications or CommunicationProvider(db_session)
        self.renderer = renderer or TemplateRenderer()

    async def dispatch(
        self, message: DispatchMessage, config: Optional[AlertConfiguration] = None
    ) -> DispatchResult:
        """
        Deliver a message.

        Raises:
            RecipientResolutionError: manual message with no active recipient
            StorageError: the data store failed while recording delivery
        """
        recipients = await self.resolver.resolve(message, config)
        result = DispatchResult(recipient_ids=[r.user_id for r in recipients])
        if not recipients:
            return result

        template = await self._load_template(message, config)
        auto_email = bool(config and config.auto_send_email)
        channels = {ChannelType.IN_APP}
        if ChannelType.EMAIL in message.channels and (not message.is_alert or auto_email):
            channels.add(ChannelType.EMAIL)
        if ChannelType.PUSH in message.channels:
            channels.add(ChannelType.PUSH)
        record_communication = not message.is_alert or auto_email

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(recipient: Recipient) -> List[ChannelOutcome]:
            async with semaphore:
                return await self._deliver_to(
                    recipient, message, template, channels, record_communication
                )

        per_recipient = await asyncio.gather(
            *(_bounded(r) for r in recipients), return_exceptions=True
        )
        # Recipients share one session; surface a failure only after all have settled
        failures = [o for o in per_recipient if isinstance(o, BaseException)]
        if failures:
            raise next((f for f in failures if isinstance(f, StorageError)), failures[0])
        for outcomes in per_recipient:
            for outcome in outcomes:
                result.add(outcome)

        if template is not None:
            await self.templates.increment_usage(template.id)
            result.template_id = template.id

        logger.info(
            f"Dispatched {message.kind.value} message (alert={message.alert_id}) to "
            f"{len(recipients)} recipients: {result.count(OutcomeStatus.SENT)} sent, "
            f"{result.count(OutcomeStatus.FAILED)} failed, "
            f"{result.count(OutcomeStatus.SKIPPED)} skipped"
        )
        return result

    async def _deliver_to(
        self,
        recipient: Recipient,
        message: DispatchMessage,
        template: Optional[CommunicationTemplate],
        channels: set,
        record_communication: bool,
    ) -> List[ChannelOutcome]:
        rendered = self._render(recipient, message, template)

        outcomes = await self._guarded(
            ChannelType.IN_APP, recipient, self.in_app.deliver(recipient, rendered, message)
        )
        email_outcomes: List[ChannelOutcome] = []
        if ChannelType.EMAIL in channels:
            email_outcomes = await self._guarded(
                ChannelType.EMAIL, recipient, self.email.deliver(recipient, rendered, message)
            )
            outcomes.extend(email_outcomes)
        if ChannelType.PUSH in channels:
            outcomes.extend(
                await self._guarded(
                    ChannelType.PUSH,
                    recipient,
                    self.push.deliver(recipient, rendered, message),
                )
            )

        if record_communication:
            await self.communications.create(
                user_id=recipient.user_id,
                communication_type=message.kind,
                subject=rendered.subject,
                body=rendered.body,
                channels=sorted(channel.value for channel in channels),
                email_status=(
                    _EMAIL_STATUS[email_outcomes[0].status]
                    if email_outcomes
                    else DeliveryStatus.SKIPPED
                ),
                sender_id=message.sender_id,
                alert_id=message.alert_id,
                template_id=template.id if template else None,
                hospital_id=message.hospital_id,
                project_id=message.project_id,
                delivery_details=[outcome.to_dict() for outcome in outcomes],
            )
        return outcomes

    async def _guarded(
        self,
        channel: ChannelType,
        recipient: Recipient,
        attempt: Awaitable[Union[ChannelOutcome, List[ChannelOutcome]]],
    ) -> List[ChannelOutcome]:
        try:
            outcome = await attempt
        except StorageError:
            raise
        except Exception as e:
            logger.exception(
                f"Unexpected {channel.value} failure for user {recipient.user_id}: {str(e)}"
            )
            return [ChannelOutcome.failed(recipient.user_id, channel, str(e))]
        return outcome if isinstance(outcome, list) else [outcome]

    def _render(
        self,
        recipient: Recipient,
        message: DispatchMessage,
        template: Optional[CommunicationTemplate],
    ) -> RenderedMessage:
        variables: Dict[str, Any] = dict(message.variables)
        variables.setdefault("recipient_name", recipient.name)
        variables.setdefault("recipient_email", recipient.email)

        if template is not None:
            return self.renderer.render_template(template, variables)
        return self.renderer.render(message.subject, message.body, variables)

    async def _load_template(
        self, message: DispatchMessage, config: Optional[AlertConfiguration]
    ) -> Optional[CommunicationTemplate]:
        template_id = message.template_id
        if template_id is None and message.is_alert and config is not None:
            template_id = config.email_template_id
        if template_id is None:
            return None

        template = await self.templates.get(template_id)
        if template is None or not template.is_active:
            logger.warning(
                f"Template {template_id} missing or inactive; using raw message content"
            )
            return None
        return template
