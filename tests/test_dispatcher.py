import asyncio
from unittest.mock import patch

import pytest
import requests
from sqlalchemy import select

from app.db.models import (
    Alert,
    AlertSeverity,
    AlertType,
    Communication,
    CommunicationTemplate,
    CommunicationType,
    DeliveryStatus,
    Notification,
    NotificationType,
    PushSubscription,
    UserRole,
)
from app.services.notifications.channels import (
    EmailChannel,
    InAppChannel,
    PushChannel,
    VapidConfig,
    WebPushSender,
)
from app.services.notifications.contracts import (
    ChannelType,
    DispatchMessage,
    OutcomeStatus,
    Recipient,
    RenderedMessage,
)
from app.services.notifications.dispatcher import DispatchOrchestrator
from app.utils.errors import RecipientResolutionError, StorageError


def _alert(db_session, hospital, severity=AlertSeverity.HIGH) -> Alert:
    alert = Alert(
        type=AlertType.NO_ACTIVITY_30_DAYS,
        title=f"No activity at {hospital.name}",
        message=f"{hospital.name} has had no recorded activity for 40 days (limit 30).",
        severity=severity,
        hospital_id=hospital.id,
    )
    db_session.add(alert)
    db_session.commit()
    return alert


def _rows(db_session, model, **filters):
    stmt = select(model).filter_by(**filters)
    return list(db_session.execute(stmt).scalars())


class TestAlertDispatch:
    """Alerts go to admins and coordinators per the alert configuration."""

    @pytest.mark.asyncio
    async def test_admins_and_coordinators_get_in_app_once(
        self,
        db_session,
        build_orchestrator,
        make_user,
        make_participation,
        assign_coordinator,
        configure_alert,
    ):
        admin = make_user("Ana Admin", role=UserRole.ADMIN)
        coordinator = make_user("Carla Coord", role=UserRole.COORDINATOR)
        # An admin who also coordinates the hospital must not be notified twice
        assign_coordinator(admin, make_participation("Other Hospital"))
        link = make_participation("Hospital Italiano")
        assign_coordinator(coordinator, link)
        assign_coordinator(admin, link)
        make_user("Old Admin", role=UserRole.ADMIN, is_active=False)
        configuration = configure_alert(
            AlertType.NO_ACTIVITY_30_DAYS, notify_admin=True, notify_coordinator=True
        )
        alert = _alert(db_session, link.hospital)

        result = await build_orchestrator().dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        assert sorted(result.recipient_ids) == sorted([admin.id, coordinator.id])
        notifications = _rows(db_session, Notification, alert_id=alert.id)
        assert sorted(n.user_id for n in notifications) == sorted([admin.id, coordinator.id])
        assert all(n.type == NotificationType.WARNING for n in notifications)

    @pytest.mark.asyncio
    async def test_email_only_with_auto_send(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        make_hospital,
        configure_alert,
        email_sender_cls,
    ):
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS, auto_send_email=False)
        alert = _alert(db_session, make_hospital())
        email_sender = email_sender_cls()

        result = await build_orchestrator(email_sender=email_sender).dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        assert email_sender.sent == []
        assert result.channel_results[ChannelType.EMAIL] == []
        assert _rows(db_session, Communication) == []

    @pytest.mark.asyncio
    async def test_auto_send_email_records_communication(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        make_hospital,
        configure_alert,
        email_sender_cls,
    ):
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS, auto_send_email=True)
        alert = _alert(db_session, make_hospital())
        email_sender = email_sender_cls()

        result = await build_orchestrator(email_sender=email_sender).dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        assert [e.to_address for e in email_sender.sent] == [admin_user.email]
        assert result.count(OutcomeStatus.SENT, ChannelType.EMAIL) == 1
        communication = _rows(db_session, Communication, user_id=admin_user.id)[0]
        assert communication.type == CommunicationType.AUTO_ALERT
        assert communication.alert_id == alert.id
        assert communication.sender_id is None
        assert communication.email_status == DeliveryStatus.SENT

    @pytest.mark.asyncio
    async def test_configured_template_is_rendered(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        make_hospital,
        configure_alert,
        email_sender_cls,
    ):
        template = CommunicationTemplate(
            name="no-activity",
            subject="[{{severity}}] {{hospital_name}}",
            body="Hi {{recipient_name}}, {{hospital_name}} idle for {{days_inactive}} days.",
            variables=["severity", "hospital_name", "recipient_name", "days_inactive"],
        )
        db_session.add(template)
        db_session.commit()
        configuration = configure_alert(
            AlertType.NO_ACTIVITY_30_DAYS, auto_send_email=True, email_template_id=template.id
        )
        alert = _alert(db_session, make_hospital("Clinica Sur"))
        email_sender = email_sender_cls()

        await build_orchestrator(email_sender=email_sender).dispatch(
            DispatchMessage.for_alert(alert, {"days_inactive": 40}), configuration
        )

        assert email_sender.sent[0].subject == "[high] Clinica Sur"
        assert email_sender.sent[0].text == "Hi Ana Admin, Clinica Sur idle for 40 days."
        db_session.refresh(template)
        assert template.usage_count == 1

    @pytest.mark.asyncio
    async def test_no_recipients_is_not_an_error(
        self, db_session, build_orchestrator, make_hospital, configure_alert
    ):
        configuration = configure_alert(
            AlertType.NO_ACTIVITY_30_DAYS, notify_admin=True, notify_coordinator=True
        )
        alert = _alert(db_session, make_hospital())

        result = await build_orchestrator().dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        assert result.recipient_ids == []
        assert result.count(OutcomeStatus.SENT) == 0


class TestPushDelivery:
    @pytest.mark.asyncio
    async def test_each_subscription_is_isolated(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        add_subscription,
        make_hospital,
        configure_alert,
        provider_error,
        push_sender_cls,
    ):
        add_subscription(admin_user, "https://push.example/broken")
        add_subscription(admin_user, "https://push.example/ok")
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS)
        alert = _alert(db_session, make_hospital())
        push_sender = push_sender_cls({"https://push.example/broken": provider_error})

        result = await build_orchestrator(push_sender=push_sender).dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        outcomes = {o.target: o.status for o in result.channel_results[ChannelType.PUSH]}
        assert outcomes == {
            "https://push.example/broken": OutcomeStatus.FAILED,
            "https://push.example/ok": OutcomeStatus.SENT,
        }
        assert result.count(OutcomeStatus.SENT, ChannelType.IN_APP) == 1
        # Non-stale failures keep the subscription
        assert len(_rows(db_session, PushSubscription, user_id=admin_user.id)) == 2
        assert push_sender.sent[0].payload["alertId"] == alert.id
        assert push_sender.sent[0].payload["url"] == f"/alerts/{alert.id}"

    @pytest.mark.asyncio
    async def test_stale_subscription_is_deleted(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        add_subscription,
        make_hospital,
        configure_alert,
        stale_error,
        push_sender_cls,
    ):
        add_subscription(admin_user, "https://push.example/gone")
        add_subscription(admin_user, "https://push.example/alive")
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS)
        alert = _alert(db_session, make_hospital())
        push_sender = push_sender_cls({"https://push.example/gone": stale_error})

        result = await build_orchestrator(push_sender=push_sender).dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        stale = [o for o in result.channel_results[ChannelType.PUSH] if o.reason == "stale"]
        assert [o.target for o in stale] == ["https://push.example/gone"]
        assert stale[0].status == OutcomeStatus.SKIPPED
        remaining = [s.endpoint for s in _rows(db_session, PushSubscription)]
        assert remaining == ["https://push.example/alive"]

    @pytest.mark.asyncio
    async def test_user_without_subscription_is_skipped(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        make_hospital,
        configure_alert,
        email_sender_cls,
    ):
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS)
        alert = _alert(db_session, make_hospital())

        result = await build_orchestrator().dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        [outcome] = result.channel_results[ChannelType.PUSH]
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == "no subscription"


class TestManualDispatch:
    @pytest.mark.asyncio
    async def test_requested_channels_and_in_app(
        self, db_session, build_orchestrator, admin_user, make_user, email_sender_cls
    ):
        recipient = make_user("Carla Coord", role=UserRole.COORDINATOR)
        email_sender = email_sender_cls()
        message = DispatchMessage.manual(
            sender_id=admin_user.id,
            recipient_ids=[recipient.id, "unknown-user"],
            subject="Hello {{recipient_name}}",
            body="Please update the CRF.",
            channels=[ChannelType.EMAIL],
        )

        result = await build_orchestrator(email_sender=email_sender).dispatch(message)

        assert result.recipient_ids == [recipient.id]
        assert result.count(OutcomeStatus.SENT, ChannelType.IN_APP) == 1
        assert result.count(OutcomeStatus.SENT, ChannelType.EMAIL) == 1
        assert result.channel_results[ChannelType.PUSH] == []
        assert email_sender.sent[0].subject == "Hello Carla Coord"

        communication = _rows(db_session, Communication, user_id=recipient.id)[0]
        assert communication.type == CommunicationType.MANUAL
        assert communication.sender_id == admin_user.id
        assert communication.channels == ["email", "in_app"]

    @pytest.mark.asyncio
    async def test_rejected_email_does_not_stop_other_recipients(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        make_user,
        rejected_error,
        email_sender_cls,
    ):
        first = make_user("Bad Address", email="bad@epicq.test", role=UserRole.COORDINATOR)
        second = make_user("Good Address", email="good@epicq.test", role=UserRole.COORDINATOR)
        email_sender = email_sender_cls({"bad@epicq.test": rejected_error})
        message = DispatchMessage.manual(
            sender_id=admin_user.id,
            recipient_ids=[first.id, second.id],
            subject="Reminder",
            body="Body",
            channels=[ChannelType.EMAIL],
        )

        result = await build_orchestrator(email_sender=email_sender).dispatch(message)

        statuses = {o.user_id: o.status for o in result.channel_results[ChannelType.EMAIL]}
        assert statuses == {first.id: OutcomeStatus.FAILED, second.id: OutcomeStatus.SENT}
        failed_row = _rows(db_session, Communication, user_id=first.id)[0]
        assert failed_row.email_status == DeliveryStatus.FAILED

    @pytest.mark.asyncio
    async def test_no_active_recipient_raises(self, db_session, build_orchestrator, make_user):
        inactive = make_user("Gone User", is_active=False)
        message = DispatchMessage.manual(
            sender_id=None,
            recipient_ids=[inactive.id],
            subject="s",
            body="b",
            channels=[ChannelType.IN_APP],
        )

        with pytest.raises(RecipientResolutionError):
            await build_orchestrator().dispatch(message)


class TestEmailChannel:
    def _deliver(self, channel):
        recipient = Recipient(user_id="u1", name="Ana", email="ana@epicq.test")
        message = DispatchMessage.manual("s", ["u1"], "Subject", "Body", [ChannelType.EMAIL])
        return channel.deliver(recipient, RenderedMessage("Subject", "Body"), message)

    @pytest.mark.asyncio
    async def test_timeout_is_a_failed_outcome(self):
        class SlowSender:
            enabled = True

            async def send(self, email):
                await asyncio.sleep(1)

        outcome = await self._deliver(EmailChannel(SlowSender(), timeout_seconds=0.01))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason == "timeout"

    @pytest.mark.asyncio
    async def test_disabled_sender_is_skipped(self):
        from app.services.notifications.channels import NullEmailSender

        outcome = await self._deliver(EmailChannel(NullEmailSender()))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == "email disabled"

    @pytest.mark.asyncio
    async def test_recipient_without_email_is_skipped(self, email_sender_cls):
        channel = EmailChannel(email_sender_cls())
        recipient = Recipient(user_id="u1", name="Ana", email=None)
        message = DispatchMessage.manual("s", ["u1"], "Subject", "Body", [ChannelType.EMAIL])

        outcome = await channel.deliver(recipient, RenderedMessage("S", "B"), message)

        assert outcome.reason == "no email address"

class TestPushIsolation:
    """Each subscription's result is recorded even when another one fails."""

    @pytest.mark.asyncio
    async def test_network_error_on_one_device_keeps_the_other(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        add_subscription,
        make_hospital,
        configure_alert,
    ):
        add_subscription(admin_user, "https://push.example/broken")
        add_subscription(admin_user, "https://push.example/ok")
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS)
        alert = _alert(db_session, make_hospital())
        sender = WebPushSender(
            VapidConfig(public_key="pub", private_key="priv", subject="mailto:ops@epicq.test")
        )

        def _webpush(subscription_info, **kwargs):
            if subscription_info["endpoint"].endswith("/broken"):
                raise requests.exceptions.ConnectionError("connection refused")

        with patch("app.services.notifications.channels.push.webpush", side_effect=_webpush):
            result = await build_orchestrator(push_sender=sender).dispatch(
                DispatchMessage.for_alert(alert), configuration
            )

        outcomes = {o.target: o for o in result.channel_results[ChannelType.PUSH]}
        assert set(outcomes) == {"https://push.example/broken", "https://push.example/ok"}
        assert outcomes["https://push.example/ok"].status == OutcomeStatus.SENT
        assert outcomes["https://push.example/broken"].status == OutcomeStatus.FAILED
        assert "connection refused" in outcomes["https://push.example/broken"].reason
        assert len(_rows(db_session, PushSubscription, user_id=admin_user.id)) == 2

    @pytest.mark.asyncio
    async def test_unexpected_sender_error_is_recorded_per_device(
        self,
        db_session,
        build_orchestrator,
        admin_user,
        add_subscription,
        make_hospital,
        configure_alert,
        push_sender_cls,
    ):
        add_subscription(admin_user, "https://push.example/buggy")
        add_subscription(admin_user, "https://push.example/ok")
        configuration = configure_alert(AlertType.NO_ACTIVITY_30_DAYS)
        alert = _alert(db_session, make_hospital())
        push_sender = push_sender_cls({"https://push.example/buggy": KeyError("keys")})

        result = await build_orchestrator(push_sender=push_sender).dispatch(
            DispatchMessage.for_alert(alert), configuration
        )

        statuses = {o.target: o.status for o in result.channel_results[ChannelType.PUSH]}
        assert statuses == {
            "https://push.example/buggy": OutcomeStatus.FAILED,
            "https://push.example/ok": OutcomeStatus.SENT,
        }


class TestStorageFailureDuringFanOut:
    @pytest.mark.asyncio
    async def test_other_recipients_settle_before_the_error_surfaces(
        self, db_session, admin_user, make_user, email_sender_cls, push_sender_cls
    ):
        broken = make_user("Broken Inbox", role=UserRole.COORDINATOR)
        healthy = make_user("Healthy Inbox", role=UserRole.COORDINATOR)
        finished = []

        class FlakyInApp(InAppChannel):
            async def deliver(self, recipient, rendered, message):
                if recipient.user_id == broken.id:
                    raise StorageError("Data store unreachable during notification insert")
                # Let the failing recipient raise first
                await asyncio.sleep(0.05)
                outcome = await super().deliver(recipient, rendered, message)
                finished.append(recipient.user_id)
                return outcome

        orchestrator = DispatchOrchestrator(
            db_session,
            in_app=FlakyInApp(db_session),
            email=EmailChannel(email_sender_cls(), timeout_seconds=2),
            push=PushChannel(db_session, push_sender_cls(), timeout_seconds=2),
        )
        message = DispatchMessage.manual(
            sender_id=admin_user.id,
            recipient_ids=[broken.id, healthy.id],
            subject="Reminder",
            body="Body",
            channels=[ChannelType.IN_APP],
        )

        with pytest.raises(StorageError):
            await orchestrator.dispatch(message)

        assert finished == [healthy.id]
        assert len(_rows(db_session, Notification, user_id=healthy.id)) == 1
