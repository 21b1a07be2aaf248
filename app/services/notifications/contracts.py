"""Value types shared by the dispatch orchestrator and the channel senders."""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from app.db.models import Alert, AlertSeverity, CommunicationType, NotificationType


class ChannelType(str, enum.Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


class OutcomeStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ChannelOutcome:
    """Result of one delivery attempt to one recipient over one channel."""

    user_id: str
    channel: ChannelType
    status: OutcomeStatus
    reason: Optional[str] = None
    # Subscription endpoint for push outcomes
    target: Optional[str] = None

    @classmethod
    def sent(cls, user_id: str, channel: ChannelType, target: Optional[str] = None):
        return cls(user_id, channel, OutcomeStatus.SENT, target=target)

    @classmethod
    def failed(
        cls, user_id: str, channel: ChannelType, reason: str, target: Optional[str] = None
    ):
        return cls(user_id, channel, OutcomeStatus.FAILED, reason, target)

    @classmethod
    def skipped(
        cls, user_id: str, channel: ChannelType, reason: str, target: Optional[str] = None
    ):
        return cls(user_id, channel, OutcomeStatus.SKIPPED, reason, target)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "userId": self.user_id,
            "channel": self.channel.value,
            "status": self.status.value,
        }
        if self.reason:
            data["reason"] = self.reason
        if self.target:
            data["target"] = self.target
        return data


@dataclass
class DispatchResult:
    """Outcomes of one dispatch, grouped by channel."""

    channel_results: Dict[ChannelType, List[ChannelOutcome]] = field(
        default_factory=lambda: {channel: [] for channel in ChannelType}
    )
    recipient_ids: List[str] = field(default_factory=list)
    template_id: Optional[str] = None

    def add(self, outcome: ChannelOutcome) -> None:
        self.channel_results[outcome.channel].append(outcome)

    def outcomes_for(self, user_id: str) -> List[ChannelOutcome]:
        return [
            outcome
            for outcomes in self.channel_results.values()
            for outcome in outcomes
            if outcome.user_id == user_id
        ]

    def count(self, status: OutcomeStatus, channel: Optional[ChannelType] = None) -> int:
        channels = [channel] if channel else list(ChannelType)
        return sum(
            1
            for ch in channels
            for outcome in self.channel_results[ch]
            if outcome.status == status
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipients": len(self.recipient_ids),
            "channels": {
                channel.value: [outcome.to_dict() for outcome in outcomes]
                for channel, outcomes in self.channel_results.items()
            },
            "sent": self.count(OutcomeStatus.SENT),
            "failed": self.count(OutcomeStatus.FAILED),
            "skipped": self.count(OutcomeStatus.SKIPPED),
        }


@dataclass(frozen=True)
class Recipient:
    user_id: str
    name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


@dataclass(frozen=True)
class EmailMessage:
    to_address: str
    to_name: Optional[str]
    subject: str
    text: str


@dataclass(frozen=True)
class PushMessage:
    endpoint: str
    p256dh: str
    auth: str
    payload: Dict[str, Any]


_SEVERITY_TO_NOTIFICATION_TYPE = {
    AlertSeverity.LOW: NotificationType.INFO,
    AlertSeverity.MEDIUM: NotificationType.WARNING,
    AlertSeverity.HIGH: NotificationType.WARNING,
    AlertSeverity.CRITICAL: NotificationType.ERROR,
}


@dataclass(frozen=True)
class DispatchMessage:
    """
    Something to deliver: either a persisted alert or a manual communication.

    ``subject``/``body`` are the fallback content used when no template is
    configured. ``variables`` feed the template renderer; the recipient's name
    is added per recipient.
    """

    kind: CommunicationType
    subject: str
    body: str
    notification_type: NotificationType = NotificationType.INFO
    alert_id: Optional[str] = None
    hospital_id: Optional[str] = None
    project_id: Optional[str] = None
    sender_id: Optional[str] = None
    recipient_ids: List[str] = field(default_factory=list)
    channels: FrozenSet[ChannelType] = frozenset({ChannelType.IN_APP})
    template_id: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    url: Optional[str] = None

    @property
    def is_alert(self) -> bool:
        return self.kind == CommunicationType.AUTO_ALERT

    @classmethod
    def for_alert(
        cls, alert: Alert, metadata: Optional[Dict[str, Any]] = None
    ) -> "DispatchMessage":
        variables: Dict[str, Any] = dict(metadata or {})
        variables.update(
            {
                "alert_id": alert.id,
                "alert_type": alert.type.value,
                "alert_title": alert.title,
                "alert_message": alert.message,
                "severity": alert.severity.value,
                "hospital_name": alert.hospital.name if alert.hospital else None,
                "project_name": alert.project.name if alert.project else None,
            }
        )
        return cls(
            kind=CommunicationType.AUTO_ALERT,
            subject=alert.title,
            body=alert.message,
            notification_type=_SEVERITY_TO_NOTIFICATION_TYPE[alert.severity],
            alert_id=alert.id,
            hospital_id=alert.hospital_id,
            project_id=alert.project_id,
            channels=frozenset(ChannelType),
            variables=variables,
            url=f"/alerts/{alert.id}",
        )

    @classmethod
    def manual(
        cls,
        sender_id: str,
        recipient_ids: List[str],
        subject: str,
        body: str,
        channels: List[ChannelType],
        template_id: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        hospital_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> "DispatchMessage":
        return cls(
            kind=CommunicationType.MANUAL,
            subject=subject,
            body=body,
            sender_id=sender_id,
            recipient_ids=list(recipient_ids),
            channels=frozenset(channels) | {ChannelType.IN_APP},
            template_id=template_id,
            variables=dict(variables or {}),
            hospital_id=hospital_id,
            project_id=project_id,
        )
