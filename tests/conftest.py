from datetime import timedelta
from typing import Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.db import create_tables
from app.db.models import (
    AlertConfiguration,
    AlertType,
    FormStatus,
    Hospital,
    HospitalProgress,
    Project,
    ProjectCoordinator,
    ProjectHospital,
    ProjectHospitalStatus,
    PushSubscription,
    RecruitmentPeriod,
    User,
    UserRole,
)
from app.services.notifications.channels import (
    EmailChannel,
    InAppChannel,
    PushChannel,
)
from app.services.notifications.contracts import EmailMessage, PushMessage
from app.services.notifications.dispatcher import DispatchOrchestrator
from app.utils.datetime_utils import naive_utc_now
from app.utils.errors import (
    ChannelDeliveryError,
    EmailRejectedError,
    StaleSubscriptionError,
)


# Test database setup
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture
def test_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(bind=test_engine, class_=Session, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# Fake senders
class RecordingEmailSender:
    """Email sender double that records messages and fails for chosen addresses."""

    enabled = True

    def __init__(self, reject: Optional[Dict[str, Exception]] = None):
        self.sent: List[EmailMessage] = []
        self.reject = reject or {}

    async def send(self, email: EmailMessage):
        if email.to_address in self.reject:
            raise self.reject[email.to_address]
        self.sent.append(email)
        return {"provider": "fake", "message_id": str(len(self.sent))}


class RecordingPushSender:
    """Push sender double; ``failures`` maps an endpoint to the error it raises."""

    enabled = True

    def __init__(self, failures: Optional[Dict[str, Exception]] = None):
        self.sent: List[PushMessage] = []
        self.failures = failures or {}

    def send(self, message: PushMessage) -> None:
        if message.endpoint in self.failures:
            raise self.failures[message.endpoint]
        self.sent.append(message)


@pytest.fixture
def email_sender_cls():
    return RecordingEmailSender


@pytest.fixture
def push_sender_cls():
    return RecordingPushSender


@pytest.fixture
def build_orchestrator(db_session):
    """Build a DispatchOrchestrator wired to the given sender doubles."""

    def _build(email_sender=None, push_sender=None, max_concurrency: int = 4):
        return DispatchOrchestrator(
            db_session,
            in_app=InAppChannel(db_session),
            email=EmailChannel(email_sender or RecordingEmailSender(), timeout_seconds=2),
            push=PushChannel(db_session, push_sender or RecordingPushSender(), timeout_seconds=2),
            max_concurrency=max_concurrency,
        )

    return _build


@pytest.fixture
def stale_error():
    return StaleSubscriptionError("subscription gone (status=410)")


@pytest.fixture
def rejected_error():
    return EmailRejectedError("rejected by provider (422)")


@pytest.fixture
def provider_error():
    return ChannelDeliveryError("provider error (503)")


# Test data factories
@pytest.fixture
def make_user(db_session):
    def _make(
        name: str = "Ana Admin",
        email: Optional[str] = None,
        role: UserRole = UserRole.ADMIN,
        is_active: bool = True,
    ) -> User:
        user = User(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@epicq.test",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user("Ana Admin", role=UserRole.ADMIN)


@pytest.fixture
def make_hospital(db_session):
    def _make(name: str = "Hospital Italiano", inactive_days: Optional[int] = None) -> Hospital:
        hospital = Hospital(name=name, city="Buenos Aires")
        if inactive_days is not None:
            hospital.last_activity_at = naive_utc_now() - timedelta(days=inactive_days)
        db_session.add(hospital)
        db_session.commit()
        return hospital

    return _make


@pytest.fixture
def sample_project(db_session) -> Project:
    project = Project(name="EPIC-Q Sepsis")
    db_session.add(project)
    db_session.commit()
    return project


@pytest.fixture
def make_participation(db_session, sample_project, make_hospital):
    """Create a hospital linked to the sample project with a progress row."""

    def _make(
        hospital_name: str = "Hospital Italiano",
        status: ProjectHospitalStatus = ProjectHospitalStatus.IN_PROGRESS,
        cases_created: int = 10,
        cases_completed: int = 10,
        form_status: FormStatus = FormStatus.COMPLETE,
        ethics_submitted_days_ago: Optional[int] = 1,
        ethics_approved: bool = True,
        inactive_days: Optional[int] = 1,
    ) -> ProjectHospital:
        hospital = make_hospital(hospital_name, inactive_days=inactive_days)
        link = ProjectHospital(project=sample_project, hospital=hospital, status=status)
        submitted = ethics_submitted_days_ago is not None
        link.progress = HospitalProgress(
            descriptive_form_status=form_status,
            ethics_submitted=submitted,
            ethics_submitted_date=(
                naive_utc_now() - timedelta(days=ethics_submitted_days_ago)
                if submitted
                else None
            ),
            ethics_approved=ethics_approved,
            cases_created=cases_created,
            cases_completed=cases_completed,
        )
        db_session.add(link)
        db_session.commit()
        return link

    return _make


@pytest.fixture
def add_recruitment_period(db_session):
    def _add(link: ProjectHospital, starts_in_days: int, number: int = 1) -> RecruitmentPeriod:
        start = naive_utc_now().date() + timedelta(days=starts_in_days)
        period = RecruitmentPeriod(
            project_hospital_id=link.id,
            period_number=number,
            start_date=start,
            end_date=start + timedelta(days=30),
        )
        db_session.add(period)
        db_session.commit()
        return period

    return _add


@pytest.fixture
def assign_coordinator(db_session):
    def _assign(user: User, link: ProjectHospital) -> ProjectCoordinator:
        assignment = ProjectCoordinator(
            project_id=link.project_id, hospital_id=link.hospital_id, user_id=user.id
        )
        db_session.add(assignment)
        db_session.commit()
        return assignment

    return _assign


@pytest.fixture
def add_subscription(db_session):
    def _add(user: User, endpoint: str) -> PushSubscription:
        subscription = PushSubscription(
            user_id=user.id, endpoint=endpoint, p256dh_key="p256dh", auth_key="auth"
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _add


@pytest.fixture
def configure_alert(db_session):
    def _configure(alert_type: AlertType, **fields) -> AlertConfiguration:
        configuration = AlertConfiguration(alert_type=alert_type, **fields)
        db_session.add(configuration)
        db_session.commit()
        return configuration

    return _configure


# HTTP client
@pytest.fixture
def counter_store():
    from app.providers.counter_store import InMemoryCounterStore

    return InMemoryCounterStore()


@pytest.fixture
def client(session_factory, counter_store, monkeypatch) -> Generator[TestClient, None, None]:
    """TestClient bound to the test database with no real senders configured."""
    from app.config.settings import settings
    from app.db.session import get_sync_session
    from app.main import create_application
    from app.middlewares.rate_limit import get_counter_store

    monkeypatch.setattr(settings, "CRON_SECRET", "test-cron-secret")
    monkeypatch.setattr(settings, "EMAIL_API_KEY", None)
    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", None)
    monkeypatch.setattr(settings, "VAPID_PRIVATE_KEY", None)
    monkeypatch.setattr(settings, "RATE_LIMIT_BACKEND", "memory")

    def _session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    application = create_application()
    application.dependency_overrides[get_sync_session] = _session
    application.dependency_overrides[get_counter_store] = lambda: counter_store

    with TestClient(application) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(admin_user) -> Dict[str, str]:
    return {"X-User-Id": admin_user.id}
