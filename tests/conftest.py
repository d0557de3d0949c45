"""Pytest configuration and shared fixtures."""
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dispositions.config import reset_settings
from dispositions.core.exceptions import NotificationError
from dispositions.database import Base
from dispositions.models.audit import DispositionHistory  # noqa: F401
from dispositions.models.domain import Activity, Letter, Notification, User  # noqa: F401
from dispositions.models.enums import Role
from dispositions.services.authorization import Actor
from dispositions.services.lifecycle import DispositionLifecycle
from dispositions.services.linking import LinkingCoordinator
from dispositions.services.notifications import NotificationDispatcher
from dispositions.services.storage import LocalObjectStore

USERS = [
    ("u1", "User One", Role.STAFF),
    ("u2", "User Two", Role.STAFF),
    ("u3", "User Three", Role.STAFF),
    ("supervisor", "Sam Supervisor", Role.SUPERVISOR),
    ("admin", "Ada Admin", Role.SUPER_ADMIN),
]


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher that remembers what it was asked to send and can be told to fail."""

    def __init__(self, db):
        super().__init__(db)
        self.sent = []
        self.fail = False

    def notify(self, user_id, notification_type, title, message, context=None):
        if self.fail:
            raise NotificationError("notification backend down", user_id=user_id)
        self.sent.append((user_id, notification_type))
        return super().notify(user_id, notification_type, title, message, context)


@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    """No backoff sleeps and a throwaway blob directory for every test."""
    monkeypatch.setenv("DISPOSITIONS_RETRY_BASE_DELAY_SECONDS", "0")
    monkeypatch.setenv("DISPOSITIONS_STORAGE_LOCAL_PATH", str(tmp_path / "blobs"))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def engine():
    """Fresh in-memory database shared by every connection in the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(db_session):
    """Users, one letter and one activity."""
    for user_id, name, role in USERS:
        db_session.add(User(id=user_id, name=name, email=f"{user_id}@example.org", role=role))
    db_session.add(Letter(
        id="letter-1",
        letter_type="incoming",
        letter_number="001/UND/2024",
        letter_date=date(2024, 3, 1),
        subject="Coordination meeting invitation",
        sender="Regional Office",
        recipient="Head of Division",
        classification="Ordinary",
        document_type="Invitation",
        field_of_duty="General Affairs",
        letter_file={"id": "file_1", "name": "invitation.pdf", "url": "/files/letters/invitation.pdf"},
    ))
    db_session.add(Activity(id="activity-1", title="Quarterly coordination meeting", date=date(2024, 3, 10)))
    db_session.add(Activity(id="activity-2", title="Annual planning session"))
    db_session.commit()
    return db_session


@pytest.fixture
def staff():
    return Actor(id="u1", name="User One", role=Role.STAFF)


@pytest.fixture
def supervisor():
    return Actor(id="supervisor", name="Sam Supervisor", role=Role.SUPERVISOR)


@pytest.fixture
def admin():
    return Actor(id="admin", name="Ada Admin", role=Role.SUPER_ADMIN)


def actor_for(user_id):
    for uid, name, role in USERS:
        if uid == user_id:
            return Actor(id=uid, name=name, role=role)
    raise KeyError(user_id)


@pytest.fixture
def actor():
    """Look up a seeded user as an Actor: ``actor("u2")``."""
    return actor_for


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(
        base_path=str(tmp_path / "blobs"),
        public_base_url="/files",
        signing_key="test-signing-key",
    )


@pytest.fixture
def dispatcher(db_session):
    return RecordingDispatcher(db_session)


@pytest.fixture
def lifecycle(seeded, store, dispatcher):
    return DispositionLifecycle(seeded, store, dispatcher)


@pytest.fixture
def linking(seeded, store, dispatcher):
    return LinkingCoordinator(seeded, store, dispatcher)


@pytest.fixture
def disposition(lifecycle, supervisor):
    """A Pending disposition assigned to u2, created by the supervisor."""
    result = lifecycle.create(
        "letter-1", "activity-1", ["u2"], "Old instruction", actor=supervisor
    )
    return result.created[0]
