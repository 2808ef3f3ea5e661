"""Pytest fixtures — a file-backed SQLite database per test, plus auth and data helpers."""
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from fastapi.testclient import TestClient

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.services.mailer import MailResult

# Import all models so they register with Base.metadata
from app.models.event import Event                    # noqa: F401
from app.models.attendee import Attendee              # noqa: F401
from app.models.join_request import JoinRequest, RequestStatus  # noqa: F401
from app.models.profile import Profile                # noqa: F401
from app.models.notification import NotificationLog, NotificationQueueItem  # noqa: F401
from app.models.location_unlock_log import LocationUnlockLog, UnlockAction  # noqa: F401

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
HOST_ID = "host-0001"
ALICE_ID = "alice-0001"
BOB_ID = "bob-0001"


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """A fresh SQLite file per test, so separate sessions see each other's commits."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Known JWT secret; shared-secret headers, AI and mail credentials disabled."""
    monkeypatch.setattr(settings, "AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "AUTH_JWT_AUDIENCE", "authenticated")
    monkeypatch.setattr(settings, "ENQUEUE_SECRET", "")
    monkeypatch.setattr(settings, "ADMIN_SECRET", "")
    monkeypatch.setattr(settings, "CRON_SECRET", "")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    monkeypatch.setattr(settings, "RESEND_API_KEY", "")
    monkeypatch.setattr(settings, "MAIL_FROM", "")
    return settings


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the database dependency overridden to use the test SQLite file."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------
def make_token(user_id: str, secret: str = TEST_JWT_SECRET, audience: str = "authenticated",
               expires_in: int = 3600) -> str:
    claims = {"sub": user_id, "aud": audience, "exp": int(time.time()) + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------
def create_event(
    db: Session,
    host_id: str = HOST_ID,
    capacity: int = 2,
    starts_in: timedelta = timedelta(days=2),
    title: str = "Board Game Night",
    tz: str = "UTC",
    place_exact: Optional[str] = "12 Harbour Street, Flat 3",
    exact_location_visible: bool = False,
) -> Event:
    """Insert an event starting ``starts_in`` from now, stored in local time of ``tz``."""
    local_start = (datetime.now(timezone.utc) + starts_in).astimezone(pytz.timezone(tz))
    event = Event(
        host_user_id=host_id,
        title=title,
        capacity=capacity,
        event_date=local_start.date(),
        event_time=local_start.time().replace(microsecond=0, tzinfo=None),
        timezone=tz,
        place_hint="Harbour district",
        place_exact=place_exact,
        exact_location_visible=exact_location_visible,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def create_profile(db: Session, user_id: str, name: str, email: Optional[str] = None) -> Profile:
    profile = Profile(user_id=user_id, display_name=name, email=email)
    db.add(profile)
    db.commit()
    return profile


def add_attendee(db: Session, event_id: str, user_id: str) -> Attendee:
    attendee = Attendee(event_id=event_id, user_id=user_id)
    db.add(attendee)
    db.commit()
    return attendee


def create_join_request(db: Session, event_id: str, requester_id: str,
                        status: RequestStatus = RequestStatus.pending) -> JoinRequest:
    jr = JoinRequest(event_id=event_id, requester_id=requester_id, status=status)
    db.add(jr)
    db.commit()
    db.refresh(jr)
    return jr


def queue_items(db: Session, kind=None) -> list:
    db.expire_all()
    query = db.query(NotificationQueueItem)
    if kind is not None:
        query = query.filter(NotificationQueueItem.kind == kind)
    return query.order_by(NotificationQueueItem.created_at.asc()).all()


class FakeMailer:
    """Records sends; addresses in ``fail_for`` get a provider error, ``crash_for`` raise."""

    def __init__(self, fail_for=(), crash_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self.crash_for = set(crash_for)

    def send(self, to, subject, text, sender=None):
        if to in self.crash_for:
            raise RuntimeError("mailer exploded")
        if to in self.fail_for:
            return MailResult(ok=False, error="500: provider unavailable")
        self.sent.append({"to": to, "subject": subject, "text": text})
        return MailResult(ok=True, provider_message_id=f"msg-{len(self.sent)}")
