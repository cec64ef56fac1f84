import sys
import os

# Add the current directory to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import app.db.base  # noqa: F401  registers every model on Base.metadata
from app.db.base_class import Base
from app.db.session import make_session_factory
from app.deps import Principal, Role
from app.engine import SchedulingEngine
from app.models.availability import AvailabilityKind
from app.models.registration import CourseRegistration, RegistrationStatus
from app.services.availability import AvailabilityManager
from app.services.booking import BookingCoordinator
from app.services.conflicts import ConflictDetector
from app.services.scheduler import SessionScheduler
from app.utils.clock import FixedClock

UTC_TZ = ZoneInfo("UTC")

# 2026-10-19 is a Monday; sessions in the tests happen one week later
NOW = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
MONDAY = date(2026, 10, 26)
TUESDAY = date(2026, 10, 27)

TUTOR_ID = "tutor-1"
OTHER_TUTOR_ID = "tutor-2"
SUBJECT_ID = "math"


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


class RecordingNotifier:
    """Keeps every notification in memory, in emission order."""

    def __init__(self):
        self.sent = []

    def notify(self, user_id, event_type, payload):
        self.sent.append((user_id, getattr(event_type, "value", event_type), payload))

    def events(self, event_type):
        return [(u, p) for u, e, p in self.sent if e == event_type]


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def TestingSessionLocal(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def db_session(TestingSessionLocal):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def registrations(TestingSessionLocal):
    """student-1 and student-2 are ACTIVE with tutor-1 in math; student-3 is not."""
    rows = [
        ("student-1", TUTOR_ID, SUBJECT_ID, RegistrationStatus.ACTIVE),
        ("student-2", TUTOR_ID, SUBJECT_ID, RegistrationStatus.ACTIVE),
        ("student-3", TUTOR_ID, SUBJECT_ID, RegistrationStatus.INACTIVE),
        ("student-3", TUTOR_ID, "physics", RegistrationStatus.ACTIVE),
    ]
    with TestingSessionLocal() as db:
        db.add_all(
            CourseRegistration(
                student_id=s, tutor_id=t, subject_id=sub, status=st, registered_at=NOW
            )
            for s, t, sub, st in rows
        )
        db.commit()
    return rows


@pytest.fixture
def availability(clock):
    return AvailabilityManager(clock, tz=UTC_TZ)


@pytest.fixture
def conflicts(availability):
    return ConflictDetector(availability)


@pytest.fixture
def scheduler(conflicts, clock):
    return SessionScheduler(conflicts, clock, tz=UTC_TZ, min_minutes=60)


@pytest.fixture
def booking(clock):
    return BookingCoordinator(clock)


@pytest.fixture
def scheduling(TestingSessionLocal, clock, notifier, registrations):
    return SchedulingEngine(
        TestingSessionLocal,
        clock=clock,
        notifier=notifier,
        tz=UTC_TZ,
        min_session_minutes=60,
    )


@pytest.fixture
def tutor():
    return Principal(TUTOR_ID, Role.TUTOR)


@pytest.fixture
def other_tutor():
    return Principal(OTHER_TUTOR_ID, Role.TUTOR)


@pytest.fixture
def student():
    return Principal("student-1", Role.STUDENT)


@pytest.fixture
def student2():
    return Principal("student-2", Role.STUDENT)


@pytest.fixture
def unregistered_student():
    return Principal("student-3", Role.STUDENT)


@pytest.fixture
def monday_window(scheduling, tutor):
    """RECURRING Monday 09:00-12:00 for tutor-1."""
    return scheduling.declare_availability(
        tutor,
        {
            "kind": AvailabilityKind.RECURRING,
            "day_of_week": 1,
            "start_time": "09:00",
            "end_time": "12:00",
        },
    )


@pytest.fixture
def session_payload():
    """Builds an ONLINE math session payload on MONDAY between the given hours."""

    def _make(start_hour=9, end_hour=10, day=MONDAY, **overrides):
        payload = {
            "subject_id": SUBJECT_ID,
            "title": "Reforço de frações",
            "starts_at": at(day, start_hour),
            "ends_at": at(day, 0) + timedelta(hours=end_hour),
            "session_type": "ONLINE",
            "meeting_link": "https://meet.example.com/abc",
            "max_participants": 2,
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def open_session(scheduling, tutor, monday_window, session_payload):
    """A CONFIRMED Monday 09:00-10:00 session with two seats."""
    return scheduling.open_session(tutor, session_payload())
