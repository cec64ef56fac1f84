from datetime import datetime, timedelta
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import Session

from app.core.errors import (
    DurationTooShort,
    InvalidPayload,
    InvalidRange,
    InvalidTimeFormat,
    MissingCompanionField,
    ValidationError,
)
from app.models.tutor_session import SessionType
from app.schemas.sessions import SessionIn
from app.services.scheduler import SessionScheduler

from conftest import MONDAY, TUTOR_ID, at


def make_in(start, end, **kw):
    data = dict(
        subject_id="math",
        title="Aula",
        starts_at=start,
        ends_at=end,
        session_type=SessionType.ONLINE,
        meeting_link="https://meet.example.com/x",
    )
    data.update(kw)
    return SessionIn(**data)


@pytest.mark.parametrize(
    "data,error",
    [
        # Scenario C: minutes != 0
        (make_in(at(MONDAY, 9, 15), at(MONDAY, 10, 15)), InvalidTimeFormat),
        (make_in(at(MONDAY, 9), at(MONDAY, 10, 30)), InvalidTimeFormat),
        (make_in(at(MONDAY, 10), at(MONDAY, 9)), InvalidRange),
        (make_in(at(MONDAY, 9), at(MONDAY, 9)), InvalidRange),
        (make_in(at(MONDAY, 9), at(MONDAY, 10), meeting_link=None), MissingCompanionField),
        (make_in(at(MONDAY, 9), at(MONDAY, 10), meeting_link="meet/abc"), InvalidPayload),
        (
            make_in(at(MONDAY, 9), at(MONDAY, 10), session_type=SessionType.OFFLINE, location=" "),
            MissingCompanionField,
        ),
    ],
)
def test_request_validation_fails_before_any_persistence_call(scheduler, data, error):
    db = Mock(spec=Session)
    with pytest.raises(error) as exc:
        scheduler.request(db, "student-1", TUTOR_ID, data)
    assert isinstance(exc.value, ValidationError)
    assert db.method_calls == []


def test_open_validation_fails_before_any_persistence_call(scheduler):
    db = Mock(spec=Session)
    with pytest.raises(InvalidTimeFormat):
        scheduler.open(db, TUTOR_ID, make_in(at(MONDAY, 9, 15), at(MONDAY, 10, 15)))
    assert db.method_calls == []


def test_minimum_duration_is_configurable(conflicts, clock):
    strict = SessionScheduler(conflicts, clock, tz=ZoneInfo("UTC"), min_minutes=120)
    with pytest.raises(DurationTooShort):
        strict.validate_timing(at(MONDAY, 9), at(MONDAY, 10))
    assert strict.validate_timing(at(MONDAY, 9), at(MONDAY, 11)).minutes == 120


def test_naive_times_are_read_in_the_schedule_zone(conflicts, clock):
    sp = SessionScheduler(conflicts, clock, tz=ZoneInfo("America/Sao_Paulo"))
    timing = sp.validate_timing(datetime(2026, 10, 26, 9), datetime(2026, 10, 26, 10))
    # São Paulo is UTC-3
    assert timing.starts_at == at(MONDAY, 12)
    assert timing.ends_at - timing.starts_at == timedelta(hours=1)


def test_hour_alignment_is_checked_in_local_time(conflicts, clock):
    # Kolkata is UTC+5:30: a whole UTC hour is a half local hour
    kolkata = SessionScheduler(conflicts, clock, tz=ZoneInfo("Asia/Kolkata"))
    with pytest.raises(InvalidTimeFormat):
        kolkata.validate_timing(at(MONDAY, 9), at(MONDAY, 10))
    kolkata.validate_timing(at(MONDAY, 9, 30), at(MONDAY, 10, 30))


def test_validate_type_keeps_only_the_matching_companion(scheduler):
    assert scheduler.validate_type(
        SessionType.ONLINE, " https://meet.example.com/x ", "Sala 1"
    ) == ("https://meet.example.com/x", None)
    assert scheduler.validate_type(SessionType.OFFLINE, "https://x.io", "Sala 1") == (
        None,
        "Sala 1",
    )
