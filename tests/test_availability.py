import random
from datetime import date, time, timedelta

import pytest

from app.core.errors import (
    InvalidPayload,
    InvalidRange,
    InvalidTimeFormat,
    MissingCompanionField,
    NotFoundError,
    OverlapConflict,
    OwnershipViolation,
)
from app.models.availability import AvailabilityKind
from app.models.calendar import TutorCalendar
from app.schemas.availability import AvailabilityIn, AvailabilityPatch
from app.services.time_window import overlaps

from conftest import MONDAY, TUESDAY, TUTOR_ID, at


def recurring(dow, start, end, **kw):
    return AvailabilityIn(
        kind=AvailabilityKind.RECURRING, day_of_week=dow, start_time=start, end_time=end, **kw
    )


def on_date(d, start, end):
    return AvailabilityIn(
        kind=AvailabilityKind.SPECIFIC_DATE, specific_date=d, start_time=start, end_time=end
    )


def test_declare_recurring_window(db_session, availability):
    row = availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00", max_slots=3))
    assert row.id is not None
    assert row.is_active is True
    assert (row.start_time, row.end_time, row.max_slots) == (time(9), time(12), 3)


def test_overlapping_window_same_weekday_is_rejected(db_session, availability):
    """Scenario A: 09-12 then 11-13 on the same weekday."""
    availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    with pytest.raises(OverlapConflict):
        availability.declare(db_session, TUTOR_ID, recurring(1, "11:00", "13:00"))


def test_adjacent_and_other_day_windows_are_fine(db_session, availability):
    availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    availability.declare(db_session, TUTOR_ID, recurring(1, "12:00", "14:00"))
    availability.declare(db_session, TUTOR_ID, recurring(2, "09:00", "12:00"))
    # a specific date is a different discriminator, even if it is a Monday
    availability.declare(db_session, TUTOR_ID, on_date(MONDAY, "10:00", "11:00"))
    # other tutors never conflict
    availability.declare(db_session, "tutor-2", recurring(1, "09:00", "12:00"))

    assert len(availability.list_for_tutor(db_session, TUTOR_ID)) == 4


def test_specific_date_overlap(db_session, availability):
    availability.declare(db_session, TUTOR_ID, on_date(MONDAY, "14:00", "16:00"))
    with pytest.raises(OverlapConflict):
        availability.declare(db_session, TUTOR_ID, on_date(MONDAY, "13:00", "15:00"))
    availability.declare(db_session, TUTOR_ID, on_date(TUESDAY, "13:00", "15:00"))


@pytest.mark.parametrize(
    "data,error",
    [
        (dict(kind=AvailabilityKind.RECURRING, start_time="09:00", end_time="10:00"), MissingCompanionField),
        (
            dict(kind=AvailabilityKind.SPECIFIC_DATE, start_time="09:00", end_time="10:00"),
            MissingCompanionField,
        ),
        (
            dict(
                kind=AvailabilityKind.SPECIFIC_DATE,
                specific_date=date(2026, 10, 26),
                day_of_week=1,
                start_time="09:00",
                end_time="10:00",
            ),
            InvalidPayload,
        ),
        (
            dict(kind=AvailabilityKind.RECURRING, day_of_week=7, start_time="09:00", end_time="10:00"),
            InvalidPayload,
        ),
        (
            dict(kind=AvailabilityKind.RECURRING, day_of_week=1, start_time="09:30", end_time="10:00"),
            InvalidTimeFormat,
        ),
        (
            dict(kind=AvailabilityKind.RECURRING, day_of_week=1, start_time="12:00", end_time="09:00"),
            InvalidRange,
        ),
    ],
)
def test_declare_validation(db_session, availability, data, error):
    with pytest.raises(error):
        availability.declare(db_session, TUTOR_ID, AvailabilityIn(**data))
    assert availability.list_for_tutor(db_session, TUTOR_ID, include_inactive=True) == []


def test_declare_advances_tutor_calendar(db_session, availability):
    availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "10:00"))
    availability.declare(db_session, TUTOR_ID, recurring(1, "10:00", "11:00"))
    assert db_session.get(TutorCalendar, TUTOR_ID).version == 2


def test_update_checks_existence_and_ownership(db_session, availability):
    row = availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    with pytest.raises(NotFoundError):
        availability.update(db_session, 9999, TUTOR_ID, AvailabilityPatch(max_slots=2))
    with pytest.raises(OwnershipViolation):
        availability.update(db_session, row.id, "tutor-2", AvailabilityPatch(max_slots=2))


def test_update_rechecks_overlap_excluding_itself(db_session, availability):
    first = availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    availability.declare(db_session, TUTOR_ID, recurring(1, "14:00", "16:00"))

    # moving inside its own old range never conflicts with itself
    moved = availability.update(
        db_session, first.id, TUTOR_ID, AvailabilityPatch(start_time="10:00", end_time="13:00")
    )
    assert (moved.start_time, moved.end_time) == (time(10), time(13))

    with pytest.raises(OverlapConflict):
        availability.update(db_session, first.id, TUTOR_ID, AvailabilityPatch(end_time="15:00"))


def test_update_rejects_null_fields(db_session, availability):
    row = availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    with pytest.raises(InvalidPayload):
        availability.update(db_session, row.id, TUTOR_ID, AvailabilityPatch(start_time=None))


def test_deactivate_frees_the_range_and_reactivation_rechecks(db_session, availability):
    first = availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    availability.deactivate(db_session, first.id, TUTOR_ID)
    assert first.is_active is False

    availability.declare(db_session, TUTOR_ID, recurring(1, "10:00", "11:00"))
    with pytest.raises(OverlapConflict):
        availability.update(db_session, first.id, TUTOR_ID, AvailabilityPatch(is_active=True))

    assert len(availability.list_for_tutor(db_session, TUTOR_ID)) == 1
    assert len(availability.list_for_tutor(db_session, TUTOR_ID, include_inactive=True)) == 2


def test_deactivate_requires_owner(db_session, availability):
    row = availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    with pytest.raises(OwnershipViolation):
        availability.deactivate(db_session, row.id, "tutor-2")
    assert row.is_active is True


@pytest.mark.parametrize(
    "start,end,expected",
    [
        (at(MONDAY, 9), at(MONDAY, 10), True),
        (at(MONDAY, 9), at(MONDAY, 12), True),
        (at(MONDAY, 11), at(MONDAY, 13), False),
        (at(MONDAY, 8), at(MONDAY, 10), False),
        (at(TUESDAY, 9), at(TUESDAY, 10), False),
        (at(MONDAY + timedelta(days=7), 10), at(MONDAY + timedelta(days=7), 11), True),
    ],
)
def test_is_covered_by_recurring_window(db_session, availability, start, end, expected):
    availability.declare(db_session, TUTOR_ID, recurring(1, "09:00", "12:00"))
    assert availability.is_covered(db_session, TUTOR_ID, start, end) is expected


def test_is_covered_by_specific_date_and_ignores_inactive(db_session, availability):
    row = availability.declare(db_session, TUTOR_ID, on_date(TUESDAY, "14:00", "18:00"))
    assert availability.is_covered(db_session, TUTOR_ID, at(TUESDAY, 15), at(TUESDAY, 17))
    assert not availability.is_covered(db_session, "tutor-2", at(TUESDAY, 15), at(TUESDAY, 17))

    availability.deactivate(db_session, row.id, TUTOR_ID)
    assert not availability.is_covered(db_session, TUTOR_ID, at(TUESDAY, 15), at(TUESDAY, 17))


def test_candidate_crossing_midnight_is_never_covered(db_session, availability):
    availability.declare(db_session, TUTOR_ID, recurring(1, "00:00", "23:00"))
    availability.declare(db_session, TUTOR_ID, recurring(2, "00:00", "23:00"))
    assert not availability.is_covered(
        db_session, TUTOR_ID, at(MONDAY, 22), at(TUESDAY, 1)
    )


def test_random_declarations_never_leave_overlapping_active_windows(db_session, availability):
    rng = random.Random(1234)
    for _ in range(60):
        start = rng.randint(0, 21)
        end = rng.randint(start + 1, 23)
        data = recurring(rng.randint(0, 6), f"{start:02d}:00", f"{end:02d}:00")
        try:
            availability.declare(db_session, TUTOR_ID, data)
        except OverlapConflict:
            pass

    rows = availability.list_for_tutor(db_session, TUTOR_ID)
    assert rows
    for i, a in enumerate(rows):
        for b in rows[i + 1 :]:
            if a.day_of_week == b.day_of_week:
                assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)
