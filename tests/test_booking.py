import pytest

from app.core.errors import (
    AlreadyBooked,
    CapacityExceeded,
    ConflictError,
    InvalidState,
    NotFoundError,
    PermissionDenied,
    RegistrationRequired,
)
from app.deps import Principal, Role
from app.models.tutor_session import SessionParticipant, SessionStatus, TutorSession

from conftest import NOW


def participants(session_factory, session_id):
    with session_factory() as db:
        s = db.get(TutorSession, session_id)
        return [(p.student_id, p.registered_at, p.attended) for p in s.participants], s.participant_count


def test_book_appointment(scheduling, student, open_session, notifier):
    out = scheduling.book_appointment(student, open_session.id)
    assert out.session_id == open_session.id
    assert out.student_id == "student-1"
    assert out.registered_at == "2026-10-19T08:00:00Z"
    assert out.attended is False
    assert [u for u, _ in notifier.events("APPOINTMENT_CREATED")] == ["tutor-1"]


def test_scenario_d_registration_required(scheduling, unregistered_student, open_session, TestingSessionLocal):
    before = participants(TestingSessionLocal, open_session.id)
    with pytest.raises(RegistrationRequired):
        scheduling.book_appointment(unregistered_student, open_session.id)
    assert participants(TestingSessionLocal, open_session.id) == before


def test_scenario_e_capacity(scheduling, tutor, student, student2, open_session, TestingSessionLocal):
    scheduling.update_session(tutor, open_session.id, {"max_participants": 1})
    scheduling.book_appointment(student, open_session.id)

    with pytest.raises(CapacityExceeded) as exc:
        scheduling.book_appointment(student2, open_session.id)
    assert isinstance(exc.value, ConflictError)

    rows, count = participants(TestingSessionLocal, open_session.id)
    assert [r[0] for r in rows] == ["student-1"]
    assert count == 1


def test_duplicate_booking(scheduling, student, open_session):
    scheduling.book_appointment(student, open_session.id)
    with pytest.raises(AlreadyBooked):
        scheduling.book_appointment(student, open_session.id)


def test_book_guards(scheduling, tutor, student, monday_window, session_payload):
    with pytest.raises(NotFoundError):
        scheduling.book_appointment(student, 9999)

    pending = scheduling.request_session(student, tutor.user_id, session_payload(10, 11))
    with pytest.raises(InvalidState):
        scheduling.book_appointment(student, pending.id)

    with pytest.raises(PermissionDenied):
        scheduling.book_appointment(tutor, pending.id)


def test_book_then_cancel_restores_participants(scheduling, student, student2, open_session, TestingSessionLocal):
    scheduling.book_appointment(student2, open_session.id)
    before = participants(TestingSessionLocal, open_session.id)

    scheduling.book_appointment(student, open_session.id)
    out = scheduling.cancel_appointment(student, open_session.id)

    assert out.participant_count == 1
    assert participants(TestingSessionLocal, open_session.id) == before


def test_cancel_appointment_guards(scheduling, student, open_session, TestingSessionLocal, notifier):
    with pytest.raises(NotFoundError):
        scheduling.cancel_appointment(student, open_session.id)

    scheduling.book_appointment(student, open_session.id)
    with TestingSessionLocal() as db:
        db.get(TutorSession, open_session.id).status = SessionStatus.IN_PROGRESS
        db.commit()
    with pytest.raises(InvalidState):
        scheduling.cancel_appointment(student, open_session.id)
    assert notifier.events("APPOINTMENT_CANCELLED") == []


def test_cancel_appointment_notifies_tutor(scheduling, student, open_session, notifier):
    scheduling.book_appointment(student, open_session.id)
    scheduling.cancel_appointment(student, open_session.id)
    assert [u for u, _ in notifier.events("APPOINTMENT_CANCELLED")] == ["tutor-1"]


def test_participants_never_exceed_capacity(scheduling, open_session, TestingSessionLocal, registrations):
    students = [Principal(f"student-{i}", Role.STUDENT) for i in (1, 2, 1, 2)]
    for who in students:
        try:
            scheduling.book_appointment(who, open_session.id)
        except ConflictError:
            pass
    rows, count = participants(TestingSessionLocal, open_session.id)
    assert count == len(rows) == open_session.max_participants


def test_student_listing(scheduling, tutor, student, open_session, monday_window, session_payload):
    later = scheduling.open_session(tutor, session_payload(11, 12))
    scheduling.book_appointment(student, open_session.id)
    scheduling.book_appointment(student, later.id)

    rows = scheduling.list_student_sessions(student.user_id).sessions
    assert [r.session_id for r in rows] == [later.id, open_session.id]
    assert scheduling.list_student_sessions(student.user_id, status=SessionStatus.CANCELLED).total == 0


def test_participant_row_is_stamped_by_the_clock(booking, db_session, open_session, registrations):
    s, p = booking.book(db_session, "student-1", open_session.id)
    assert isinstance(p, SessionParticipant)
    assert p.registered_at == NOW
    assert s.available_slots == 1


def test_student_listing_is_paginated(scheduling, tutor, student, session_payload):
    scheduling.declare_availability(
        tutor, {"kind": "RECURRING", "day_of_week": 1, "start_time": "06:00", "end_time": "22:00"}
    )
    ids = [scheduling.open_session(tutor, session_payload(h, h + 1)).id for h in range(6, 11)]
    for sid in ids:
        scheduling.book_appointment(student, sid)

    page = scheduling.list_student_sessions(student.user_id, page=2, limit=2)
    assert (page.total, page.page, page.limit, page.total_pages) == (5, 2, 2, 3)
    # most recent first
    assert [r.session_id for r in page.sessions] == [ids[2], ids[1]]

    last = scheduling.list_student_sessions(student.user_id, page=3, limit=2)
    assert [r.session_id for r in last.sessions] == [ids[0]]
