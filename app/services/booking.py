from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import (
    AlreadyBooked,
    CapacityExceeded,
    InvalidState,
    NotFoundError,
    RegistrationRequired,
)
from app.models.tutor_session import (
    OPEN_STATUSES,
    SessionParticipant,
    SessionStatus,
    TutorSession,
)
from app.services.registration import RegistrationLookup, SqlRegistrationLookup
from app.utils.clock import Clock

# seats can no longer be given back once the session has started
_LOCKED_STATUSES = (SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED)


class BookingCoordinator:
    """
    Participant bookkeeping. Every add/remove also moves
    ``participant_count``, so the change is a version-checked UPDATE of the
    session row: two racing bookings on the same session can't both commit.
    """

    def __init__(
        self, clock: Clock, registrations: RegistrationLookup | None = None
    ) -> None:
        self.clock = clock
        self.registrations = registrations

    def _lookup(self, db: Session) -> RegistrationLookup:
        return self.registrations or SqlRegistrationLookup(db)

    @staticmethod
    def _get_session(db: Session, session_id: int) -> TutorSession:
        s = db.get(TutorSession, session_id, with_for_update=True)
        if not s:
            raise NotFoundError("Sessão não encontrada.", session_id=session_id)
        return s

    def book(
        self, db: Session, student_id: str, session_id: int
    ) -> tuple[TutorSession, SessionParticipant]:
        s = self._get_session(db, session_id)
        if s.status not in OPEN_STATUSES:
            raise InvalidState(
                "Sessão não está aberta para agendamento.", status=s.status.value
            )
        if s.participant_count >= s.max_participants:
            raise CapacityExceeded(
                "Sessão lotada.", max_participants=s.max_participants
            )
        if not self._lookup(db).has_active_registration(
            student_id, s.tutor_id, s.subject_id
        ):
            raise RegistrationRequired(
                "Você precisa de uma matrícula ativa com este tutor nesta disciplina.",
                tutor_id=s.tutor_id,
                subject_id=s.subject_id,
            )
        if s.participant(student_id) is not None:
            raise AlreadyBooked("Você já está inscrito nesta sessão.")

        now = self.clock.now()
        p = SessionParticipant(student_id=student_id, registered_at=now, attended=False)
        s.participants.append(p)
        s.participant_count += 1
        s.updated_at = now
        db.flush()
        return s, p

    def cancel_booking(self, db: Session, student_id: str, session_id: int) -> TutorSession:
        s = self._get_session(db, session_id)
        p = s.participant(student_id)
        if p is None:
            raise NotFoundError(
                "Inscrição não encontrada nesta sessão.", session_id=session_id
            )
        if s.status in _LOCKED_STATUSES:
            raise InvalidState(
                "Não é possível cancelar após o início da sessão.",
                status=s.status.value,
            )

        s.participants.remove(p)
        s.participant_count -= 1
        s.updated_at = self.clock.now()
        db.flush()
        return s

    @staticmethod
    def _student_filter(student_id: str, status: SessionStatus | None) -> list:
        conds = [SessionParticipant.student_id == student_id]
        if status is not None:
            conds.append(TutorSession.status == status)
        return conds

    @classmethod
    def find_for_student(
        cls,
        db: Session,
        student_id: str,
        status: SessionStatus | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[tuple[TutorSession, SessionParticipant]]:
        stmt = (
            select(TutorSession, SessionParticipant)
            .join(SessionParticipant, SessionParticipant.session_id == TutorSession.id)
            .where(*cls._student_filter(student_id, status))
            .order_by(TutorSession.starts_at.desc(), TutorSession.id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [(s, p) for s, p in db.execute(stmt).all()]

    @classmethod
    def count_for_student(
        cls, db: Session, student_id: str, status: SessionStatus | None = None
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(TutorSession)
            .join(SessionParticipant, SessionParticipant.session_id == TutorSession.id)
            .where(*cls._student_filter(student_id, status))
        )
        return db.execute(stmt).scalar_one()
