from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import (
    CapacityExceeded,
    InvalidPayload,
    InvalidState,
    InvalidTransition,
    MissingCompanionField,
    NotFoundError,
)
from app.core.logging import get_logger
from app.db.calendar_lock import advance_calendar, claim_calendar
from app.deps import Authorizer, OwnershipAuthorizer
from app.models.tutor_session import (
    OPEN_STATUSES,
    SessionStatus,
    SessionType,
    TutorSession,
)
from app.schemas.sessions import SessionIn, SessionPatch
from app.services.conflicts import ConflictDetector
from app.services.time_window import (
    DEFAULT_MIN_MINUTES,
    validate_hour_aligned,
    validate_range,
)
from app.utils.clock import Clock
from app.utils.tz import to_local, to_utc, zone

_HTTP_URL = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)


@dataclass(frozen=True)
class Timing:
    starts_at: datetime
    ends_at: datetime
    minutes: int


class SessionScheduler:
    """
    Session lifecycle:

        PENDING ──confirm──> CONFIRMED ──cancel──> CANCELLED
           └──reject──> REJECTED

    CONFIRMED and SCHEDULED are the same committed state. IN_PROGRESS and
    COMPLETED are set from outside; REJECTED, CANCELLED and COMPLETED are
    terminal.
    """

    def __init__(
        self,
        conflicts: ConflictDetector,
        clock: Clock,
        *,
        authorizer: Authorizer | None = None,
        tz: ZoneInfo | None = None,
        min_minutes: int = DEFAULT_MIN_MINUTES,
    ) -> None:
        self.conflicts = conflicts
        self.clock = clock
        self.authorizer = authorizer or OwnershipAuthorizer()
        self.tz = tz or zone()
        self.min_minutes = min_minutes

    # ---------- validation (pure) ----------

    def validate_timing(self, starts_at: datetime, ends_at: datetime) -> Timing:
        start = to_utc(starts_at, self.tz)
        end = to_utc(ends_at, self.tz)
        validate_hour_aligned(to_local(start, self.tz))
        validate_hour_aligned(to_local(end, self.tz))
        minutes = validate_range(start, end, self.min_minutes)
        return Timing(start, end, minutes)

    @staticmethod
    def validate_type(
        session_type: SessionType, meeting_link: str | None, location: str | None
    ) -> tuple[str | None, str | None]:
        """Returns the (meeting_link, location) pair to store."""
        if session_type == SessionType.ONLINE:
            link = (meeting_link or "").strip()
            if not link:
                raise MissingCompanionField("Sessões ONLINE exigem meeting_link.")
            if not _HTTP_URL.match(link):
                raise InvalidPayload("meeting_link deve ser uma URL http(s) válida.")
            return link, None
        loc = (location or "").strip()
        if not loc:
            raise MissingCompanionField("Sessões OFFLINE exigem location.")
        return None, loc

    # ---------- helpers ----------

    def _load_owned(self, db: Session, session_id: int, tutor_id: str) -> TutorSession:
        s = db.get(TutorSession, session_id, with_for_update=True)
        if not s:
            raise NotFoundError("Sessão não encontrada.", session_id=session_id)
        self.authorizer.ensure_owner(tutor_id, s.tutor_id, "session")
        return s

    def _create(
        self,
        db: Session,
        tutor_id: str,
        data: SessionIn,
        *,
        status: SessionStatus,
        requested_by: str | None = None,
    ) -> TutorSession:
        timing = self.validate_timing(data.starts_at, data.ends_at)
        link, loc = self.validate_type(data.session_type, data.meeting_link, data.location)
        now = self.clock.now()

        seen = claim_calendar(db, tutor_id, now)
        self.conflicts.ensure_slot_free(db, tutor_id, timing.starts_at, timing.ends_at)

        s = TutorSession(
            tutor_id=tutor_id,
            subject_id=data.subject_id,
            title=data.title.strip(),
            description=data.description,
            starts_at=timing.starts_at,
            ends_at=timing.ends_at,
            duration_minutes=timing.minutes,
            session_type=data.session_type,
            meeting_link=link,
            location=loc,
            max_participants=data.max_participants,
            participant_count=0,
            status=status,
            requested_by=requested_by,
            confirmed_at=now if status == SessionStatus.CONFIRMED else None,
            created_at=now,
            updated_at=now,
        )
        db.add(s)
        db.flush()
        advance_calendar(db, tutor_id, seen, now)
        return s

    # ---------- entry points ----------

    def open(self, db: Session, tutor_id: str, data: SessionIn) -> TutorSession:
        """Tutor-direct creation: the slot is committed right away."""
        return self._create(db, tutor_id, data, status=SessionStatus.CONFIRMED)

    def request(
        self, db: Session, student_id: str, tutor_id: str, data: SessionIn
    ) -> TutorSession:
        """Student request: holds the slot as PENDING until the tutor decides."""
        return self._create(
            db, tutor_id, data, status=SessionStatus.PENDING, requested_by=student_id
        )

    # ---------- transitions ----------

    def confirm(self, db: Session, tutor_id: str, session_id: int) -> TutorSession:
        s = self._load_owned(db, session_id, tutor_id)
        if s.status != SessionStatus.PENDING:
            raise InvalidTransition(
                "Apenas sessões pendentes podem ser confirmadas.",
                status=s.status.value,
            )
        now = self.clock.now()
        seen = claim_calendar(db, s.tutor_id, now)
        # the window may have been deactivated since the request
        self.conflicts.ensure_slot_free(
            db, s.tutor_id, s.starts_at, s.ends_at, exclude_session_id=s.id
        )
        s.status = SessionStatus.CONFIRMED
        s.confirmed_at = now
        s.updated_at = now
        db.flush()
        advance_calendar(db, s.tutor_id, seen, now)
        return s

    def reject(
        self, db: Session, tutor_id: str, session_id: int, reason: str | None
    ) -> TutorSession:
        s = self._load_owned(db, session_id, tutor_id)
        if s.status != SessionStatus.PENDING:
            raise InvalidTransition(
                "Apenas sessões pendentes podem ser rejeitadas.",
                status=s.status.value,
            )
        reason = (reason or "").strip()
        if not reason:
            raise InvalidPayload("Informe o motivo da rejeição.")
        now = self.clock.now()
        s.status = SessionStatus.REJECTED
        s.rejection_reason = reason[:500]
        s.rejected_at = now
        s.updated_at = now
        db.flush()
        return s

    def update(
        self, db: Session, tutor_id: str, session_id: int, patch: SessionPatch
    ) -> tuple[TutorSession, list[str]]:
        """Returns the session and the names of the fields that actually changed."""
        fields = patch.model_fields_set
        for name in ("title", "starts_at", "ends_at", "session_type", "max_participants"):
            if name in fields and getattr(patch, name) is None:
                raise InvalidPayload(f"{name} não pode ser nulo.")

        s = self._load_owned(db, session_id, tutor_id)
        if s.status not in OPEN_STATUSES:
            raise InvalidState(
                "Só é possível editar sessões confirmadas/agendadas.",
                status=s.status.value,
            )

        start = to_utc(patch.starts_at, self.tz) if "starts_at" in fields else s.starts_at
        end = to_utc(patch.ends_at, self.tz) if "ends_at" in fields else s.ends_at
        timing_changed = (start, end) != (s.starts_at, s.ends_at)
        timing = self.validate_timing(start, end) if timing_changed else None

        stype = patch.session_type if "session_type" in fields else s.session_type
        link = patch.meeting_link if "meeting_link" in fields else s.meeting_link
        loc = patch.location if "location" in fields else s.location
        # a companion field sent explicitly must belong to the resulting type
        foreign = "location" if stype == SessionType.ONLINE else "meeting_link"
        if foreign in fields and getattr(patch, foreign) is not None:
            raise InvalidPayload(
                f"{foreign} não se aplica a sessões {stype.value}.", field=foreign
            )
        if fields & {"session_type", "meeting_link", "location"}:
            link, loc = self.validate_type(stype, link, loc)

        if "max_participants" in fields and patch.max_participants < s.participant_count:
            raise CapacityExceeded(
                "Capacidade não pode ficar abaixo do número de inscritos.",
                participant_count=s.participant_count,
            )

        now = self.clock.now()
        seen = None
        if timing is not None:
            seen = claim_calendar(db, s.tutor_id, now)
            self.conflicts.ensure_slot_free(
                db, s.tutor_id, timing.starts_at, timing.ends_at, exclude_session_id=s.id
            )

        new_values = {
            "title": patch.title.strip() if "title" in fields else s.title,
            "description": patch.description if "description" in fields else s.description,
            "session_type": stype,
            "meeting_link": link,
            "location": loc,
            "max_participants": (
                patch.max_participants if "max_participants" in fields else s.max_participants
            ),
        }
        if timing is not None:
            new_values.update(
                starts_at=timing.starts_at,
                ends_at=timing.ends_at,
                duration_minutes=timing.minutes,
            )

        changed = [k for k, v in new_values.items() if getattr(s, k) != v]
        for k in changed:
            setattr(s, k, new_values[k])
        if changed:
            s.updated_at = now
            db.flush()
        if seen is not None:
            advance_calendar(db, s.tutor_id, seen, now)
        get_logger().debug("session.update.diff", session_id=s.id, changed=changed)
        return s, changed

    def cancel(self, db: Session, tutor_id: str, session_id: int) -> TutorSession:
        s = self._load_owned(db, session_id, tutor_id)
        if s.status not in OPEN_STATUSES:
            raise InvalidTransition(
                "Só é possível cancelar sessões confirmadas/agendadas.",
                status=s.status.value,
            )
        now = self.clock.now()
        s.status = SessionStatus.CANCELLED
        s.cancelled_at = now
        s.updated_at = now
        db.flush()
        return s

    # ---------- reads ----------

    @staticmethod
    def _tutor_filter(
        tutor_id: str,
        statuses: tuple[SessionStatus, ...],
        subject_id: str | None,
        date_from: datetime | None,
        date_to: datetime | None,
    ) -> list:
        conds = [TutorSession.tutor_id == tutor_id, TutorSession.status.in_(statuses)]
        if subject_id is not None:
            conds.append(TutorSession.subject_id == subject_id)
        if date_from is not None:
            conds.append(TutorSession.starts_at >= date_from)
        if date_to is not None:
            conds.append(TutorSession.starts_at < date_to)
        return conds

    @classmethod
    def find_for_tutor(
        cls,
        db: Session,
        tutor_id: str,
        statuses: tuple[SessionStatus, ...] = OPEN_STATUSES,
        subject_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[TutorSession]:
        stmt = (
            select(TutorSession)
            .where(*cls._tutor_filter(tutor_id, statuses, subject_id, date_from, date_to))
            .order_by(TutorSession.starts_at.asc(), TutorSession.id.asc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(db.execute(stmt).scalars())

    @classmethod
    def count_for_tutor(
        cls,
        db: Session,
        tutor_id: str,
        statuses: tuple[SessionStatus, ...] = OPEN_STATUSES,
        subject_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(TutorSession)
            .where(*cls._tutor_filter(tutor_id, statuses, subject_id, date_from, date_to))
        )
        return db.execute(stmt).scalar_one()
