"""
In-process entry point of the scheduling & booking engine.

Each public operation runs as a single unit of work: guards, writes, the
audit entry and the calendar compare-and-update commit together or not at
all. Notifications are queued during the operation and only emitted after
a successful commit.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.audit.helpers import record_audit
from app.core.errors import (
    AlreadyBooked,
    CapacityExceeded,
    ConcurrentModification,
    ConflictError,
    InvalidPayload,
    SchedulingError,
    SlotConflict,
)
from app.core.logging import get_logger, operation_context
from app.core.settings import settings
from app.db.session import SessionLocal
from app.deps import Authorizer, OwnershipAuthorizer, Principal, Role, require_roles
from app.models.availability import AvailabilityKind
from app.models.tutor_session import SessionStatus, TutorSession
from app.schemas.availability import AvailabilityIn, AvailabilityOut, AvailabilityPatch
from app.schemas.sessions import (
    BookingOut,
    BookingPage,
    CancelBookingOut,
    SessionIn,
    SessionOut,
    SessionPage,
    SessionPatch,
)
from app.services.availability import AvailabilityManager
from app.services.booking import BookingCoordinator
from app.services.conflicts import ConflictDetector
from app.services.notifier import (
    DatabaseNotifier,
    LogNotifier,
    NotificationEvent,
    Notifier,
    session_payload,
)
from app.services.registration import RegistrationLookup, SqlRegistrationLookup
from app.services.scheduler import SessionScheduler
from app.utils.clock import Clock, SystemClock
from app.utils.tz import combine_local_to_utc, to_utc, zone

M = TypeVar("M", bound=BaseModel)

# constraint / column fragments as they show up in driver messages
_BOOKED_MARKERS = ("uq_participant_session_student", "session_participants.student_id")
_CAPACITY_MARKERS = ("participant_count_lte_max",)
_SLOT_MARKERS = ("ux_tutor_sessions_tutor_start_committed", "tutor_sessions.starts_at")

DEFAULT_PAGE_SIZE = 20


def _page_window(page: int, limit: int) -> int:
    """Validates 1-based paging arguments and returns the row offset."""
    if page < 1 or limit < 1:
        raise InvalidPayload("page e limit devem ser >= 1.", page=page, limit=limit)
    return (page - 1) * limit


def _translate_integrity(e: IntegrityError) -> ConflictError:
    msg = str(e.orig)
    if any(m in msg for m in _BOOKED_MARKERS):
        return AlreadyBooked("Você já está inscrito nesta sessão.")
    if any(m in msg for m in _CAPACITY_MARKERS):
        return CapacityExceeded("Sessão lotada.")
    if any(m in msg for m in _SLOT_MARKERS):
        return SlotConflict(
            "Ops, o horário acabou de ser reservado. Atualize e escolha outro."
        )
    return ConflictError("Conflito ao gravar. Tente novamente.")


def _parse(model: type[M], payload: M | dict[str, Any]) -> M:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise InvalidPayload(
            "Dados inválidos.", errors=e.errors(include_url=False, include_context=False)
        ) from e


@dataclass
class _Outbox:
    items: list[tuple[str, NotificationEvent, dict[str, Any]]] = field(default_factory=list)

    def add(self, recipients, event: NotificationEvent, payload: dict[str, Any]) -> None:
        seen: set[str] = set()
        for user_id in recipients:
            if user_id and user_id not in seen:
                seen.add(user_id)
                self.items.append((user_id, event, payload))


class SchedulingEngine:
    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        clock: Clock | None = None,
        registrations: RegistrationLookup | None = None,
        notifier: Notifier | None = None,
        authorizer: Authorizer | None = None,
        tz: ZoneInfo | None = None,
        min_session_minutes: int | None = None,
    ) -> None:
        self.session_factory = session_factory or SessionLocal
        self.clock = clock or SystemClock()
        self.tz = tz or zone()
        self.registrations = registrations
        if notifier is None:
            notifier = (
                DatabaseNotifier(self.session_factory, self.clock)
                if settings.NOTIFICATIONS_ENABLED
                else LogNotifier()
            )
        self.notifier = notifier
        authorizer = authorizer or OwnershipAuthorizer()
        min_minutes = min_session_minutes or settings.MIN_SESSION_MINUTES

        self.availability = AvailabilityManager(self.clock, authorizer=authorizer, tz=self.tz)
        self.conflicts = ConflictDetector(self.availability)
        self.scheduler = SessionScheduler(
            self.conflicts,
            self.clock,
            authorizer=authorizer,
            tz=self.tz,
            min_minutes=min_minutes,
        )
        self.booking = BookingCoordinator(self.clock, registrations)

    # ---------- plumbing ----------

    @contextmanager
    def _unit_of_work(
        self, operation: str, principal: Principal
    ) -> Iterator[tuple[Session, _Outbox]]:
        outbox = _Outbox()
        with operation_context(operation, principal.user_id):
            log = get_logger()
            db = self.session_factory()
            try:
                yield db, outbox
                db.commit()
            except IntegrityError as e:
                db.rollback()
                err = _translate_integrity(e)
                log.info("operation.rejected", kind=err.kind, reason=str(e.orig))
                raise err from e
            except StaleDataError as e:
                db.rollback()
                log.info("operation.rejected", kind=ConcurrentModification.kind)
                raise ConcurrentModification(
                    "A sessão foi alterada por outra operação. Tente novamente."
                ) from e
            except SchedulingError as e:
                db.rollback()
                log.info("operation.rejected", kind=e.kind, message=e.message)
                raise
            except Exception:
                db.rollback()
                log.exception("operation.failed")
                raise
            finally:
                db.close()

            self._dispatch(outbox)

    def _dispatch(self, outbox: _Outbox) -> None:
        log = get_logger()
        for user_id, event, payload in outbox.items:
            try:
                self.notifier.notify(user_id, event, payload)
            except Exception:
                # entrega é best-effort; o estado já foi gravado
                log.warning(
                    "notification.failed",
                    recipient_id=user_id,
                    event_type=event.value,
                    exc_info=True,
                )

    def _registrations(self, db: Session) -> RegistrationLookup:
        return self.registrations or SqlRegistrationLookup(db)

    def _audit(
        self,
        db: Session,
        principal: Principal,
        action: str,
        entity: str,
        entity_id: int | None,
        **details: Any,
    ) -> None:
        record_audit(
            db,
            actor_id=principal.user_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            at=self.clock.now(),
            details=details or None,
        )

    def _watchers(self, s: TutorSession) -> list[str]:
        return [p.student_id for p in s.participants] + [s.requested_by]

    # ---------- availability ----------

    def declare_availability(
        self, principal: Principal, payload: AvailabilityIn | dict[str, Any]
    ) -> AvailabilityOut:
        with self._unit_of_work("declare_availability", principal) as (db, _):
            require_roles(principal, Role.TUTOR)
            data = _parse(AvailabilityIn, payload)
            row = self.availability.declare(db, principal.user_id, data)
            self._audit(db, principal, "CREATE", "availability", row.id, kind=row.kind.value)
            out = AvailabilityOut.from_row(row)
        get_logger().info("availability.declared", window_id=out.id, tutor_id=out.tutor_id)
        return out

    def update_availability(
        self,
        principal: Principal,
        window_id: int,
        payload: AvailabilityPatch | dict[str, Any],
    ) -> AvailabilityOut:
        with self._unit_of_work("update_availability", principal) as (db, _):
            require_roles(principal, Role.TUTOR)
            patch = _parse(AvailabilityPatch, payload)
            row = self.availability.update(db, window_id, principal.user_id, patch)
            self._audit(
                db, principal, "UPDATE", "availability", row.id,
                fields=sorted(patch.model_fields_set),
            )
            out = AvailabilityOut.from_row(row)
        get_logger().info("availability.updated", window_id=window_id)
        return out

    def deactivate_availability(self, principal: Principal, window_id: int) -> AvailabilityOut:
        with self._unit_of_work("deactivate_availability", principal) as (db, _):
            require_roles(principal, Role.TUTOR)
            row = self.availability.deactivate(db, window_id, principal.user_id)
            self._audit(db, principal, "DEACTIVATE", "availability", row.id)
            out = AvailabilityOut.from_row(row)
        get_logger().info("availability.deactivated", window_id=window_id)
        return out

    # ---------- sessions ----------

    def open_session(
        self, principal: Principal, payload: SessionIn | dict[str, Any]
    ) -> SessionOut:
        with self._unit_of_work("open_session", principal) as (db, outbox):
            require_roles(principal, Role.TUTOR)
            data = _parse(SessionIn, payload)
            s = self.scheduler.open(db, principal.user_id, data)
            self._audit(db, principal, "CREATE", "session", s.id, status=s.status.value)
            outbox.add(
                self._registrations(db).active_students(s.tutor_id, s.subject_id),
                NotificationEvent.SESSION_CREATED,
                session_payload(s, self.tz),
            )
            out = SessionOut.from_row(s)
        get_logger().info("session.opened", session_id=out.id, starts_at=out.starts_at)
        return out

    def request_session(
        self,
        principal: Principal,
        tutor_id: str,
        payload: SessionIn | dict[str, Any],
    ) -> SessionOut:
        with self._unit_of_work("request_session", principal) as (db, outbox):
            require_roles(principal, Role.STUDENT)
            data = _parse(SessionIn, payload)
            s = self.scheduler.request(db, principal.user_id, tutor_id, data)
            self._audit(db, principal, "REQUEST", "session", s.id, tutor_id=tutor_id)
            outbox.add(
                [s.tutor_id],
                NotificationEvent.SESSION_REQUESTED,
                session_payload(s, self.tz, requested_by=principal.user_id),
            )
            out = SessionOut.from_row(s)
        get_logger().info("session.requested", session_id=out.id, tutor_id=tutor_id)
        return out

    def confirm_session(self, principal: Principal, session_id: int) -> SessionOut:
        with self._unit_of_work("confirm_session", principal) as (db, outbox):
            require_roles(principal, Role.TUTOR)
            s = self.scheduler.confirm(db, principal.user_id, session_id)
            self._audit(db, principal, "CONFIRM", "session", s.id)
            outbox.add(
                [s.requested_by], NotificationEvent.SESSION_CONFIRMED, session_payload(s, self.tz)
            )
            out = SessionOut.from_row(s)
        get_logger().info("session.confirmed", session_id=session_id)
        return out

    def reject_session(
        self, principal: Principal, session_id: int, reason: str | None
    ) -> SessionOut:
        with self._unit_of_work("reject_session", principal) as (db, outbox):
            require_roles(principal, Role.TUTOR)
            s = self.scheduler.reject(db, principal.user_id, session_id, reason)
            self._audit(db, principal, "REJECT", "session", s.id, reason=s.rejection_reason)
            outbox.add(
                [s.requested_by],
                NotificationEvent.SESSION_REJECTED,
                session_payload(s, self.tz, reason=s.rejection_reason),
            )
            out = SessionOut.from_row(s)
        get_logger().info("session.rejected", session_id=session_id)
        return out

    def update_session(
        self,
        principal: Principal,
        session_id: int,
        payload: SessionPatch | dict[str, Any],
    ) -> SessionOut:
        with self._unit_of_work("update_session", principal) as (db, outbox):
            require_roles(principal, Role.TUTOR)
            patch = _parse(SessionPatch, payload)
            s, changed = self.scheduler.update(db, principal.user_id, session_id, patch)
            if changed:
                self._audit(db, principal, "UPDATE", "session", s.id, fields=changed)
                outbox.add(
                    self._watchers(s),
                    NotificationEvent.SESSION_UPDATED,
                    session_payload(s, self.tz, changed=changed),
                )
            out = SessionOut.from_row(s)
        get_logger().info("session.updated", session_id=session_id, changed=changed)
        return out

    def cancel_session(self, principal: Principal, session_id: int) -> SessionOut:
        with self._unit_of_work("cancel_session", principal) as (db, outbox):
            require_roles(principal, Role.TUTOR)
            s = self.scheduler.cancel(db, principal.user_id, session_id)
            self._audit(db, principal, "CANCEL", "session", s.id)
            outbox.add(
                self._watchers(s), NotificationEvent.SESSION_CANCELLED, session_payload(s, self.tz)
            )
            out = SessionOut.from_row(s)
        get_logger().info("session.cancelled", session_id=session_id)
        return out

    # ---------- appointments ----------

    def book_appointment(self, principal: Principal, session_id: int) -> BookingOut:
        with self._unit_of_work("book_appointment", principal) as (db, outbox):
            require_roles(principal, Role.STUDENT)
            s, p = self.booking.book(db, principal.user_id, session_id)
            self._audit(db, principal, "BOOK", "session", s.id, student_id=p.student_id)
            outbox.add(
                [s.tutor_id],
                NotificationEvent.APPOINTMENT_CREATED,
                session_payload(s, self.tz, student_id=p.student_id),
            )
            out = BookingOut.from_row(s, p)
        get_logger().info("appointment.booked", session_id=session_id)
        return out

    def cancel_appointment(self, principal: Principal, session_id: int) -> CancelBookingOut:
        with self._unit_of_work("cancel_appointment", principal) as (db, outbox):
            require_roles(principal, Role.STUDENT)
            s = self.booking.cancel_booking(db, principal.user_id, session_id)
            self._audit(db, principal, "UNBOOK", "session", s.id, student_id=principal.user_id)
            outbox.add(
                [s.tutor_id],
                NotificationEvent.APPOINTMENT_CANCELLED,
                session_payload(s, self.tz, student_id=principal.user_id),
            )
            out = CancelBookingOut(
                session_id=s.id,
                student_id=principal.user_id,
                participant_count=s.participant_count,
            )
        get_logger().info("appointment.cancelled", session_id=session_id)
        return out

    # ---------- reads ----------

    def _bound(self, value: date | datetime | None, *, end: bool = False) -> datetime | None:
        if value is None:
            return None
        if isinstance(value, datetime):
            return to_utc(value, self.tz)
        # plain dates are whole local days; an upper bound includes that day
        if end:
            value = value + timedelta(days=1)
        return combine_local_to_utc(value, time.min, self.tz)

    def list_availability(
        self,
        tutor_id: str,
        kind: AvailabilityKind | None = None,
        include_inactive: bool = False,
    ) -> list[AvailabilityOut]:
        with self.session_factory() as db:
            rows = self.availability.list_for_tutor(db, tutor_id, kind, include_inactive)
            return [AvailabilityOut.from_row(r) for r in rows]

    def list_tutor_sessions(
        self,
        tutor_id: str,
        status: SessionStatus | None = None,
        subject_id: str | None = None,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> SessionPage:
        """Bookable (CONFIRMED/SCHEDULED) sessions by default, soonest first."""
        offset = _page_window(page, limit)
        with self.session_factory() as db:
            kwargs: dict[str, Any] = {
                "subject_id": subject_id,
                "date_from": self._bound(date_from),
                "date_to": self._bound(date_to, end=True),
            }
            if status is not None:
                kwargs["statuses"] = (status,)
            total = self.scheduler.count_for_tutor(db, tutor_id, **kwargs)
            rows = self.scheduler.find_for_tutor(
                db, tutor_id, offset=offset, limit=limit, **kwargs
            )
            return SessionPage(
                sessions=[SessionOut.from_row(s) for s in rows],
                total=total,
                page=page,
                limit=limit,
                total_pages=SessionPage.pages_for(total, limit),
            )

    def list_student_sessions(
        self,
        student_id: str,
        status: SessionStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> BookingPage:
        """Sessions the student holds a seat in, most recent first."""
        offset = _page_window(page, limit)
        with self.session_factory() as db:
            total = self.booking.count_for_student(db, student_id, status)
            rows = self.booking.find_for_student(
                db, student_id, status, offset=offset, limit=limit
            )
            return BookingPage(
                sessions=[BookingOut.from_row(s, p) for s, p in rows],
                total=total,
                page=page,
                limit=limit,
                total_pages=BookingPage.pages_for(total, limit),
            )
