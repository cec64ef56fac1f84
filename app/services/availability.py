from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from app.core.errors import (
    InvalidPayload,
    MissingCompanionField,
    NotFoundError,
    OverlapConflict,
)
from app.core.logging import get_logger
from app.db.calendar_lock import advance_calendar, claim_calendar
from app.deps import Authorizer, OwnershipAuthorizer
from app.models.availability import AvailabilityKind, AvailabilityWindow
from app.schemas.availability import AvailabilityIn, AvailabilityPatch
from app.services.time_window import overlaps, parse_hhmm, validate_range
from app.utils.clock import Clock
from app.utils.tz import day_of_week, to_local, zone


class AvailabilityManager:
    """Owns tutor availability windows and the coverage predicate."""

    def __init__(
        self,
        clock: Clock,
        *,
        authorizer: Authorizer | None = None,
        tz: ZoneInfo | None = None,
    ) -> None:
        self.clock = clock
        self.authorizer = authorizer or OwnershipAuthorizer()
        self.tz = tz or zone()

    # ---------- validation (pure) ----------

    @staticmethod
    def _discriminator(data: AvailabilityIn) -> int | date:
        if data.kind == AvailabilityKind.RECURRING:
            if data.day_of_week is None:
                raise MissingCompanionField("RECURRING exige day_of_week (0-6).")
            if not 0 <= data.day_of_week <= 6:
                raise InvalidPayload("day_of_week deve estar entre 0 (domingo) e 6 (sábado).")
            if data.specific_date is not None:
                raise InvalidPayload("RECURRING não aceita specific_date.")
            return data.day_of_week
        if data.specific_date is None:
            raise MissingCompanionField("SPECIFIC_DATE exige specific_date.")
        if data.day_of_week is not None:
            raise InvalidPayload("SPECIFIC_DATE não aceita day_of_week.")
        return data.specific_date

    def validate(self, data: AvailabilityIn) -> tuple[time, time, int | date]:
        start = parse_hhmm(data.start_time)
        end = parse_hhmm(data.end_time)
        validate_range(start, end)
        return start, end, self._discriminator(data)

    # ---------- queries ----------

    def _same_day_windows(
        self,
        db: Session,
        tutor_id: str,
        kind: AvailabilityKind,
        discriminator: int | date,
        exclude_id: int | None = None,
    ) -> list[AvailabilityWindow]:
        conds = [
            AvailabilityWindow.tutor_id == tutor_id,
            AvailabilityWindow.is_active.is_(True),
            AvailabilityWindow.kind == kind,
        ]
        if kind == AvailabilityKind.RECURRING:
            conds.append(AvailabilityWindow.day_of_week == discriminator)
        else:
            conds.append(AvailabilityWindow.specific_date == discriminator)
        if exclude_id is not None:
            conds.append(AvailabilityWindow.id != exclude_id)
        stmt = select(AvailabilityWindow).where(and_(*conds)).order_by(
            AvailabilityWindow.start_time.asc()
        )
        return list(db.execute(stmt).scalars())

    def _ensure_no_overlap(
        self,
        db: Session,
        tutor_id: str,
        kind: AvailabilityKind,
        discriminator: int | date,
        start: time,
        end: time,
        exclude_id: int | None = None,
    ) -> None:
        for w in self._same_day_windows(db, tutor_id, kind, discriminator, exclude_id):
            if overlaps(start, end, w.start_time, w.end_time):
                raise OverlapConflict(
                    "Sobreposição com janela de disponibilidade existente.",
                    window_id=w.id,
                )

    def list_for_tutor(
        self,
        db: Session,
        tutor_id: str,
        kind: AvailabilityKind | None = None,
        include_inactive: bool = False,
    ) -> list[AvailabilityWindow]:
        stmt = select(AvailabilityWindow).where(AvailabilityWindow.tutor_id == tutor_id)
        if kind is not None:
            stmt = stmt.where(AvailabilityWindow.kind == kind)
        if not include_inactive:
            stmt = stmt.where(AvailabilityWindow.is_active.is_(True))
        stmt = stmt.order_by(
            AvailabilityWindow.kind.asc(),
            AvailabilityWindow.day_of_week.asc(),
            AvailabilityWindow.specific_date.asc(),
            AvailabilityWindow.start_time.asc(),
        )
        return list(db.execute(stmt).scalars())

    def covering_window(
        self, db: Session, tutor_id: str, start: datetime, end: datetime
    ) -> AvailabilityWindow | None:
        """
        Active window (recurring on the candidate's weekday, or on its exact
        date) containing [start, end) by hour bounds, in the scheduling zone.
        """
        local_start = to_local(start, self.tz)
        local_end = to_local(end, self.tz)
        if local_end.date() != local_start.date():
            return None
        day = local_start.date()
        stmt = select(AvailabilityWindow).where(
            AvailabilityWindow.tutor_id == tutor_id,
            AvailabilityWindow.is_active.is_(True),
            or_(
                and_(
                    AvailabilityWindow.kind == AvailabilityKind.RECURRING,
                    AvailabilityWindow.day_of_week == day_of_week(day),
                ),
                and_(
                    AvailabilityWindow.kind == AvailabilityKind.SPECIFIC_DATE,
                    AvailabilityWindow.specific_date == day,
                ),
            ),
        )
        for w in db.execute(stmt).scalars():
            if w.start_time.hour <= local_start.hour and local_end.hour <= w.end_time.hour:
                return w
        return None

    def is_covered(
        self, db: Session, tutor_id: str, start: datetime, end: datetime
    ) -> bool:
        return self.covering_window(db, tutor_id, start, end) is not None

    # ---------- commands ----------

    def _get_owned(self, db: Session, window_id: int, caller_tutor_id: str) -> AvailabilityWindow:
        row = db.get(AvailabilityWindow, window_id)
        if not row:
            raise NotFoundError("Janela de disponibilidade não encontrada.", window_id=window_id)
        self.authorizer.ensure_owner(caller_tutor_id, row.tutor_id, "availability")
        return row

    def declare(self, db: Session, tutor_id: str, data: AvailabilityIn) -> AvailabilityWindow:
        start, end, discriminator = self.validate(data)
        now = self.clock.now()

        seen = claim_calendar(db, tutor_id, now)
        self._ensure_no_overlap(db, tutor_id, data.kind, discriminator, start, end)

        row = AvailabilityWindow(
            tutor_id=tutor_id,
            kind=data.kind,
            day_of_week=data.day_of_week,
            specific_date=data.specific_date,
            start_time=start,
            end_time=end,
            max_slots=data.max_slots,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        advance_calendar(db, tutor_id, seen, now)
        get_logger().debug("availability.inserted", window_id=row.id, tutor_id=tutor_id)
        return row

    def update(
        self,
        db: Session,
        window_id: int,
        caller_tutor_id: str,
        patch: AvailabilityPatch,
    ) -> AvailabilityWindow:
        row = self._get_owned(db, window_id, caller_tutor_id)
        fields = patch.model_fields_set
        for name in ("start_time", "end_time", "max_slots", "is_active"):
            if name in fields and getattr(patch, name) is None:
                raise InvalidPayload(f"{name} não pode ser nulo.")

        start = parse_hhmm(patch.start_time) if "start_time" in fields else row.start_time
        end = parse_hhmm(patch.end_time) if "end_time" in fields else row.end_time
        timing_changed = (start, end) != (row.start_time, row.end_time)
        if timing_changed:
            validate_range(start, end)

        active = patch.is_active if "is_active" in fields else row.is_active
        reactivating = active and not row.is_active
        now = self.clock.now()

        seen = None
        if active and (timing_changed or reactivating):
            seen = claim_calendar(db, row.tutor_id, now)
            self._ensure_no_overlap(
                db, row.tutor_id, row.kind, row.discriminator, start, end, exclude_id=row.id
            )

        row.start_time = start
        row.end_time = end
        if "max_slots" in fields:
            row.max_slots = patch.max_slots
        row.is_active = active
        row.updated_at = now
        db.flush()
        if seen is not None:
            advance_calendar(db, row.tutor_id, seen, now)
        return row

    def deactivate(self, db: Session, window_id: int, caller_tutor_id: str) -> AvailabilityWindow:
        row = self._get_owned(db, window_id, caller_tutor_id)
        if not row.is_active:
            return row
        now = self.clock.now()
        seen = claim_calendar(db, row.tutor_id, now)
        row.is_active = False
        row.updated_at = now
        db.flush()
        advance_calendar(db, row.tutor_id, seen, now)
        return row
