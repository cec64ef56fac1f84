from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from app.core.errors import NotAvailable, SlotConflict
from app.models.availability import AvailabilityWindow
from app.models.tutor_session import COMMITTED_STATUSES, TutorSession
from app.services.availability import AvailabilityManager


@dataclass(frozen=True)
class CoverageResult:
    covered: bool
    window: AvailabilityWindow | None = None


@dataclass(frozen=True)
class OverlapResult:
    conflict: bool
    conflicts: list[TutorSession] = field(default_factory=list)


class ConflictDetector:
    """
    Answers the two questions asked before any slot is committed:
    is [start, end) inside a declared window, and does it collide with a
    committed session of the same tutor.
    """

    def __init__(self, availability: AvailabilityManager) -> None:
        self.availability = availability

    def check_availability_coverage(
        self, db: Session, tutor_id: str, start: datetime, end: datetime
    ) -> CoverageResult:
        window = self.availability.covering_window(db, tutor_id, start, end)
        return CoverageResult(covered=window is not None, window=window)

    def check_session_overlap(
        self,
        db: Session,
        tutor_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: int | None = None,
    ) -> OverlapResult:
        # starts inside, ends inside and fully covers all reduce to this
        conds = [
            TutorSession.tutor_id == tutor_id,
            TutorSession.status.in_(COMMITTED_STATUSES),
            TutorSession.starts_at < end,
            TutorSession.ends_at > start,
        ]
        if exclude_session_id is not None:
            conds.append(TutorSession.id != exclude_session_id)
        stmt = select(TutorSession).where(and_(*conds)).order_by(TutorSession.starts_at)
        found = list(db.execute(stmt).scalars())
        return OverlapResult(conflict=bool(found), conflicts=found)

    def ensure_slot_free(
        self,
        db: Session,
        tutor_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: int | None = None,
    ) -> None:
        if not self.check_availability_coverage(db, tutor_id, start, end).covered:
            raise NotAvailable("Fora da janela de disponibilidade do tutor.")

        overlap = self.check_session_overlap(db, tutor_id, start, end, exclude_session_id)
        if overlap.conflict:
            raise SlotConflict(
                "Horário já ocupado por outra sessão do tutor.",
                conflicting_session_ids=[s.id for s in overlap.conflicts],
            )
