from __future__ import annotations

from datetime import datetime

from sqlalchemy import insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.core.errors import ConcurrentModification
from app.models.calendar import TutorCalendar


def _insert_if_missing(db: Session, tutor_id: str, now: datetime) -> None:
    dialect = db.get_bind().dialect.name
    values = {"tutor_id": tutor_id, "version": 0, "updated_at": now}
    if dialect == "postgresql":
        stmt = postgresql.insert(TutorCalendar).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(TutorCalendar).values(**values).on_conflict_do_nothing()
    else:
        stmt = insert(TutorCalendar).values(**values)
    db.execute(stmt)


def claim_calendar(db: Session, tutor_id: str, now: datetime) -> int:
    """
    Reads (and row-locks, where the backend supports it) the tutor calendar,
    creating it on first use. Returns the version seen by this transaction.
    """
    stmt = (
        select(TutorCalendar.version)
        .where(TutorCalendar.tutor_id == tutor_id)
        .with_for_update()
    )
    version = db.execute(stmt).scalar_one_or_none()
    if version is not None:
        return version

    # first write for this tutor; a concurrent creator simply wins the PK
    _insert_if_missing(db, tutor_id, now)
    return db.execute(stmt).scalar_one()


def advance_calendar(
    db: Session, tutor_id: str, seen_version: int, now: datetime
) -> int:
    """
    Compare-and-update: bumps the version only if nobody else did since
    ``claim_calendar``. Zero rows touched means a concurrent writer won.
    """
    result = db.execute(
        update(TutorCalendar)
        .where(
            TutorCalendar.tutor_id == tutor_id,
            TutorCalendar.version == seen_version,
        )
        .values(version=seen_version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrentModification(
            "A agenda do tutor foi alterada por outra operação. Tente novamente.",
            tutor_id=tutor_id,
        )
    return seen_version + 1
