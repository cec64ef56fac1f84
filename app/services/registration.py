from __future__ import annotations

from typing import Protocol

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from app.models.registration import CourseRegistration, RegistrationStatus


class RegistrationLookup(Protocol):
    def has_active_registration(
        self, student_id: str, tutor_id: str, subject_id: str
    ) -> bool: ...

    def active_students(
        self, tutor_id: str, subject_id: str | None = None
    ) -> list[str]: ...


class SqlRegistrationLookup:
    """Reads ``course_registrations`` inside the caller's transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def has_active_registration(
        self, student_id: str, tutor_id: str, subject_id: str
    ) -> bool:
        stmt = select(
            exists().where(
                CourseRegistration.student_id == student_id,
                CourseRegistration.tutor_id == tutor_id,
                CourseRegistration.subject_id == subject_id,
                CourseRegistration.status == RegistrationStatus.ACTIVE,
            )
        )
        return bool(self.db.execute(stmt).scalar())

    def active_students(self, tutor_id: str, subject_id: str | None = None) -> list[str]:
        stmt = select(CourseRegistration.student_id).where(
            CourseRegistration.tutor_id == tutor_id,
            CourseRegistration.status == RegistrationStatus.ACTIVE,
        )
        if subject_id is not None:
            stmt = stmt.where(CourseRegistration.subject_id == subject_id)
        stmt = stmt.distinct().order_by(CourseRegistration.student_id)
        return list(self.db.execute(stmt).scalars())
