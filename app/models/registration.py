from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base
from app.db.types import UTCDateTime


class RegistrationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    CANCELLED = "CANCELLED"


class CourseRegistration(Base):
    """Owned by the registration service; the engine only reads it."""

    __tablename__ = "course_registrations"
    __table_args__ = (
        Index("ix_registration_lookup", "student_id", "tutor_id", "subject_id", "status"),
        Index("ix_registration_tutor_status", "tutor_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tutor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus, name="registration_status_enum"),
        nullable=False,
        default=RegistrationStatus.ACTIVE,
    )
    registered_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: dt.datetime.now(tz=dt.UTC),
    )
