from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime


class SessionStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class SessionType(str, enum.Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


# statuses that hold a claim on the tutor's time slot
COMMITTED_STATUSES = (
    SessionStatus.PENDING,
    SessionStatus.CONFIRMED,
    SessionStatus.SCHEDULED,
    SessionStatus.IN_PROGRESS,
)
# CONFIRMED and SCHEDULED are the same committed state under two names
OPEN_STATUSES = (SessionStatus.CONFIRMED, SessionStatus.SCHEDULED)
TERMINAL_STATUSES = (
    SessionStatus.REJECTED,
    SessionStatus.CANCELLED,
    SessionStatus.COMPLETED,
)

_COMMITTED_SQL = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in COMMITTED_STATUSES)
)


class TutorSession(Base):
    __tablename__ = "tutor_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tutor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    starts_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    ends_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    session_type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, name="session_type_enum"), nullable=False
    )
    meeting_link: Mapped[str | None] = mapped_column(String(500))
    location: Mapped[str | None] = mapped_column(String(160))

    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="session_status_enum"),
        nullable=False,
        default=SessionStatus.CONFIRMED,
    )
    requested_by: Mapped[str | None] = mapped_column(String(64))
    rejection_reason: Mapped[str | None] = mapped_column(String(500))
    confirmed_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    rejected_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    # set by the reporting collaborator, never by this engine
    has_report: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: dt.datetime.now(tz=dt.UTC),
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: dt.datetime.now(tz=dt.UTC),
        onupdate=lambda: dt.datetime.now(tz=dt.UTC),
    )

    participants: Mapped[list[SessionParticipant]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by=lambda: [SessionParticipant.registered_at, SessionParticipant.id],
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="time_order"),
        CheckConstraint("duration_minutes > 0", name="duration_positive"),
        CheckConstraint("max_participants >= 1", name="max_participants_positive"),
        CheckConstraint("participant_count >= 0", name="participant_count_positive"),
        CheckConstraint(
            "participant_count <= max_participants", name="participant_count_lte_max"
        ),
        Index("ix_tutor_sessions_tutor_start", "tutor_id", "starts_at"),
        Index("ix_tutor_sessions_status_start", "status", "starts_at"),
        Index("ix_tutor_sessions_subject_status", "subject_id", "status"),
        # last line of defence: two committed sessions can't start together
        Index(
            "ux_tutor_sessions_tutor_start_committed",
            "tutor_id",
            "starts_at",
            unique=True,
            postgresql_where=text(_COMMITTED_SQL),
            sqlite_where=text(_COMMITTED_SQL),
        ),
    )

    def participant(self, student_id: str) -> SessionParticipant | None:
        for p in self.participants:
            if p.student_id == student_id:
                return p
        return None

    @property
    def available_slots(self) -> int:
        return max(self.max_participants - self.participant_count, 0)


class SessionParticipant(Base):
    __tablename__ = "session_participants"
    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="uq_participant_session_student"),
        Index("ix_participant_student_id", "student_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("tutor_sessions.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    registered_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    attended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    session: Mapped[TutorSession] = relationship(back_populates="participants")
