from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from app.models.tutor_session import (
    SessionParticipant,
    SessionStatus,
    SessionType,
    TutorSession,
)
from app.utils.tz import iso_utc


class SessionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    starts_at: dt.datetime = Field(..., description="ISO-8601; naive = fuso da agenda")
    ends_at: dt.datetime
    session_type: SessionType
    meeting_link: str | None = Field(None, max_length=500)
    location: str | None = Field(None, max_length=160)
    max_participants: int = Field(1, ge=1)


class SessionPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    starts_at: dt.datetime | None = None
    ends_at: dt.datetime | None = None
    session_type: SessionType | None = None
    meeting_link: str | None = Field(None, max_length=500)
    location: str | None = Field(None, max_length=160)
    max_participants: int | None = Field(None, ge=1)


class ParticipantOut(BaseModel):
    student_id: str
    registered_at: str
    attended: bool

    @classmethod
    def from_row(cls, p: SessionParticipant) -> ParticipantOut:
        return cls(
            student_id=p.student_id,
            registered_at=iso_utc(p.registered_at),
            attended=p.attended,
        )


class SessionOut(BaseModel):
    id: int
    tutor_id: str
    subject_id: str
    title: str
    description: str | None
    starts_at: str
    ends_at: str
    duration_minutes: int
    session_type: SessionType
    meeting_link: str | None
    location: str | None
    max_participants: int
    participant_count: int
    available_slots: int
    status: SessionStatus
    requested_by: str | None
    rejection_reason: str | None
    has_report: bool
    participants: list[ParticipantOut]

    @classmethod
    def from_row(cls, s: TutorSession) -> SessionOut:
        return cls(
            id=s.id,
            tutor_id=s.tutor_id,
            subject_id=s.subject_id,
            title=s.title,
            description=s.description,
            starts_at=iso_utc(s.starts_at),
            ends_at=iso_utc(s.ends_at),
            duration_minutes=s.duration_minutes,
            session_type=s.session_type,
            meeting_link=s.meeting_link,
            location=s.location,
            max_participants=s.max_participants,
            participant_count=s.participant_count,
            available_slots=s.available_slots,
            status=s.status,
            requested_by=s.requested_by,
            rejection_reason=s.rejection_reason,
            has_report=s.has_report,
            participants=[ParticipantOut.from_row(p) for p in s.participants],
        )


class BookingOut(BaseModel):
    """Compact view of one student's seat in a session."""

    session_id: int
    student_id: str
    tutor_id: str
    subject_id: str
    title: str
    starts_at: str
    ends_at: str
    session_type: SessionType
    meeting_link: str | None
    location: str | None
    status: SessionStatus
    registered_at: str
    attended: bool

    @classmethod
    def from_row(cls, s: TutorSession, p: SessionParticipant) -> BookingOut:
        return cls(
            session_id=s.id,
            student_id=p.student_id,
            tutor_id=s.tutor_id,
            subject_id=s.subject_id,
            title=s.title,
            starts_at=iso_utc(s.starts_at),
            ends_at=iso_utc(s.ends_at),
            session_type=s.session_type,
            meeting_link=s.meeting_link,
            location=s.location,
            status=s.status,
            registered_at=iso_utc(p.registered_at),
            attended=p.attended,
        )


class CancelBookingOut(BaseModel):
    session_id: int
    student_id: str
    participant_count: int


class _Page(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

    @staticmethod
    def pages_for(total: int, limit: int) -> int:
        return -(-total // limit)


class SessionPage(_Page):
    sessions: list[SessionOut]


class BookingPage(_Page):
    sessions: list[BookingOut]
