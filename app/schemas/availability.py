from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from app.models.availability import AvailabilityKind, AvailabilityWindow


class AvailabilityIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: AvailabilityKind
    day_of_week: int | None = Field(None, description="0=domingo ... 6=sábado")
    specific_date: dt.date | None = None
    start_time: str | dt.time  # "HH:MM" no fuso da agenda
    end_time: str | dt.time
    max_slots: int = Field(1, ge=1)


class AvailabilityPatch(BaseModel):
    # kind / day_of_week / specific_date são imutáveis
    model_config = ConfigDict(extra="forbid")

    start_time: str | dt.time | None = None
    end_time: str | dt.time | None = None
    max_slots: int | None = Field(None, ge=1)
    is_active: bool | None = None


def _hhmm(t: dt.time) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


class AvailabilityOut(BaseModel):
    id: int
    tutor_id: str
    kind: AvailabilityKind
    day_of_week: int | None
    specific_date: dt.date | None
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    max_slots: int
    is_active: bool

    @classmethod
    def from_row(cls, row: AvailabilityWindow) -> AvailabilityOut:
        return cls(
            id=row.id,
            tutor_id=row.tutor_id,
            kind=row.kind,
            day_of_week=row.day_of_week,
            specific_date=row.specific_date,
            start_time=_hhmm(row.start_time),
            end_time=_hhmm(row.end_time),
            max_slots=row.max_slots,
            is_active=row.is_active,
        )
