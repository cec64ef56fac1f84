from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    Index,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base
from app.db.types import UTCDateTime


class AvailabilityKind(str, enum.Enum):
    RECURRING = "RECURRING"
    SPECIFIC_DATE = "SPECIFIC_DATE"


class AvailabilityWindow(Base):
    """
    Tutor availability, either every week on ``day_of_week`` (0=Sunday) or on
    one ``specific_date``. Times are wall-clock in the scheduling zone.
    Never hard-deleted: ``is_active=False`` is the delete.
    """

    __tablename__ = "availability_windows"
    __table_args__ = (
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="day_of_week_range",
        ),
        CheckConstraint(
            "(kind = 'RECURRING' AND day_of_week IS NOT NULL AND specific_date IS NULL)"
            " OR (kind = 'SPECIFIC_DATE' AND specific_date IS NOT NULL AND day_of_week IS NULL)",
            name="kind_discriminator",
        ),
        CheckConstraint("end_time > start_time", name="time_order"),
        CheckConstraint("max_slots >= 1", name="max_slots_positive"),
        Index("ix_availability_tutor_weekday", "tutor_id", "day_of_week", "is_active"),
        Index("ix_availability_tutor_date", "tutor_id", "specific_date", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tutor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    kind: Mapped[AvailabilityKind] = mapped_column(
        Enum(AvailabilityKind, name="availability_kind_enum"), nullable=False
    )
    day_of_week: Mapped[int | None] = mapped_column(Integer)
    specific_date: Mapped[dt.date | None] = mapped_column(Date)
    start_time: Mapped[dt.time] = mapped_column(Time(), nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time(), nullable=False)
    max_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: dt.datetime.now(tz=dt.UTC),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: dt.datetime.now(tz=dt.UTC),
        onupdate=lambda: dt.datetime.now(tz=dt.UTC),
        nullable=False,
    )

    @property
    def discriminator(self) -> int | dt.date | None:
        if self.kind == AvailabilityKind.RECURRING:
            return self.day_of_week
        return self.specific_date
