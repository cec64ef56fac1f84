from __future__ import annotations

import datetime as dt

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base
from app.db.types import UTCDateTime


class TutorCalendar(Base):
    """
    One row per tutor. Its version is advanced by compare-and-update at the
    end of every write that touches the tutor's windows or committed slots.
    """

    __tablename__ = "tutor_calendars"

    tutor_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: dt.datetime.now(tz=dt.UTC),
    )
