"""
Pure time-window rules: whole-hour alignment, ordering, minimum duration and
the half-open overlap test. No I/O.
"""

from __future__ import annotations

import re
from datetime import datetime, time

from app.core.errors import DurationTooShort, InvalidRange, InvalidTimeFormat

DEFAULT_MIN_MINUTES = 60

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def validate_hour_aligned(value: time | datetime) -> None:
    if value.minute != 0 or value.second != 0 or value.microsecond != 0:
        raise InvalidTimeFormat(
            "Horário deve ser hora cheia (ex.: 09:00, 10:00).",
            value=value.isoformat(),
        )


def parse_hhmm(value: str | time) -> time:
    """'HH:MM' (or a time) -> whole-hour time, else InvalidTimeFormat."""
    if isinstance(value, time):
        t = value.replace(tzinfo=None)
    else:
        m = _HHMM.match(value or "")
        if not m:
            raise InvalidTimeFormat("Formato de horário deve ser HH:MM.", value=value)
        t = time(int(m.group(1)), int(m.group(2)))
    validate_hour_aligned(t)
    return t


def _minutes(start: time | datetime, end: time | datetime) -> int:
    if isinstance(start, datetime) and isinstance(end, datetime):
        return int((end - start).total_seconds() // 60)
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


def validate_range(
    start: time | datetime,
    end: time | datetime,
    min_minutes: int = DEFAULT_MIN_MINUTES,
) -> int:
    """Returns the duration in minutes."""
    if not end > start:
        raise InvalidRange("Horário de término deve ser após o início.")
    minutes = _minutes(start, end)
    if minutes < min_minutes:
        raise DurationTooShort(
            f"Duração mínima é de {min_minutes} minutos.",
            minutes=minutes,
            min_minutes=min_minutes,
        )
    return minutes


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    # intervalo [start, end): fim exclusivo, encostar não conflita
    return a_start < b_end and b_start < a_end
