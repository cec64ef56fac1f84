from __future__ import annotations

from datetime import UTC, date, datetime, time
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.settings import settings

UTC = UTC


@lru_cache(maxsize=32)
def zone(name: str | None = None) -> ZoneInfo:
    """Resolve a zone name (default: settings.SCHEDULE_TZ)."""
    key = name or settings.SCHEDULE_TZ
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Timezone inválida: {key}") from e


def ensure_aware_utc(dt: datetime) -> datetime:
    """
    Garante que dt é timezone-aware em UTC.
    - Se já vier aware: converte para UTC.
    - Se vier naive: ERRO (evita gravar errado).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Datetime naive recebido. Sempre use datetimes timezone-aware."
        )
    return dt.astimezone(UTC)


def to_utc(dt: datetime, tz: ZoneInfo | None = None) -> datetime:
    """
    Converts a datetime (naive or aware) to UTC.
    - Naive: assumed to be in tz (default: scheduling zone).
    - Aware: just converted.
    """
    tz = tz or zone()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(UTC)


def to_local(dt_utc: datetime, tz: ZoneInfo | None = None) -> datetime:
    """
    Converte um datetime UTC (aware) para TZ local (aware).
    """
    tz = tz or zone()
    if dt_utc.tzinfo is None:
        raise ValueError("Esperava datetime UTC timezone-aware.")
    return dt_utc.astimezone(tz)


def combine_local_to_utc(d: date, t: time, tz: ZoneInfo | None = None) -> datetime:
    """
    Combines a wall-clock date+time in tz and returns it in UTC (aware).
    Handy for turning an availability window into absolute instants.
    """
    tz = tz or zone()
    if t.tzinfo is not None:
        t = time(t.hour, t.minute, t.second, t.microsecond)
    local_dt = datetime.combine(d, t).replace(tzinfo=tz)
    return local_dt.astimezone(UTC)


def day_of_week(local_dt: datetime | date) -> int:
    """0=Sunday ... 6=Saturday (Python's weekday() is Monday=0)."""
    return (local_dt.weekday() + 1) % 7


def iso_utc(dt: datetime) -> str:
    """
    Serializa em ISO 8601 sempre em UTC com sufixo 'Z'.
    """
    return ensure_aware_utc(dt).astimezone(UTC).isoformat().replace("+00:00", "Z")
