from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from app.utils.tz import (
    UTC,
    combine_local_to_utc,
    day_of_week,
    ensure_aware_utc,
    iso_utc,
    to_local,
    to_utc,
    zone,
)

BR_TZ = ZoneInfo("America/Sao_Paulo")


@pytest.mark.parametrize(
    "d,t",
    [
        (date(2025, 1, 15), time(0, 0)),
        (date(2025, 3, 10), time(9, 0)),
        (date(2025, 6, 21), time(12, 0)),
        (date(2025, 9, 10), time(18, 0)),
    ],
)
def test_local_to_utc_and_back(d, t):
    dt_utc = combine_local_to_utc(d, t, BR_TZ)
    assert dt_utc.tzinfo == UTC

    back = to_local(dt_utc, BR_TZ)
    assert back.date() == d
    assert back.time() == t


def test_to_utc_from_aware_and_naive():
    local = datetime(2025, 9, 10, 14, 0, tzinfo=BR_TZ)
    u = to_utc(local)
    assert u.tzinfo == UTC

    # naive interpretado no fuso informado
    u2 = to_utc(datetime(2025, 9, 10, 14, 0), BR_TZ)
    assert u2 == u
    assert u2.hour == 17


def test_to_local_requires_aware_utc():
    with pytest.raises(ValueError):
        to_local(datetime(2025, 9, 10, 17, 0))  # naive


def test_ensure_aware_utc_errors_on_naive():
    with pytest.raises(ValueError):
        ensure_aware_utc(datetime(2025, 9, 10, 17, 0))


def test_iso_utc_has_Z_suffix():
    dtu = datetime(2025, 9, 10, 17, 0, tzinfo=UTC)
    assert iso_utc(dtu) == "2025-09-10T17:00:00Z"


@pytest.mark.parametrize(
    "d,expected",
    [
        (date(2026, 10, 18), 0),  # domingo
        (date(2026, 10, 19), 1),  # segunda
        (date(2026, 10, 24), 6),  # sábado
    ],
)
def test_day_of_week_starts_on_sunday(d, expected):
    assert day_of_week(d) == expected
    assert day_of_week(datetime.combine(d, time(12))) == expected


def test_zone_rejects_unknown_names():
    assert zone("America/Sao_Paulo") == BR_TZ
    with pytest.raises(ValueError):
        zone("Mars/Olympus_Mons")
