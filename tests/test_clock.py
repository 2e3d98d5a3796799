from datetime import date, datetime, timedelta, timezone

import pytest

from app.clock import day_window_for, local_day_window, night_count, parse_instant, parse_local_date
from app.errors import InvalidInput

ADDIS = 180


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_local_day_window_crosses_utc_midnight() -> None:
    window = local_day_window(_utc(2025, 3, 1, 22, 30), ADDIS)
    assert window.day_key == "2025-03-02"
    assert window.day_start == _utc(2025, 3, 1, 21, 0)
    assert window.day_end == _utc(2025, 3, 2, 21, 0)


def test_day_window_boundaries_are_half_open() -> None:
    window = day_window_for(date(2025, 3, 2), ADDIS)
    assert local_day_window(window.day_start, ADDIS) == window
    assert local_day_window(window.day_end - timedelta(microseconds=1), ADDIS) == window
    assert local_day_window(window.day_end, ADDIS).day_key == "2025-03-03"


def test_night_count_rounds_up_and_never_drops_below_one() -> None:
    assert night_count(_utc(2025, 3, 1), _utc(2025, 3, 4)) == 3
    assert night_count(_utc(2025, 3, 1, 14), _utc(2025, 3, 2, 15)) == 2
    assert night_count(_utc(2025, 3, 1, 14), _utc(2025, 3, 1, 15)) == 1
    assert night_count(_utc(2025, 3, 4), _utc(2025, 3, 1)) == 1


def test_parse_instant_accepts_dates_and_offsets() -> None:
    assert parse_instant("2025-03-01", "checkIn") == _utc(2025, 3, 1)
    assert parse_instant("2025-03-01T12:00:00Z", "checkIn") == _utc(2025, 3, 1, 12)
    assert parse_instant("2025-03-01T15:00:00+03:00", "checkIn") == _utc(2025, 3, 1, 12)


@pytest.mark.parametrize("value", ["", "not-a-date", None, "2025-13-01"])
def test_parse_instant_rejects_garbage(value) -> None:
    with pytest.raises(InvalidInput, match="Invalid checkOut"):
        parse_instant(value, "checkOut")


def test_parse_local_date_uses_local_calendar() -> None:
    assert parse_local_date("2025-03-01", "start", ADDIS) == date(2025, 3, 1)
    assert parse_local_date("2025-03-01T22:00:00Z", "start", ADDIS) == date(2025, 3, 2)
    with pytest.raises(InvalidInput):
        parse_local_date("yesterday", "start", ADDIS)
