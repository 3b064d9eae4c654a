from datetime import date, datetime, time

import pytest

from periods import (
    InvalidRangeError,
    custom_range,
    day_range,
    last_day_of_month,
    month_range,
    resolve_range,
    shift_month,
    year_range,
)


def test_month_range_covers_leap_february():
    rng = month_range(2024, 2)
    assert rng.start == datetime(2024, 2, 1, 0, 0)
    assert rng.end == datetime.combine(date(2024, 2, 29), time.max)
    assert rng.contains(datetime(2024, 2, 29, 23, 59, 59))
    assert not rng.contains(datetime(2024, 3, 1, 0, 0))


def test_month_range_december_rolls_into_next_year():
    rng = month_range(2023, 12)
    assert rng.end_date == date(2023, 12, 31)
    assert last_day_of_month(2023, 2) == date(2023, 2, 28)


def test_month_range_rejects_out_of_range_month():
    with pytest.raises(InvalidRangeError):
        month_range(2024, 13)
    with pytest.raises(InvalidRangeError):
        month_range(2024, 0)


def test_day_range_accepts_iso_string():
    rng = day_range("2024-03-05")
    assert rng.start_date == rng.end_date == date(2024, 3, 5)
    assert rng.contains(datetime(2024, 3, 5, 18, 30))


def test_custom_range_rejects_reversed_bounds():
    with pytest.raises(InvalidRangeError, match="End date"):
        custom_range("2024-03-10", "2024-03-01")


def test_custom_range_same_day_is_valid():
    rng = custom_range(date(2024, 3, 1), date(2024, 3, 1))
    assert rng.contains(datetime(2024, 3, 1, 12, 0))


def test_year_range_bounds():
    rng = year_range(2024)
    assert rng.start == datetime(2024, 1, 1)
    assert rng.end_date == date(2024, 12, 31)


def test_resolve_range_defaults_to_current_month():
    rng = resolve_range(None, today=date(2024, 3, 15))
    assert rng.slug == "month"
    assert rng.start_date == date(2024, 3, 1)
    assert rng.end_date == date(2024, 3, 31)


def test_resolve_range_custom_requires_both_ends():
    with pytest.raises(InvalidRangeError):
        resolve_range("custom", start="2024-03-01")


def test_resolve_range_unknown_mode():
    with pytest.raises(InvalidRangeError):
        resolve_range("fortnight")


def test_resolve_range_rejects_garbage_date():
    with pytest.raises(InvalidRangeError):
        resolve_range("day", day="not-a-date")


def test_shift_month_wraps_years():
    assert shift_month(2024, 12, 1) == (2025, 1)
    assert shift_month(2024, 1, -1) == (2023, 12)
    assert shift_month(2024, 3, 0) == (2024, 3)
