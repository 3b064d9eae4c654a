from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Union

DateLike = Union[date, str]


class InvalidRangeError(ValueError):
    pass


@dataclass(frozen=True)
class DateRange:
    """Closed interval of naive local timestamps; both bounds inclusive."""

    slug: str
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def _coerce_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise InvalidRangeError(f"Invalid date: {value!r}") from exc


def last_day_of_month(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    month_index = (year * 12) + (month - 1) + offset
    return month_index // 12, (month_index % 12) + 1


def day_range(day: DateLike) -> DateRange:
    d = _coerce_date(day)
    return DateRange("day", _start_of_day(d), _end_of_day(d))


def month_range(year: int, month: int) -> DateRange:
    if not 1 <= month <= 12:
        raise InvalidRangeError(f"Month must be between 1 and 12, got {month}")
    first = date(year, month, 1)
    return DateRange(
        "month", _start_of_day(first), _end_of_day(last_day_of_month(year, month))
    )


def year_range(year: int) -> DateRange:
    return DateRange(
        "year",
        _start_of_day(date(year, 1, 1)),
        _end_of_day(date(year, 12, 31)),
    )


def custom_range(start: DateLike, end: DateLike) -> DateRange:
    start_date = _coerce_date(start)
    end_date = _coerce_date(end)
    if end_date < start_date:
        raise InvalidRangeError("End date must not be before start date")
    return DateRange("custom", _start_of_day(start_date), _end_of_day(end_date))


def all_time() -> DateRange:
    return DateRange("all", datetime.min, datetime.max)


def resolve_range(
    mode: Optional[str],
    *,
    day: Optional[DateLike] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    today: Optional[date] = None,
) -> DateRange:
    today = today or date.today()
    mode = (mode or "month").lower()
    if mode == "day":
        return day_range(day if day is not None else today)
    if mode == "month":
        return month_range(year or today.year, month or today.month)
    if mode == "year":
        return year_range(year or today.year)
    if mode == "custom":
        if start is None or end is None:
            raise InvalidRangeError("Custom range requires start and end dates")
        return custom_range(start, end)
    if mode == "all":
        return all_time()
    raise InvalidRangeError(f"Unknown range mode: {mode}")
