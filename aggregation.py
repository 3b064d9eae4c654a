"""Transaction aggregation and reporting.

Pure functions that turn a snapshot of transactions into the summaries shown
on charts and summary cards: filter by range/type/project, resolve each
transaction to a bucket, sum per bucket and sort.  Nothing here touches the
database or keeps state between calls; callers pass in everything a report
needs and re-run it whenever the inputs change.

Amounts are integers in the smallest currency unit and are only ever summed
as integers.  Percentages are the only floats produced.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, Optional

from models import TransactionType
from periods import DateRange

logger = logging.getLogger(__name__)

UNASSIGNED = "미지정"
NEUTRAL_COLOR = "#cbd5e1"


class MalformedRecordError(ValueError):
    pass


class GroupBy(str, Enum):
    category = "category"
    payment_method = "payment_method"
    day = "day"


@dataclass(frozen=True)
class TransactionRecord:
    id: Any
    type: TransactionType
    amount: int
    occurred_at: datetime
    category_id: Any = None
    payment_method_id: Any = None
    project_id: Any = None
    description: str = ""
    memo: Optional[str] = None


@dataclass(frozen=True)
class Bucket:
    name: str
    amount: int
    color: str
    percent: float


@dataclass(frozen=True)
class Breakdown:
    buckets: tuple[Bucket, ...]
    total: int

    @property
    def is_empty(self) -> bool:
        return not self.buckets


@dataclass(frozen=True)
class Totals:
    income: int
    expense: int

    @property
    def net(self) -> int:
        return self.income - self.expense


@dataclass(frozen=True)
class MonthlyFlow:
    month: int
    income: int
    expense: int


def parse_timestamp(value: Any, tz: Optional[tzinfo] = None) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise MalformedRecordError(f"Unparseable timestamp: {value!r}") from exc
    else:
        raise MalformedRecordError(f"Unsupported timestamp: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz).replace(tzinfo=None)
    return parsed


def parse_amount(value: Any) -> int:
    if isinstance(value, bool):
        raise MalformedRecordError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, float) and value.is_integer():
        amount = int(value)
    elif isinstance(value, str):
        try:
            amount = int(value.strip())
        except ValueError as exc:
            raise MalformedRecordError(f"Invalid amount: {value!r}") from exc
    else:
        raise MalformedRecordError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise MalformedRecordError(f"Amount must not be negative: {value!r}")
    return amount


def _first_present(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def to_record(
    row: Mapping[str, Any], tz: Optional[tzinfo] = None
) -> TransactionRecord:
    """Normalise a raw transaction mapping into a ``TransactionRecord``.

    Both snake_case keys and the camelCase keys used by the document store
    (``paymentMethodId``, ``projectId``, ``date``) are understood.
    """
    raw_type = row.get("type")
    try:
        txn_type = TransactionType(raw_type)
    except ValueError as exc:
        raise MalformedRecordError(f"Invalid transaction type: {raw_type!r}") from exc

    occurred_raw = _first_present(row, "occurred_at", "occurredAt", "date")
    if occurred_raw is None:
        raise MalformedRecordError("Missing transaction timestamp")

    return TransactionRecord(
        id=row.get("id"),
        type=txn_type,
        amount=parse_amount(row.get("amount")),
        occurred_at=parse_timestamp(occurred_raw, tz),
        category_id=_first_present(row, "category_id", "categoryId", "category"),
        payment_method_id=_first_present(
            row, "payment_method_id", "paymentMethodId"
        ),
        project_id=_first_present(row, "project_id", "projectId"),
        description=row.get("description") or "",
        memo=row.get("memo"),
    )


def load_records(
    rows: Iterable[Mapping[str, Any]], tz: Optional[tzinfo] = None
) -> list[TransactionRecord]:
    records: list[TransactionRecord] = []
    for row in rows:
        try:
            records.append(to_record(row, tz))
        except MalformedRecordError as exc:
            logger.warning(f"dropped_record: id={row.get('id')!r} reason={exc}")
    return records


def filter_transactions(
    records: Iterable[TransactionRecord],
    date_range: Optional[DateRange] = None,
    *,
    transaction_type: Optional[TransactionType] = None,
    project_id: Any = None,
) -> list[TransactionRecord]:
    selected: list[TransactionRecord] = []
    for record in records:
        if not isinstance(record.occurred_at, datetime):
            continue
        if date_range is not None and not date_range.contains(record.occurred_at):
            continue
        if transaction_type is not None and record.type != transaction_type:
            continue
        if project_id is not None and record.project_id != project_id:
            continue
        selected.append(record)
    return selected


def bucket_key(
    record: TransactionRecord,
    group_by: GroupBy,
    lookup: Optional[Mapping[Any, Any]] = None,
) -> Optional[str]:
    """Bucket name for ``record``, or ``None`` when it is left out entirely.

    Only payment-method grouping leaves records out: a transaction without a
    payment method is not part of that breakdown at all, whereas a
    transaction whose category cannot be resolved lands in ``UNASSIGNED``.
    """
    lookup = lookup or {}
    if group_by == GroupBy.day:
        return record.occurred_at.date().isoformat()
    if group_by == GroupBy.payment_method:
        if record.payment_method_id is None:
            return None
        entry = lookup.get(record.payment_method_id)
        return entry.name if entry is not None else UNASSIGNED
    entry = lookup.get(record.category_id)
    return entry.name if entry is not None else UNASSIGNED


def group_transactions(
    records: Iterable[TransactionRecord],
    group_by: GroupBy,
    lookup: Optional[Mapping[Any, Any]] = None,
) -> dict[str, int]:
    grouped: dict[str, int] = {}
    for record in records:
        key = bucket_key(record, group_by, lookup)
        if key is None:
            continue
        grouped[key] = grouped.get(key, 0) + record.amount
    return grouped


def share(amount: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return amount / total


def _color_for(name: str, group_by: GroupBy, lookup: Mapping[Any, Any]) -> str:
    if name == UNASSIGNED or group_by == GroupBy.day:
        return NEUTRAL_COLOR
    for entry in lookup.values():
        if entry.name == name:
            return entry.color or NEUTRAL_COLOR
    return NEUTRAL_COLOR


def summarize(
    records: Iterable[TransactionRecord],
    group_by: GroupBy,
    lookup: Optional[Mapping[Any, Any]] = None,
) -> Breakdown:
    lookup = lookup or {}
    grouped = group_transactions(records, group_by, lookup)
    total = sum(grouped.values())
    # sorted() is stable, so equal amounts keep encounter order
    ranked = sorted(grouped.items(), key=lambda item: item[1], reverse=True)
    buckets = tuple(
        Bucket(
            name=name,
            amount=amount,
            color=_color_for(name, group_by, lookup),
            percent=share(amount, total) * 100,
        )
        for name, amount in ranked
    )
    return Breakdown(buckets=buckets, total=total)


def totals(records: Iterable[TransactionRecord]) -> Totals:
    income = 0
    expense = 0
    for record in records:
        if record.type == TransactionType.income:
            income += record.amount
        else:
            expense += record.amount
    return Totals(income=income, expense=expense)


def monthly_trend(records: Iterable[TransactionRecord], year: int) -> list[MonthlyFlow]:
    income = [0] * 12
    expense = [0] * 12
    for record in records:
        if not isinstance(record.occurred_at, datetime):
            continue
        if record.occurred_at.year != year:
            continue
        idx = record.occurred_at.month - 1
        if record.type == TransactionType.income:
            income[idx] += record.amount
        else:
            expense[idx] += record.amount
    return [
        MonthlyFlow(month=idx + 1, income=income[idx], expense=expense[idx])
        for idx in range(12)
    ]


def group_by_day(
    records: Iterable[TransactionRecord],
) -> dict[date, list[TransactionRecord]]:
    ordered = sorted(
        (r for r in records if isinstance(r.occurred_at, datetime)),
        key=lambda r: r.occurred_at,
        reverse=True,
    )
    days: dict[date, list[TransactionRecord]] = {}
    for record in ordered:
        days.setdefault(record.occurred_at.date(), []).append(record)
    return days
