from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from models import RecurrenceType, RecurringExpense, Transaction, TransactionType
from periods import last_day_of_month, shift_month


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def due_date_in_month(
    expense: RecurringExpense, year: int, month: int
) -> Optional[date]:
    if expense.recurrence_type == RecurrenceType.irregular and month not in (
        expense.months or []
    ):
        return None
    last_day = last_day_of_month(year, month)
    return date(year, month, min(expense.day_of_month, last_day.day))


def occurrences_between(
    expense: RecurringExpense, start: date, end: date
) -> list[date]:
    if end < start:
        return []
    dates: list[date] = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        due = due_date_in_month(expense, year, month)
        if due is not None and start <= due <= end:
            dates.append(due)
        year, month = shift_month(year, month, 1)
    return dates


class RecurringEngine:
    def __init__(self, session: Session) -> None:
        self.session = session

    def catch_up(self, expense: RecurringExpense, today: Optional[date] = None) -> int:
        today = today or local_today()
        if not expense.is_active:
            return 0
        if expense.last_posted_on is not None:
            start = expense.last_posted_on + date.resolution
        else:
            start = (expense.created_at or datetime.utcnow()).date()
        posted = 0
        for due in occurrences_between(expense, start, today):
            self.session.add(
                Transaction(
                    type=TransactionType.expense,
                    amount=expense.amount,
                    description=expense.name,
                    category_id=expense.category_id,
                    occurred_at=datetime.combine(due, time(12, 0)),
                    memo=expense.memo,
                    recurring_expense_id=expense.id,
                )
            )
            expense.last_posted_on = due
            posted += 1
        if start <= today:
            expense.last_posted_on = today
        return posted

    def post_due(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        stmt = (
            select(RecurringExpense)
            .where(RecurringExpense.is_active.is_(True))
            .order_by(RecurringExpense.id)
        )
        count = 0
        for expense in self.session.scalars(stmt).all():
            count += self.catch_up(expense, today)
        self.session.flush()
        return count
