from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from aggregation import (
    Breakdown,
    GroupBy,
    MonthlyFlow,
    Totals,
    TransactionRecord,
    filter_transactions,
    group_by_day,
    monthly_trend,
    summarize,
    totals,
)
from mirror import DocumentMirror, get_mirror
from models import (
    AccountBalance,
    BankAccount,
    Category,
    PaymentMethod,
    Project,
    ProjectStatus,
    RecurrenceType,
    RecurringExpense,
    ScheduledExpense,
    ScheduledStatus,
    Transaction,
    TransactionType,
)
from ordering import sort_siblings, swap_siblings
from periods import DateRange, all_time, day_range, month_range, year_range
from recurrence import RecurringEngine, local_today, occurrences_between
from schemas import (
    AccountBalanceIn,
    BankAccountIn,
    CategoryIn,
    CategoryOut,
    PaymentMethodIn,
    PaymentMethodOut,
    ProjectIn,
    ProjectOut,
    RecurringExpenseIn,
    ScheduledExpenseIn,
    TransactionIn,
    TransactionOut,
)

logger = logging.getLogger(__name__)


def _record_from_model(txn: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=txn.id,
        type=txn.type,
        amount=txn.amount,
        occurred_at=txn.occurred_at,
        category_id=txn.category_id,
        payment_method_id=txn.payment_method_id,
        project_id=txn.project_id,
        description=txn.description,
        memo=txn.memo,
    )


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    payment_method_id: Optional[int] = None
    project_id: Optional[int] = None
    query: Optional[str] = None


SiblingT = TypeVar("SiblingT", Category, PaymentMethod)


class _SiblingService(Generic[SiblingT]):
    """Shared CRUD and manual ordering for categories and payment methods."""

    model: type
    label: str
    collection: str
    # (model, column) pairs cleared when an item is deleted
    references: tuple[tuple[type, str], ...]

    def __init__(
        self, session: Session, mirror: Optional[DocumentMirror] = None
    ) -> None:
        self.session = session
        self.mirror = mirror or get_mirror()

    def _payload(self, item: SiblingT) -> dict[str, Any]:
        raise NotImplementedError

    def _push(self, item: SiblingT) -> None:
        self.mirror.upsert(self.collection, item.id, self._payload(item))

    def list_all(self, type: Optional[TransactionType] = None) -> list[SiblingT]:
        stmt = select(self.model).order_by(self.model.id)
        if type is not None:
            stmt = stmt.where(self.model.type == type)
        items = list(self.session.scalars(stmt).all())
        ordered: list[SiblingT] = []
        for txn_type in TransactionType:
            ordered.extend(sort_siblings([i for i in items if i.type == txn_type]))
        return ordered

    def lookup(self) -> dict[int, SiblingT]:
        return {item.id: item for item in self.session.scalars(select(self.model))}

    def get(self, item_id: int) -> SiblingT:
        item = self.session.get(self.model, item_id)
        if not item:
            raise ValueError(f"{self.label} not found")
        return item

    def _ensure_unique_name(
        self, name: str, type: TransactionType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(self.model).where(
            self.model.type == type,
            func.lower(self.model.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(self.model.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError(f"{self.label} with this name already exists")

    def _next_order(self, type: TransactionType) -> int:
        stmt = select(func.count(self.model.id)).where(self.model.type == type)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def _create(
        self, name: str, type: TransactionType, order: Optional[int], **fields
    ) -> SiblingT:
        clean_name = name.strip()
        self._ensure_unique_name(clean_name, type)
        item = self.model(
            name=clean_name,
            type=type,
            order=order if order is not None else self._next_order(type),
            **fields,
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        self._push(item)
        return item

    def _update(
        self,
        item_id: int,
        name: str,
        type: TransactionType,
        order: Optional[int],
        **fields,
    ) -> SiblingT:
        item = self.get(item_id)
        clean_name = name.strip()
        self._ensure_unique_name(clean_name, type, exclude_id=item_id)
        if item.type != type:
            # Moving partitions appends to the end of the new one.
            item.order = self._next_order(type)
        elif order is not None:
            item.order = order
        item.name = clean_name
        item.type = type
        for key, value in fields.items():
            setattr(item, key, value)
        self.session.commit()
        self.session.refresh(item)
        self._push(item)
        return item

    def delete(self, item_id: int) -> None:
        item = self.get(item_id)
        for model, column_name in self.references:
            column = getattr(model, column_name)
            self.session.execute(
                update(model).where(column == item.id).values({column: None})
            )
        self.session.delete(item)
        self.session.commit()
        self.mirror.delete(self.collection, item_id)

    def reorder(self, dragged_id: int, target_id: int) -> list[SiblingT]:
        """Swap two siblings and persist dense 0-based order for the partition.

        A missing id leaves the database untouched and returns the partition
        as currently stored; a cross-partition drag is ignored.
        """
        dragged = self.session.get(self.model, dragged_id)
        target = self.session.get(self.model, target_id)
        if dragged is None or target is None:
            logger.info(
                f"reorder_skipped: model={self.model.__tablename__} "
                f"dragged={dragged_id} target={target_id} reason=missing"
            )
            survivor = dragged or target
            self.session.expire_all()
            return self.list_all(survivor.type if survivor else None)

        swapped = swap_siblings(self.list_all(), dragged_id, target_id)
        if swapped is None:
            return self.list_all(dragged.type)

        for index, item in enumerate(swapped):
            if item.order != index:
                item.order = index
                self.session.commit()
                self._push(item)
        return swapped


class CategoryService(_SiblingService[Category]):
    model = Category
    label = "Category"
    collection = "categories"
    references = (
        (Transaction, "category_id"),
        (RecurringExpense, "category_id"),
        (ScheduledExpense, "category_id"),
    )

    def _payload(self, item: Category) -> dict[str, Any]:
        return CategoryOut.model_validate(item).model_dump(mode="json")

    def create(self, data: CategoryIn) -> Category:
        return self._create(
            data.name, data.type, data.order, color=data.color, icon=data.icon
        )

    def update(self, category_id: int, data: CategoryIn) -> Category:
        return self._update(
            category_id,
            data.name,
            data.type,
            data.order,
            color=data.color,
            icon=data.icon,
        )


class PaymentMethodService(_SiblingService[PaymentMethod]):
    model = PaymentMethod
    label = "Payment method"
    collection = "paymentMethods"
    references = ((Transaction, "payment_method_id"),)

    def _payload(self, item: PaymentMethod) -> dict[str, Any]:
        return PaymentMethodOut.model_validate(item).model_dump(mode="json")

    def create(self, data: PaymentMethodIn) -> PaymentMethod:
        return self._create(data.name, data.type, data.order, color=data.color)

    def update(self, method_id: int, data: PaymentMethodIn) -> PaymentMethod:
        return self._update(
            method_id, data.name, data.type, data.order, color=data.color
        )


class ProjectService:
    def __init__(
        self, session: Session, mirror: Optional[DocumentMirror] = None
    ) -> None:
        self.session = session
        self.mirror = mirror or get_mirror()

    def _push(self, project: Project) -> None:
        self.mirror.upsert(
            "projects",
            project.id,
            ProjectOut.model_validate(project).model_dump(mode="json"),
        )

    def list_all(self, status: Optional[ProjectStatus] = None) -> list[Project]:
        stmt = select(Project).order_by(Project.created_at, Project.id)
        if status is not None:
            stmt = stmt.where(Project.status == status)
        return self.session.scalars(stmt).all()

    def get(self, project_id: int) -> Project:
        project = self.session.get(Project, project_id)
        if not project:
            raise ValueError("Project not found")
        return project

    def create(self, data: ProjectIn) -> Project:
        project = Project(
            name=data.name.strip(),
            description=data.description,
            color=data.color,
            icon=data.icon,
            status=data.status,
            locked=data.locked,
        )
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        self._push(project)
        return project

    def update(self, project_id: int, data: ProjectIn) -> Project:
        project = self.get(project_id)
        project.name = data.name.strip()
        project.description = data.description
        project.color = data.color
        project.icon = data.icon
        project.status = data.status
        project.locked = data.locked
        self.session.commit()
        self.session.refresh(project)
        self._push(project)
        return project

    def set_status(self, project_id: int, status: ProjectStatus) -> Project:
        project = self.get(project_id)
        project.status = status
        self.session.commit()
        self._push(project)
        return project

    def set_locked(self, project_id: int, locked: bool) -> Project:
        project = self.get(project_id)
        project.locked = locked
        self.session.commit()
        self._push(project)
        return project

    def delete(self, project_id: int) -> None:
        project = self.get(project_id)
        if project.locked:
            raise ValueError("Project is locked")
        detached_ids = self.session.scalars(
            select(Transaction.id).where(Transaction.project_id == project.id)
        ).all()
        self.session.execute(
            update(Transaction)
            .where(Transaction.project_id == project.id)
            .values(project_id=None)
        )
        self.session.delete(project)
        self.session.commit()
        self.mirror.delete("projects", project_id)
        if self.mirror.enabled:
            txn_service = TransactionService(self.session, self.mirror)
            for txn_id in detached_ids:
                txn_service._push(txn_service.get(txn_id))


class TransactionService:
    def __init__(
        self, session: Session, mirror: Optional[DocumentMirror] = None
    ) -> None:
        self.session = session
        self.mirror = mirror or get_mirror()

    def _push(self, txn: Transaction) -> None:
        self.mirror.upsert(
            "transactions",
            txn.id,
            TransactionOut.model_validate(txn).model_dump(mode="json"),
        )

    def _validate_references(self, data: TransactionIn) -> None:
        category = self.session.get(Category, data.category_id)
        if not category:
            raise ValueError("Category not found")
        if category.type != data.type:
            raise ValueError("Category type mismatch")
        if data.payment_method_id is not None:
            method = self.session.get(PaymentMethod, data.payment_method_id)
            if not method:
                raise ValueError("Payment method not found")
            if method.type != data.type:
                raise ValueError("Payment method type mismatch")
        if data.project_id is not None and not self.session.get(
            Project, data.project_id
        ):
            raise ValueError("Project not found")

    def create(self, data: TransactionIn) -> Transaction:
        self._validate_references(data)
        txn = Transaction(
            type=data.type,
            amount=data.amount,
            description=data.description.strip(),
            category_id=data.category_id,
            payment_method_id=data.payment_method_id,
            project_id=data.project_id,
            occurred_at=data.occurred_at,
            memo=data.memo,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        self._push(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._validate_references(data)
        txn.type = data.type
        txn.amount = data.amount
        txn.description = data.description.strip()
        txn.category_id = data.category_id
        txn.payment_method_id = data.payment_method_id
        txn.project_id = data.project_id
        txn.occurred_at = data.occurred_at
        txn.memo = data.memo
        self.session.commit()
        self.session.refresh(txn)
        self._push(txn)
        return txn

    def update_memo(self, transaction_id: int, memo: Optional[str]) -> Transaction:
        txn = self.get(transaction_id)
        txn.memo = memo
        self.session.commit()
        self._push(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.execute(
            update(ScheduledExpense)
            .where(ScheduledExpense.transaction_id == txn.id)
            .values(transaction_id=None)
        )
        self.session.delete(txn)
        self.session.commit()
        self.mirror.delete("transactions", transaction_id)

    def _select(self, date_range: DateRange, filters: TransactionFilters):
        stmt = select(Transaction).where(
            Transaction.occurred_at.between(date_range.start, date_range.end)
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.payment_method_id:
            stmt = stmt.where(
                Transaction.payment_method_id == filters.payment_method_id
            )
        if filters.project_id:
            stmt = stmt.where(Transaction.project_id == filters.project_id)
        if filters.query:
            like = f"%{filters.query.lower()}%"
            stmt = stmt.where(
                func.lower(Transaction.description).like(like)
                | func.lower(func.coalesce(Transaction.memo, "")).like(like)
            )
        return stmt

    def list(
        self,
        date_range: DateRange,
        filters: Optional[TransactionFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = (
            self._select(date_range, filters or TransactionFilters())
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def records(
        self,
        date_range: Optional[DateRange] = None,
        filters: Optional[TransactionFilters] = None,
    ) -> list[TransactionRecord]:
        stmt = self._select(
            date_range or all_time(), filters or TransactionFilters()
        ).order_by(Transaction.occurred_at, Transaction.id)
        return [_record_from_model(txn) for txn in self.session.scalars(stmt)]

    def records_for_project(self, project_id: int) -> list[TransactionRecord]:
        stmt = (
            select(Transaction)
            .where(Transaction.project_id == project_id)
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        )
        return [_record_from_model(txn) for txn in self.session.scalars(stmt)]


class LatestReport:
    """Holds the most recently requested report; late answers are dropped.

    Callers take a ticket with ``request()`` before computing a report and
    hand the result back with ``deliver()``.  Only the newest ticket is
    accepted, so a slow computation for a superseded selection never
    overwrites the current one.
    """

    def __init__(self) -> None:
        self._issued = 0
        self._current: Any = None
        self._ticket: Optional[int] = None

    def request(self) -> int:
        self._issued += 1
        return self._issued

    def deliver(self, ticket: int, report: Any) -> bool:
        if ticket != self._issued:
            logger.debug(f"report_discarded: ticket={ticket} latest={self._issued}")
            return False
        self._current = report
        self._ticket = ticket
        return True

    @property
    def current(self) -> Any:
        return self._current

    @property
    def is_stale(self) -> bool:
        return self._ticket != self._issued


class ReportService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.transactions = TransactionService(session)

    def category_breakdown(
        self,
        date_range: DateRange,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> Breakdown:
        records = filter_transactions(
            self.transactions.records(date_range),
            date_range,
            transaction_type=transaction_type,
        )
        lookup = CategoryService(self.session).lookup()
        return summarize(records, GroupBy.category, lookup)

    def payment_method_breakdown(
        self,
        date_range: DateRange,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> Breakdown:
        records = filter_transactions(
            self.transactions.records(date_range),
            date_range,
            transaction_type=transaction_type,
        )
        lookup = PaymentMethodService(self.session).lookup()
        return summarize(records, GroupBy.payment_method, lookup)

    def daily_breakdown(
        self,
        day: date,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> Breakdown:
        return self.category_breakdown(day_range(day), transaction_type)

    def daily_totals(
        self,
        date_range: DateRange,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> Breakdown:
        records = filter_transactions(
            self.transactions.records(date_range),
            date_range,
            transaction_type=transaction_type,
        )
        return summarize(records, GroupBy.day)

    def summary(self, date_range: DateRange) -> Totals:
        return totals(
            filter_transactions(self.transactions.records(date_range), date_range)
        )

    def yearly_trend(self, year: int) -> list[MonthlyFlow]:
        return monthly_trend(self.transactions.records(year_range(year)), year)

    def project_summary(self, project_id: int) -> Totals:
        ProjectService(self.session).get(project_id)
        records = filter_transactions(
            self.transactions.records_for_project(project_id), project_id=project_id
        )
        return totals(records)

    def month_ledger(
        self,
        year: int,
        month: int,
        transaction_type: Optional[TransactionType] = None,
    ) -> dict[date, list[TransactionRecord]]:
        date_range = month_range(year, month)
        records = filter_transactions(
            self.transactions.records(date_range),
            date_range,
            transaction_type=transaction_type,
        )
        return group_by_day(records)


class RecurringExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[RecurringExpense]:
        stmt = select(RecurringExpense).order_by(
            RecurringExpense.day_of_month, RecurringExpense.id
        )
        return self.session.scalars(stmt).all()

    def get(self, expense_id: int) -> RecurringExpense:
        expense = self.session.get(RecurringExpense, expense_id)
        if not expense:
            raise ValueError("Recurring expense not found")
        return expense

    def _validate(self, data: RecurringExpenseIn) -> None:
        if data.recurrence_type == RecurrenceType.irregular and not data.months:
            raise ValueError("Irregular recurring expenses need at least one month")
        if data.category_id is not None:
            category = self.session.get(Category, data.category_id)
            if not category:
                raise ValueError("Category not found")
            if category.type != TransactionType.expense:
                raise ValueError("Category type mismatch")

    def create(self, data: RecurringExpenseIn) -> RecurringExpense:
        self._validate(data)
        expense = RecurringExpense(**data.model_dump())
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: RecurringExpenseIn) -> RecurringExpense:
        expense = self.get(expense_id)
        self._validate(data)
        for key, value in data.model_dump().items():
            setattr(expense, key, value)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def set_active(self, expense_id: int, is_active: bool) -> RecurringExpense:
        expense = self.get(expense_id)
        expense.is_active = is_active
        self.session.commit()
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.execute(
            update(Transaction)
            .where(Transaction.recurring_expense_id == expense.id)
            .values(recurring_expense_id=None)
        )
        self.session.delete(expense)
        self.session.commit()

    def occurrences(
        self, date_range: DateRange
    ) -> list[tuple[date, RecurringExpense]]:
        due: list[tuple[date, RecurringExpense]] = []
        for expense in self.list_all():
            if not expense.is_active:
                continue
            for day in occurrences_between(
                expense, date_range.start_date, date_range.end_date
            ):
                due.append((day, expense))
        due.sort(key=lambda item: (item[0], item[1].id))
        return due

    def post_due(self, today: Optional[date] = None) -> int:
        count = RecurringEngine(self.session).post_due(today or local_today())
        self.session.commit()
        return count


class ScheduledExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(
        self, status: Optional[ScheduledStatus] = None
    ) -> list[ScheduledExpense]:
        stmt = select(ScheduledExpense).order_by(
            ScheduledExpense.scheduled_date, ScheduledExpense.id
        )
        if status is not None:
            stmt = stmt.where(ScheduledExpense.status == status)
        return self.session.scalars(stmt).all()

    def get(self, expense_id: int) -> ScheduledExpense:
        expense = self.session.get(ScheduledExpense, expense_id)
        if not expense:
            raise ValueError("Scheduled expense not found")
        return expense

    def create(self, data: ScheduledExpenseIn) -> ScheduledExpense:
        expense = ScheduledExpense(**data.model_dump())
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: ScheduledExpenseIn) -> ScheduledExpense:
        expense = self._pending(expense_id)
        for key, value in data.model_dump().items():
            setattr(expense, key, value)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def _pending(self, expense_id: int) -> ScheduledExpense:
        expense = self.get(expense_id)
        if expense.status != ScheduledStatus.pending:
            raise ValueError("Scheduled expense is not pending")
        return expense

    def complete(
        self,
        expense_id: int,
        occurred_at: Optional[datetime] = None,
        payment_method_id: Optional[int] = None,
    ) -> Transaction:
        expense = self._pending(expense_id)
        if expense.category_id is None:
            raise ValueError("Scheduled expense needs a category before completion")
        txn = TransactionService(self.session).create(
            TransactionIn(
                type=TransactionType.expense,
                amount=expense.amount,
                description=expense.name,
                category_id=expense.category_id,
                payment_method_id=payment_method_id,
                occurred_at=occurred_at
                or datetime.combine(expense.scheduled_date, time(12, 0)),
                memo=expense.memo,
            )
        )
        expense.status = ScheduledStatus.completed
        expense.transaction_id = txn.id
        self.session.commit()
        return txn

    def cancel(self, expense_id: int) -> ScheduledExpense:
        expense = self._pending(expense_id)
        expense.status = ScheduledStatus.cancelled
        self.session.commit()
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()


class BankAccountService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self, active_only: bool = False) -> list[BankAccount]:
        stmt = select(BankAccount).order_by(
            BankAccount.is_favorite.desc(), BankAccount.created_at, BankAccount.id
        )
        if active_only:
            stmt = stmt.where(BankAccount.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> BankAccount:
        account = self.session.get(BankAccount, account_id)
        if not account:
            raise ValueError("Bank account not found")
        return account

    def create(self, data: BankAccountIn) -> BankAccount:
        account = BankAccount(**data.model_dump())
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: BankAccountIn) -> BankAccount:
        account = self.get(account_id)
        for key, value in data.model_dump().items():
            setattr(account, key, value)
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        self.session.delete(account)
        self.session.commit()

    def record_balance(self, data: AccountBalanceIn) -> AccountBalance:
        self.get(data.account_id)
        balance = AccountBalance(**data.model_dump())
        self.session.add(balance)
        self.session.commit()
        self.session.refresh(balance)
        return balance

    def balance_history(self, account_id: int) -> list[AccountBalance]:
        self.get(account_id)
        stmt = (
            select(AccountBalance)
            .where(AccountBalance.account_id == account_id)
            .order_by(AccountBalance.recorded_at.desc(), AccountBalance.id.desc())
        )
        return self.session.scalars(stmt).all()

    def latest_balances(self) -> dict[int, AccountBalance]:
        stmt = select(AccountBalance).order_by(
            AccountBalance.recorded_at, AccountBalance.id
        )
        latest: dict[int, AccountBalance] = {}
        for balance in self.session.scalars(stmt):
            latest[balance.account_id] = balance
        return latest

    def total_balance(self) -> int:
        latest = self.latest_balances()
        return sum(
            latest[account.id].amount
            for account in self.list_all(active_only=True)
            if account.id in latest
        )
