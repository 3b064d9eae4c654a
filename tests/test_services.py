from datetime import date, datetime

import pytest
from sqlalchemy.orm import Session

from aggregation import UNASSIGNED
from database import Base, build_engine
from models import Category, ProjectStatus, Transaction, TransactionType
from periods import month_range
from schemas import (
    CategoryIn,
    PaymentMethodIn,
    ProjectIn,
    RecurringExpenseIn,
    ScheduledExpenseIn,
    TransactionIn,
)
from services import (
    CategoryService,
    LatestReport,
    PaymentMethodService,
    ProjectService,
    RecurringExpenseService,
    ReportService,
    ScheduledExpenseService,
    TransactionFilters,
    TransactionService,
)


def make_session() -> Session:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _category(session, name, txn_type=TransactionType.expense, color=None):
    return CategoryService(session).create(
        CategoryIn(name=name, type=txn_type, color=color)
    )


def _expense(session, amount, when, category_id, **extra):
    return TransactionService(session).create(
        TransactionIn(
            type=TransactionType.expense,
            amount=amount,
            category_id=category_id,
            occurred_at=when,
            **extra,
        )
    )


def test_new_categories_append_to_their_partition():
    with make_session() as session:
        food = _category(session, "Food")
        rent = _category(session, "Rent")
        salary = _category(session, "Salary", TransactionType.income)

        assert (food.order, rent.order) == (0, 1)
        assert salary.order == 0


def test_category_name_unique_within_type():
    with make_session() as session:
        _category(session, "Food")
        with pytest.raises(ValueError, match="already exists"):
            _category(session, " food ")
        # Same name on the income side is fine
        _category(session, "Food", TransactionType.income)


def test_reorder_swaps_and_persists_dense_order():
    with make_session() as session:
        service = CategoryService(session)
        first = _category(session, "One")
        _category(session, "Two")
        third = _category(session, "Three")
        _category(session, "Wages", TransactionType.income)

        result = service.reorder(first.id, third.id)

        assert [c.name for c in result] == ["Three", "Two", "One"]
        assert [c.order for c in result] == [0, 1, 2]
        stored = service.list_all(TransactionType.expense)
        assert [(c.name, c.order) for c in stored] == [
            ("Three", 0),
            ("Two", 1),
            ("One", 2),
        ]
        assert service.list_all(TransactionType.income)[0].order == 0


def test_reorder_twice_restores_original_order():
    with make_session() as session:
        service = PaymentMethodService(session)
        cash, _, bank = [
            service.create(PaymentMethodIn(name=name, type=TransactionType.expense))
            for name in ("Cash", "Card", "Bank")
        ]

        service.reorder(cash.id, bank.id)
        result = service.reorder(cash.id, bank.id)

        assert [m.name for m in result] == ["Cash", "Card", "Bank"]


def test_reorder_with_missing_id_leaves_order_untouched():
    with make_session() as session:
        service = CategoryService(session)
        first = _category(session, "One")
        _category(session, "Two")

        result = service.reorder(first.id, 999)

        assert [(c.name, c.order) for c in result] == [("One", 0), ("Two", 1)]


def test_reorder_across_partitions_is_ignored():
    with make_session() as session:
        service = CategoryService(session)
        food = _category(session, "Food")
        wages = _category(session, "Wages", TransactionType.income)

        result = service.reorder(food.id, wages.id)

        assert [c.name for c in result] == ["Food"]
        assert service.get(wages.id).order == 0


def test_update_to_other_type_appends_to_new_partition():
    with make_session() as session:
        service = CategoryService(session)
        _category(session, "Wages", TransactionType.income)
        gift = _category(session, "Gift")

        moved = service.update(
            gift.id, CategoryIn(name="Gift", type=TransactionType.income)
        )

        assert moved.type == TransactionType.income
        assert moved.order == 1


def test_deleted_category_shows_as_unassigned():
    with make_session() as session:
        food = _category(session, "Food", color="#22c55e")
        rent = _category(session, "Rent", color="#ef4444")
        txn = _expense(session, 1000, datetime(2024, 3, 1, 12), food.id)
        _expense(session, 2500, datetime(2024, 3, 2, 12), rent.id)

        CategoryService(session).delete(food.id)

        assert TransactionService(session).get(txn.id).category_id is None
        breakdown = ReportService(session).category_breakdown(month_range(2024, 3))
        assert [(b.name, b.amount) for b in breakdown.buckets] == [
            ("Rent", 2500),
            (UNASSIGNED, 1000),
        ]
        assert breakdown.buckets[0].color == "#ef4444"


def test_transaction_rejects_category_of_other_type():
    with make_session() as session:
        wages = _category(session, "Wages", TransactionType.income)
        with pytest.raises(ValueError, match="Category type mismatch"):
            _expense(session, 100, datetime(2024, 3, 1), wages.id)


def test_transaction_rejects_unknown_references():
    with make_session() as session:
        food = _category(session, "Food")
        with pytest.raises(ValueError, match="Category not found"):
            _expense(session, 100, datetime(2024, 3, 1), 999)
        with pytest.raises(ValueError, match="Payment method not found"):
            _expense(session, 100, datetime(2024, 3, 1), food.id, payment_method_id=5)
        with pytest.raises(ValueError, match="Project not found"):
            _expense(session, 100, datetime(2024, 3, 1), food.id, project_id=5)


def test_transaction_list_filters_and_orders_newest_first():
    with make_session() as session:
        food = _category(session, "Food")
        _expense(session, 100, datetime(2024, 3, 1, 8), food.id, description="Bread")
        _expense(session, 200, datetime(2024, 3, 3, 8), food.id, memo="coffee beans")
        _expense(session, 300, datetime(2024, 4, 1, 8), food.id, description="Coffee")

        service = TransactionService(session)
        march = service.list(month_range(2024, 3))
        assert [t.amount for t in march] == [200, 100]

        coffee = service.list(month_range(2024, 3), TransactionFilters(query="COFFEE"))
        assert [t.amount for t in coffee] == [200]


def test_locked_project_cannot_be_deleted():
    with make_session() as session:
        project = ProjectService(session).create(ProjectIn(name="Trip", locked=True))
        with pytest.raises(ValueError, match="locked"):
            ProjectService(session).delete(project.id)


def test_deleting_project_detaches_transactions():
    with make_session() as session:
        food = _category(session, "Food")
        projects = ProjectService(session)
        project = projects.create(ProjectIn(name="Trip"))
        txn = _expense(
            session, 4000, datetime(2024, 3, 1), food.id, project_id=project.id
        )

        projects.delete(project.id)

        assert TransactionService(session).get(txn.id).project_id is None
        assert projects.list_all() == []


def test_project_summary_and_status():
    with make_session() as session:
        food = _category(session, "Food")
        refund = _category(session, "Refund", TransactionType.income)
        projects = ProjectService(session)
        project = projects.create(ProjectIn(name="Wedding"))
        _expense(session, 3000, datetime(2024, 3, 1), food.id, project_id=project.id)
        _expense(session, 999, datetime(2024, 3, 1), food.id)
        TransactionService(session).create(
            TransactionIn(
                type=TransactionType.income,
                amount=500,
                category_id=refund.id,
                project_id=project.id,
                occurred_at=datetime(2024, 3, 2),
            )
        )

        summary = ReportService(session).project_summary(project.id)
        assert (summary.income, summary.expense, summary.net) == (500, 3000, -2500)

        projects.set_status(project.id, ProjectStatus.completed)
        assert [p.name for p in projects.list_all(ProjectStatus.completed)] == [
            "Wedding"
        ]
        with pytest.raises(ValueError, match="Project not found"):
            ReportService(session).project_summary(999)


def test_report_summary_trend_and_ledger():
    with make_session() as session:
        food = _category(session, "Food")
        wages = _category(session, "Wages", TransactionType.income)
        _expense(session, 1000, datetime(2024, 3, 1, 9), food.id)
        _expense(session, 2000, datetime(2024, 3, 5, 9), food.id)
        TransactionService(session).create(
            TransactionIn(
                type=TransactionType.income,
                amount=5000,
                category_id=wages.id,
                occurred_at=datetime(2024, 3, 10, 9),
            )
        )
        reports = ReportService(session)

        summary = reports.summary(month_range(2024, 3))
        assert (summary.income, summary.expense, summary.net) == (5000, 3000, 2000)

        trend = reports.yearly_trend(2024)
        assert len(trend) == 12
        assert trend[2].expense == 3000
        assert trend[2].income == 5000

        ledger = reports.month_ledger(2024, 3, TransactionType.expense)
        assert list(ledger) == [date(2024, 3, 5), date(2024, 3, 1)]

        daily = reports.daily_breakdown(date(2024, 3, 5))
        assert daily.total == 2000


def test_payment_method_breakdown_ignores_unpaid_transactions():
    with make_session() as session:
        food = _category(session, "Food")
        card = PaymentMethodService(session).create(
            PaymentMethodIn(name="Card", type=TransactionType.expense)
        )
        _expense(session, 700, datetime(2024, 3, 1), food.id, payment_method_id=card.id)
        _expense(session, 300, datetime(2024, 3, 1), food.id)

        breakdown = ReportService(session).payment_method_breakdown(
            month_range(2024, 3)
        )
        assert [(b.name, b.amount) for b in breakdown.buckets] == [("Card", 700)]
        assert breakdown.buckets[0].percent == 100


def test_deleting_transaction_removes_it():
    with make_session() as session:
        food = _category(session, "Food")
        txn = _expense(session, 100, datetime(2024, 3, 1), food.id)
        TransactionService(session).delete(txn.id)
        assert session.query(Transaction).count() == 0
        assert session.query(Category).count() == 1


def test_latest_report_drops_superseded_results():
    holder = LatestReport()
    march = holder.request()
    april = holder.request()

    assert holder.deliver(march, "march") is False
    assert holder.current is None
    assert holder.is_stale

    assert holder.deliver(april, "april") is True
    assert holder.current == "april"
    assert not holder.is_stale

    holder.request()
    assert holder.is_stale
    assert holder.current == "april"


def test_deleting_category_clears_recurring_and_scheduled_references():
    with make_session() as session:
        housing = _category(session, "Housing")
        rent = RecurringExpenseService(session).create(
            RecurringExpenseIn(
                name="Rent", amount=800000, day_of_month=25, category_id=housing.id
            )
        )
        repair = ScheduledExpenseService(session).create(
            ScheduledExpenseIn(
                name="Boiler repair",
                amount=150000,
                category_id=housing.id,
                scheduled_date=date(2024, 11, 2),
            )
        )
        txn = _expense(session, 800000, datetime(2024, 10, 25, 12), housing.id)

        CategoryService(session).delete(housing.id)
        session.expire_all()

        assert session.get(Category, housing.id) is None
        assert RecurringExpenseService(session).get(rent.id).category_id is None
        assert ScheduledExpenseService(session).get(repair.id).category_id is None
        assert TransactionService(session).get(txn.id).category_id is None


def test_deleting_payment_method_keeps_transactions():
    with make_session() as session:
        food = _category(session, "Food")
        card = PaymentMethodService(session).create(
            PaymentMethodIn(name="Card", type=TransactionType.expense)
        )
        txn = _expense(
            session, 1200, datetime(2024, 3, 1), food.id, payment_method_id=card.id
        )

        PaymentMethodService(session).delete(card.id)

        assert TransactionService(session).get(txn.id).payment_method_id is None
        assert PaymentMethodService(session).list_all() == []


def test_update_memo_only_touches_memo():
    with make_session() as session:
        food = _category(session, "Food")
        txn = _expense(
            session, 4500, datetime(2024, 3, 1), food.id, description="Lunch"
        )

        updated = TransactionService(session).update_memo(txn.id, "with team")

        assert updated.memo == "with team"
        assert updated.description == "Lunch"
        assert updated.amount == 4500
        with pytest.raises(ValueError, match="Transaction not found"):
            TransactionService(session).update_memo(999, "x")
