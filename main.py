import logging
import tomllib
from datetime import date, datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from sqlalchemy.orm import Session

from aggregation import Breakdown, Totals, totals
from database import SessionLocal, init_db
from models import ProjectStatus, ScheduledStatus, TransactionType
from periods import DateRange, resolve_range
from scheduler import SchedulerManager
from schemas import (
    AccountBalanceIn,
    AccountBalanceOut,
    ActiveIn,
    BankAccountIn,
    BankAccountOut,
    CategoryIn,
    CategoryOut,
    PaymentMethodIn,
    PaymentMethodOut,
    ProjectIn,
    ProjectOut,
    ProjectStatusIn,
    RecurringExpenseIn,
    RecurringExpenseOut,
    ReorderIn,
    ScheduledExpenseIn,
    ScheduledExpenseOut,
    TransactionIn,
    TransactionMemoIn,
    TransactionOut,
)
from services import (
    BankAccountService,
    CategoryService,
    PaymentMethodService,
    ProjectService,
    RecurringExpenseService,
    ReportService,
    ScheduledExpenseService,
    TransactionFilters,
    TransactionService,
)

logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Household Ledger", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    init_db()
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def range_from_request(request: Request) -> DateRange:
    params = request.query_params
    try:
        year = int(params["year"]) if params.get("year") else None
        month = int(params["month"]) if params.get("month") else None
        return resolve_range(
            params.get("mode"),
            day=params.get("day"),
            year=year,
            month=month,
            start=params.get("start"),
            end=params.get("end"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def type_from_request(
    request: Request, default: Optional[TransactionType] = None
) -> Optional[TransactionType]:
    type_param = request.query_params.get("type")
    if not type_param:
        return default
    try:
        return TransactionType(type_param)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid transaction type") from exc


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params

    def int_param(name: str) -> Optional[int]:
        value = params.get(name)
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    return TransactionFilters(
        type=type_from_request(request),
        category_id=int_param("category"),
        payment_method_id=int_param("payment_method"),
        project_id=int_param("project"),
        query=params.get("q"),
    )


@app.get("/api/health")
def api_health():
    return {"status": "ok", "version": APP_VERSION}


def breakdown_payload(breakdown: Breakdown) -> dict[str, object]:
    return {
        "buckets": [
            {
                "name": bucket.name,
                "value": bucket.amount,
                "color": bucket.color,
                "percent": bucket.percent,
            }
            for bucket in breakdown.buckets
        ],
        "total": breakdown.total,
    }


def totals_payload(summary: Totals) -> dict[str, int]:
    return {
        "income": summary.income,
        "expense": summary.expense,
        "net": summary.net,
    }


# Categories and payment methods


@app.get("/api/categories")
def api_categories(request: Request, db: Session = Depends(get_db)):
    items = CategoryService(db).list_all(type_from_request(request))
    return [CategoryOut.model_validate(c) for c in items]


@app.post("/api/categories", status_code=201)
def api_create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryOut.model_validate(category)


@app.put("/api/categories/{category_id}")
def api_update_category(
    category_id: int, data: CategoryIn, db: Session = Depends(get_db)
):
    service = CategoryService(db)
    try:
        service.get(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        category = service.update(category_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}")
def api_delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/api/categories/reorder")
def api_reorder_categories(data: ReorderIn, db: Session = Depends(get_db)):
    items = CategoryService(db).reorder(data.dragged_id, data.target_id)
    return [CategoryOut.model_validate(c) for c in items]


@app.get("/api/payment-methods")
def api_payment_methods(request: Request, db: Session = Depends(get_db)):
    items = PaymentMethodService(db).list_all(type_from_request(request))
    return [PaymentMethodOut.model_validate(m) for m in items]


@app.post("/api/payment-methods", status_code=201)
def api_create_payment_method(data: PaymentMethodIn, db: Session = Depends(get_db)):
    try:
        method = PaymentMethodService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return PaymentMethodOut.model_validate(method)


@app.put("/api/payment-methods/{method_id}")
def api_update_payment_method(
    method_id: int, data: PaymentMethodIn, db: Session = Depends(get_db)
):
    service = PaymentMethodService(db)
    try:
        service.get(method_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        method = service.update(method_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return PaymentMethodOut.model_validate(method)


@app.delete("/api/payment-methods/{method_id}")
def api_delete_payment_method(method_id: int, db: Session = Depends(get_db)):
    try:
        PaymentMethodService(db).delete(method_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/api/payment-methods/reorder")
def api_reorder_payment_methods(data: ReorderIn, db: Session = Depends(get_db)):
    items = PaymentMethodService(db).reorder(data.dragged_id, data.target_id)
    return [PaymentMethodOut.model_validate(m) for m in items]


# Projects


@app.get("/api/projects")
def api_projects(request: Request, db: Session = Depends(get_db)):
    status_param = request.query_params.get("status")
    try:
        status = ProjectStatus(status_param) if status_param else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid project status") from exc
    return [ProjectOut.model_validate(p) for p in ProjectService(db).list_all(status)]


@app.post("/api/projects", status_code=201)
def api_create_project(data: ProjectIn, db: Session = Depends(get_db)):
    return ProjectOut.model_validate(ProjectService(db).create(data))


@app.get("/api/projects/{project_id}")
def api_project_detail(project_id: int, db: Session = Depends(get_db)):
    try:
        project = ProjectService(db).get(project_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    reports = ReportService(db)
    records = reports.transactions.records_for_project(project_id)
    return {
        "project": ProjectOut.model_validate(project),
        "summary": totals_payload(reports.project_summary(project_id)),
        "transaction_ids": [r.id for r in records],
    }


@app.put("/api/projects/{project_id}")
def api_update_project(project_id: int, data: ProjectIn, db: Session = Depends(get_db)):
    try:
        project = ProjectService(db).update(project_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ProjectOut.model_validate(project)


@app.put("/api/projects/{project_id}/status")
def api_project_status(
    project_id: int, data: ProjectStatusIn, db: Session = Depends(get_db)
):
    try:
        project = ProjectService(db).set_status(project_id, data.status)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ProjectOut.model_validate(project)


@app.post("/api/projects/{project_id}/lock")
def api_lock_project(project_id: int, db: Session = Depends(get_db)):
    try:
        project = ProjectService(db).set_locked(project_id, True)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ProjectOut.model_validate(project)


@app.post("/api/projects/{project_id}/unlock")
def api_unlock_project(project_id: int, db: Session = Depends(get_db)):
    try:
        project = ProjectService(db).set_locked(project_id, False)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ProjectOut.model_validate(project)


@app.delete("/api/projects/{project_id}")
def api_delete_project(project_id: int, db: Session = Depends(get_db)):
    service = ProjectService(db)
    try:
        service.get(project_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        service.delete(project_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return Response(status_code=204)


# Transactions


@app.get("/api/transactions")
def api_transactions(request: Request, db: Session = Depends(get_db)):
    date_range = range_from_request(request)
    filters = filters_from_request(request)
    try:
        page = max(int(request.query_params.get("page", "1")), 1)
        limit = min(max(int(request.query_params.get("limit", "50")), 1), 200)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid pagination") from exc
    offset = (page - 1) * limit
    items = TransactionService(db).list(
        date_range, filters, limit=limit + 1, offset=offset
    )
    has_more = len(items) > limit
    return {
        "items": [TransactionOut.model_validate(t) for t in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.post("/api/transactions", status_code=201)
def api_create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.put("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: int, data: TransactionIn, db: Session = Depends(get_db)
):
    service = TransactionService(db)
    try:
        service.get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        txn = service.update(transaction_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.patch("/api/transactions/{transaction_id}/memo")
def api_update_transaction_memo(
    transaction_id: int, data: TransactionMemoIn, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update_memo(transaction_id, data.memo)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}")
def api_delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


# Reports


@app.get("/api/reports/breakdown")
def api_report_breakdown(request: Request, db: Session = Depends(get_db)):
    date_range = range_from_request(request)
    txn_type = type_from_request(request, TransactionType.expense)
    by = request.query_params.get("by", "category")
    reports = ReportService(db)
    if by == "category":
        breakdown = reports.category_breakdown(date_range, txn_type)
    elif by == "payment_method":
        breakdown = reports.payment_method_breakdown(date_range, txn_type)
    elif by == "day":
        breakdown = reports.daily_totals(date_range, txn_type)
    else:
        raise HTTPException(status_code=400, detail=f"Unknown grouping: {by}")
    return breakdown_payload(breakdown)


@app.get("/api/reports/summary")
def api_report_summary(request: Request, db: Session = Depends(get_db)):
    return totals_payload(ReportService(db).summary(range_from_request(request)))


@app.get("/api/reports/trend")
def api_report_trend(request: Request, db: Session = Depends(get_db)):
    try:
        year = int(request.query_params.get("year") or date.today().year)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid year") from exc
    trend = ReportService(db).yearly_trend(year)
    return {
        "year": year,
        "months": [
            {"month": m.month, "income": m.income, "expense": m.expense}
            for m in trend
        ],
        "income": sum(m.income for m in trend),
        "expense": sum(m.expense for m in trend),
        "net": sum(m.income - m.expense for m in trend),
    }


@app.get("/api/reports/ledger")
def api_report_ledger(request: Request, db: Session = Depends(get_db)):
    today = date.today()
    try:
        year = int(request.query_params.get("year") or today.year)
        month = int(request.query_params.get("month") or today.month)
        days = ReportService(db).month_ledger(
            year, month, type_from_request(request)
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [
        {
            "date": day.isoformat(),
            "transaction_ids": [r.id for r in records],
            **totals_payload(totals(records)),
        }
        for day, records in days.items()
    ]


# Recurring and scheduled expenses


@app.get("/api/recurring-expenses")
def api_recurring_expenses(db: Session = Depends(get_db)):
    items = RecurringExpenseService(db).list_all()
    return [RecurringExpenseOut.model_validate(e) for e in items]


@app.post("/api/recurring-expenses", status_code=201)
def api_create_recurring_expense(
    data: RecurringExpenseIn, db: Session = Depends(get_db)
):
    try:
        expense = RecurringExpenseService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RecurringExpenseOut.model_validate(expense)


@app.put("/api/recurring-expenses/{expense_id}")
def api_update_recurring_expense(
    expense_id: int, data: RecurringExpenseIn, db: Session = Depends(get_db)
):
    service = RecurringExpenseService(db)
    try:
        service.get(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        expense = service.update(expense_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RecurringExpenseOut.model_validate(expense)


@app.put("/api/recurring-expenses/{expense_id}/active")
def api_recurring_expense_active(
    expense_id: int, data: ActiveIn, db: Session = Depends(get_db)
):
    try:
        expense = RecurringExpenseService(db).set_active(expense_id, data.is_active)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return RecurringExpenseOut.model_validate(expense)


@app.post("/api/recurring-expenses/post-due")
def api_post_due_recurring_expenses(request: Request, db: Session = Depends(get_db)):
    date_param = request.query_params.get("date")
    try:
        today = date.fromisoformat(date_param) if date_param else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date") from exc
    posted = RecurringExpenseService(db).post_due(today)
    logger.info(f"recurring_post: source=api transactions_posted={posted}")
    return {"posted": posted}


@app.delete("/api/recurring-expenses/{expense_id}")
def api_delete_recurring_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        RecurringExpenseService(db).delete(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/recurring-expenses/occurrences")
def api_recurring_occurrences(request: Request, db: Session = Depends(get_db)):
    due = RecurringExpenseService(db).occurrences(range_from_request(request))
    return [
        {
            "date": day.isoformat(),
            "expense_id": e.id,
            "name": e.name,
            "amount": e.amount,
        }
        for day, e in due
    ]


@app.get("/api/scheduled-expenses")
def api_scheduled_expenses(request: Request, db: Session = Depends(get_db)):
    status_param = request.query_params.get("status")
    try:
        status = ScheduledStatus(status_param) if status_param else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid status") from exc
    items = ScheduledExpenseService(db).list_all(status)
    return [ScheduledExpenseOut.model_validate(e) for e in items]


@app.post("/api/scheduled-expenses", status_code=201)
def api_create_scheduled_expense(
    data: ScheduledExpenseIn, db: Session = Depends(get_db)
):
    expense = ScheduledExpenseService(db).create(data)
    return ScheduledExpenseOut.model_validate(expense)


@app.put("/api/scheduled-expenses/{expense_id}")
def api_update_scheduled_expense(
    expense_id: int, data: ScheduledExpenseIn, db: Session = Depends(get_db)
):
    service = ScheduledExpenseService(db)
    try:
        service.get(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        expense = service.update(expense_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ScheduledExpenseOut.model_validate(expense)


@app.delete("/api/scheduled-expenses/{expense_id}")
def api_delete_scheduled_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        ScheduledExpenseService(db).delete(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/api/scheduled-expenses/{expense_id}/complete")
def api_complete_scheduled_expense(
    expense_id: int,
    request: Request,
    db: Session = Depends(get_db),
):
    occurred_param = request.query_params.get("occurred_at")
    try:
        occurred_at = datetime.fromisoformat(occurred_param) if occurred_param else None
        txn = ScheduledExpenseService(db).complete(expense_id, occurred_at)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.post("/api/scheduled-expenses/{expense_id}/cancel")
def api_cancel_scheduled_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        expense = ScheduledExpenseService(db).cancel(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ScheduledExpenseOut.model_validate(expense)


# Bank accounts


@app.get("/api/accounts")
def api_accounts(db: Session = Depends(get_db)):
    service = BankAccountService(db)
    latest = service.latest_balances()
    return {
        "accounts": [
            {
                "account": BankAccountOut.model_validate(account),
                "latest_balance": (
                    AccountBalanceOut.model_validate(latest[account.id])
                    if account.id in latest
                    else None
                ),
            }
            for account in service.list_all()
        ],
        "total_balance": service.total_balance(),
    }


@app.post("/api/accounts", status_code=201)
def api_create_account(data: BankAccountIn, db: Session = Depends(get_db)):
    return BankAccountOut.model_validate(BankAccountService(db).create(data))


@app.put("/api/accounts/{account_id}")
def api_update_account(
    account_id: int, data: BankAccountIn, db: Session = Depends(get_db)
):
    try:
        account = BankAccountService(db).update(account_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return BankAccountOut.model_validate(account)


@app.delete("/api/accounts/{account_id}")
def api_delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        BankAccountService(db).delete(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/api/accounts/balances", status_code=201)
def api_record_balance(data: AccountBalanceIn, db: Session = Depends(get_db)):
    try:
        balance = BankAccountService(db).record_balance(data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info(f"balance_recorded: account={data.account_id} id={balance.id}")
    return AccountBalanceOut.model_validate(balance)


@app.get("/api/accounts/{account_id}/balances")
def api_balance_history(account_id: int, db: Session = Depends(get_db)):
    try:
        history = BankAccountService(db).balance_history(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [AccountBalanceOut.model_validate(b) for b in history]
