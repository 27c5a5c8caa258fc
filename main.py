import logging
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from budgeting import Aggregator
from config import get_settings
from database import get_db
from ledger import SqlLedgerStore, StoreError
from notifications import build_engine
from periods import resolve_range
from scheduler import SchedulerManager
from schemas import (
    CategoryIn,
    CategoryLimitIn,
    CategoryLimitOut,
    CategoryOut,
    CategorySummaryOut,
    CheckResultOut,
    MonthlySummaryOut,
    NotificationIn,
    NotificationOut,
    NotificationStats,
    PlannedExpenseIn,
    PlannedExpenseOut,
    PlannedIncomeIn,
    PlannedIncomeOut,
    TransactionIn,
    TransactionOut,
)
from services import (
    CategoryLimitService,
    CategoryService,
    NotificationService,
    PlannedExpenseService,
    PlannedIncomeService,
    TransactionService,
)


logger = logging.getLogger(__name__)

app = FastAPI(title="Spendwatch")
scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(StoreError)
def store_error_handler(_request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"store_error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


def _now() -> datetime:
    return datetime.now(ZoneInfo(get_settings().timezone))


def _not_found(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if "not found" in message.lower() else 400
    return HTTPException(status_code=status, detail=message)


def _range(start: Optional[str], end: Optional[str]) -> tuple[Optional[date], Optional[date]]:
    try:
        return resolve_range(start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_all()


@app.post("/api/v1/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).create(data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.get("/api/v1/categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).get(category_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.put("/api/v1/categories/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).update(category_id, data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.delete("/api/v1/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)) -> None:
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.get("/api/v1/transactions", response_model=list[TransactionOut])
def list_transactions(
    category_id: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    db: Session = Depends(get_db),
):
    start, end = _range(start_date, end_date)
    return TransactionService(db).list(category_id=category_id, start=start, end=end)


@app.post("/api/v1/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).create(data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.put("/api/v1/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, data: TransactionIn, db: Session = Depends(get_db)
):
    try:
        return TransactionService(db).update(transaction_id, data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.delete("/api/v1/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)) -> None:
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.get("/api/v1/category-limits", response_model=list[CategoryLimitOut])
def list_category_limits(
    category_id: Optional[int] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return CategoryLimitService(db).list(category_id=category_id, month=month, year=year)


@app.post("/api/v1/category-limits", response_model=CategoryLimitOut, status_code=201)
def create_category_limit(data: CategoryLimitIn, db: Session = Depends(get_db)):
    try:
        return CategoryLimitService(db).create(data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.put("/api/v1/category-limits/{limit_id}", response_model=CategoryLimitOut)
def update_category_limit(
    limit_id: int, data: CategoryLimitIn, db: Session = Depends(get_db)
):
    try:
        return CategoryLimitService(db).update(limit_id, data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.delete("/api/v1/category-limits/{limit_id}", status_code=204)
def delete_category_limit(limit_id: int, db: Session = Depends(get_db)) -> None:
    try:
        CategoryLimitService(db).delete(limit_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.get("/api/v1/planned-expenses", response_model=list[PlannedExpenseOut])
def list_planned_expenses(
    category_id: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    is_completed: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    start, end = _range(start_date, end_date)
    return PlannedExpenseService(db).list(
        category_id=category_id, start=start, end=end, is_completed=is_completed
    )


@app.post("/api/v1/planned-expenses", response_model=PlannedExpenseOut, status_code=201)
def create_planned_expense(data: PlannedExpenseIn, db: Session = Depends(get_db)):
    try:
        return PlannedExpenseService(db).create(data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.put("/api/v1/planned-expenses/{expense_id}", response_model=PlannedExpenseOut)
def update_planned_expense(
    expense_id: int, data: PlannedExpenseIn, db: Session = Depends(get_db)
):
    try:
        return PlannedExpenseService(db).update(expense_id, data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.post(
    "/api/v1/planned-expenses/{expense_id}/complete", response_model=PlannedExpenseOut
)
def complete_planned_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        return PlannedExpenseService(db).set_completed(expense_id, True)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.delete("/api/v1/planned-expenses/{expense_id}", status_code=204)
def delete_planned_expense(expense_id: int, db: Session = Depends(get_db)) -> None:
    try:
        PlannedExpenseService(db).delete(expense_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.get("/api/v1/planned-income", response_model=list[PlannedIncomeOut])
def list_planned_income(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return PlannedIncomeService(db).list(month=month, year=year)


@app.post("/api/v1/planned-income", response_model=PlannedIncomeOut, status_code=201)
def create_planned_income(data: PlannedIncomeIn, db: Session = Depends(get_db)):
    return PlannedIncomeService(db).create(data)


@app.post(
    "/api/v1/planned-income/copy-previous", response_model=list[PlannedIncomeOut]
)
def copy_planned_income(month: int, year: int, db: Session = Depends(get_db)):
    try:
        return PlannedIncomeService(db).copy_from_previous_month(year, month)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.put("/api/v1/planned-income/{income_id}", response_model=PlannedIncomeOut)
def update_planned_income(
    income_id: int, data: PlannedIncomeIn, db: Session = Depends(get_db)
):
    try:
        return PlannedIncomeService(db).update(income_id, data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.delete("/api/v1/planned-income/{income_id}", status_code=204)
def delete_planned_income(income_id: int, db: Session = Depends(get_db)) -> None:
    try:
        PlannedIncomeService(db).delete(income_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.get("/api/v1/analytics/monthly-summary", response_model=MonthlySummaryOut)
def monthly_summary(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    today = _now().date()
    if month is None:
        month = today.month
    if year is None:
        year = today.year
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    summary = Aggregator(SqlLedgerStore(db)).monthly_summary(year, month)
    return MonthlySummaryOut(
        month=summary.period.month,
        year=summary.period.year,
        categories=[
            CategorySummaryOut(
                category_id=snap.category_id,
                category_name=snap.category_name,
                amount_cents=snap.spent_cents,
                limit_cents=snap.limit_cents,
                is_exceeded=snap.exceeded,
                percentage=snap.percentage,
            )
            for snap in summary.categories
        ],
        total_cents=summary.total_cents,
    )


@app.get("/api/v1/analytics/category-summary", response_model=list[CategorySummaryOut])
def category_summary(
    category_id: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    db: Session = Depends(get_db),
):
    start, end = _range(start_date, end_date)
    rows = Aggregator(SqlLedgerStore(db)).breakdown_for_range(category_id, start, end)
    return [
        CategorySummaryOut(
            category_id=row.category_id,
            category_name=row.category_name,
            amount_cents=row.total_cents,
        )
        for row in rows
    ]


@app.get("/api/v1/notifications", response_model=list[NotificationOut])
def list_notifications(unread_only: bool = False, db: Session = Depends(get_db)):
    return NotificationService(db).list(unread_only=unread_only)


@app.post("/api/v1/notifications", response_model=NotificationOut, status_code=201)
def create_notification(data: NotificationIn, db: Session = Depends(get_db)):
    return NotificationService(db).create(data)


@app.get("/api/v1/notifications/stats", response_model=NotificationStats)
def notification_stats(db: Session = Depends(get_db)):
    return NotificationStats(**NotificationService(db).stats())


@app.put("/api/v1/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(notification_id: int, db: Session = Depends(get_db)):
    try:
        return NotificationService(db).mark_read(notification_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.post("/api/v1/notifications/check-daily", response_model=CheckResultOut)
def check_daily_reminder(db: Session = Depends(get_db)):
    requests = build_engine(db).check_daily_reminder(_now())
    return CheckResultOut(status="checked", notifications=len(requests))


@app.post("/api/v1/notifications/check-limits", response_model=CheckResultOut)
def check_limit_warnings(db: Session = Depends(get_db)):
    requests = build_engine(db).check_limit_warnings(_now())
    return CheckResultOut(status="checked", notifications=len(requests))


@app.post("/api/v1/notifications/check-income", response_model=CheckResultOut)
def check_income_reminder(db: Session = Depends(get_db)):
    requests = build_engine(db).check_income_reminder(_now())
    return CheckResultOut(status="checked", notifications=len(requests))
