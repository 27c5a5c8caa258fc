from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from database import Base
from ledger import SqlLedgerStore, StoreError
from models import NotificationKind
from notifications import NotificationDecisionEngine, NotificationSink
from schemas import CategoryIn, CategoryLimitIn, PlannedIncomeIn, TransactionIn
from services import (
    CategoryLimitService,
    CategoryService,
    NotificationService,
    PlannedIncomeService,
    TransactionService,
)


class BrokenSession:
    def __init__(self) -> None:
        self.rolled_back = False

    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    def rollback(self) -> None:
        self.rolled_back = True


@pytest.mark.parametrize(
    ("method", "args"),
    [
        ("list_categories", ()),
        ("list_limits", (2025, 3)),
        ("sum_transactions", (1,)),
        ("sum_for_category_period", (1, 2025, 3)),
        ("sums_by_category", ()),
        ("count_transactions_on_date", (date(2025, 3, 1),)),
        ("count_planned_income", (2025, 3)),
        ("sum_planned_income", (2025, 3)),
    ],
)
def test_store_wraps_database_failures(method, args) -> None:
    session = BrokenSession()
    store = SqlLedgerStore(session)

    with pytest.raises(StoreError):
        getattr(store, method)(*args)
    assert session.rolled_back is True


def test_store_reads_limits_for_one_period_in_id_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        limits = CategoryLimitService(session)
        first = limits.create(
            CategoryLimitIn(category_id=food.id, limit_cents=1_000, month=3, year=2025)
        )
        second = limits.create(
            CategoryLimitIn(category_id=food.id, limit_cents=2_000, month=3, year=2025)
        )
        limits.create(
            CategoryLimitIn(category_id=food.id, limit_cents=3_000, month=4, year=2025)
        )

        rows = SqlLedgerStore(session).list_limits(2025, 3)
        assert [row.id for row in rows] == [first.id, second.id]


def test_store_counts_transactions_on_a_single_day() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        txns = TransactionService(session)
        for day in [date(2025, 3, 14), date(2025, 3, 15), date(2025, 3, 15)]:
            txns.create(TransactionIn(category_id=food.id, amount_cents=100, date=day))

        store = SqlLedgerStore(session)
        assert store.count_transactions_on_date(date(2025, 3, 15)) == 2
        assert store.count_transactions_on_date(date(2025, 3, 16)) == 0


def test_engine_end_to_end_persists_notifications() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    now = datetime(2025, 3, 15, 21, 0)

    with Session(engine) as session:
        groceries = CategoryService(session).create(CategoryIn(name="Groceries"))
        dining = CategoryService(session).create(CategoryIn(name="Dining"))
        books = CategoryService(session).create(CategoryIn(name="Books"))
        limits = CategoryLimitService(session)
        txns = TransactionService(session)
        for category, spent in [(groceries, 85_000), (dining, 120_000), (books, 10_000)]:
            limits.create(
                CategoryLimitIn(
                    category_id=category.id, limit_cents=100_000, month=3, year=2025
                )
            )
            txns.create(
                TransactionIn(
                    category_id=category.id, amount_cents=spent, date=date(2025, 3, 2)
                )
            )
        PlannedIncomeService(session).create(
            PlannedIncomeIn(amount_cents=300_000, description="Salary", month=3, year=2025)
        )

        store = SqlLedgerStore(session)
        engine_ = NotificationDecisionEngine(store, NotificationSink(session))
        engine_.check_limit_warnings(now)
        engine_.check_daily_reminder(now)
        engine_.check_income_reminder(now)

        stats = NotificationService(session).stats()
        assert stats["unread_count"] == 3
        assert stats["total_count"] == 3
        assert stats["by_kind"] == {
            NotificationKind.daily_reminder.value: 1,
            NotificationKind.limit_warning.value: 1,
            NotificationKind.limit_exceeded.value: 1,
            NotificationKind.income_reminder.value: 0,
        }
