from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from budgeting import (
    Aggregator,
    CategorySpendSnapshot,
    LimitState,
    PreconditionViolation,
    classify,
    select_limit,
)
from database import Base
from ledger import LimitRow, SqlLedgerStore
from periods import Period
from schemas import CategoryIn, CategoryLimitIn, TransactionIn
from services import CategoryLimitService, CategoryService, TransactionService


@pytest.mark.parametrize(
    ("spent", "limit", "state", "percentage"),
    [
        (0, 1000, LimitState.normal, 0),
        (799, 1000, LimitState.normal, 79),
        (800, 1000, LimitState.warning, 80),
        (999, 1000, LimitState.warning, 99),
        (1000, 1000, LimitState.exceeded, 100),
        (1500, 1000, LimitState.exceeded, 150),
    ],
)
def test_classify_thresholds(spent, limit, state, percentage) -> None:
    status = classify(spent, limit)
    assert status.state == state
    assert status.percentage == percentage


def test_classify_truncates_instead_of_rounding() -> None:
    assert classify(2, 3).percentage == 66
    assert classify(-50, 1000).percentage == -5
    assert classify(-50, 1000).state == LimitState.normal


def test_classify_warning_boundary_is_exact_for_odd_limits() -> None:
    # 80% of 1001 is 800.8
    assert classify(800, 1001).state == LimitState.normal
    assert classify(801, 1001).state == LimitState.warning


@pytest.mark.parametrize("limit", [0, -100])
def test_classify_rejects_non_positive_limit(limit) -> None:
    with pytest.raises(PreconditionViolation):
        classify(100, limit)


def test_select_limit_ignores_non_positive_and_prefers_lowest_id() -> None:
    assert select_limit([]) is None
    assert select_limit([LimitRow(id=1, category_id=7, limit_cents=0)]) is None

    rows = [
        LimitRow(id=5, category_id=7, limit_cents=2000),
        LimitRow(id=3, category_id=7, limit_cents=1000),
        LimitRow(id=1, category_id=7, limit_cents=-10),
    ]
    assert select_limit(rows).id == 3


def test_snapshot_without_limit_has_no_percentage() -> None:
    snap = CategorySpendSnapshot.build(1, "Food", Period(2025, 3), 500, None)
    assert snap.exceeded is False
    assert snap.percentage is None

    snap = CategorySpendSnapshot.build(1, "Food", Period(2025, 3), 1000, 1000)
    assert snap.exceeded is True
    assert snap.percentage == 100


def _seed(session: Session) -> tuple[int, int]:
    categories = CategoryService(session)
    food = categories.create(CategoryIn(name="Food"))
    travel = categories.create(CategoryIn(name="Travel"))
    txns = TransactionService(session)
    for day, amount, category in [
        (date(2025, 2, 28), 9_900, food.id),
        (date(2025, 3, 1), 1_000, food.id),
        (date(2025, 3, 10), 2_500, food.id),
        (date(2025, 3, 31), 500, food.id),
        (date(2025, 3, 12), 40_000, travel.id),
        (date(2025, 3, 20), -4_000, travel.id),
        (date(2025, 4, 1), 7_000, travel.id),
    ]:
        txns.create(
            TransactionIn(category_id=category, amount_cents=amount, date=day)
        )
    return food.id, travel.id


def test_sum_for_category_period_respects_month_bounds() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food_id, travel_id = _seed(session)
        aggregator = Aggregator(SqlLedgerStore(session))

        assert aggregator.sum_for_category_period(food_id, 2025, 3) == 4_000
        assert aggregator.sum_for_category_period(travel_id, 2025, 3) == 36_000
        assert aggregator.sum_for_category_period(food_id, 2025, 5) == 0
        assert aggregator.sum_for_category_period(9999, 2025, 3) == 0
        # No intervening writes, same answer.
        assert aggregator.sum_for_category_period(food_id, 2025, 3) == 4_000


def test_sum_of_disjoint_subranges_equals_whole_period() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food_id, _ = _seed(session)
        aggregator = Aggregator(SqlLedgerStore(session))

        first_half = aggregator.sum_for_category_range(
            food_id, date(2025, 3, 1), date(2025, 3, 15)
        )
        second_half = aggregator.sum_for_category_range(
            food_id, date(2025, 3, 16), date(2025, 3, 31)
        )
        assert first_half + second_half == aggregator.sum_for_category_period(
            food_id, 2025, 3
        )


def test_range_filters_are_optional() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food_id, _ = _seed(session)
        aggregator = Aggregator(SqlLedgerStore(session))

        assert aggregator.sum_for_category_range() == 56_900
        assert aggregator.sum_for_category_range(food_id) == 13_900
        assert aggregator.sum_for_category_range(start=date(2025, 3, 31)) == 7_500
        assert aggregator.sum_for_category_range(end=date(2025, 2, 28)) == 9_900


def test_breakdown_orders_by_descending_total() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food_id, travel_id = _seed(session)
        aggregator = Aggregator(SqlLedgerStore(session))

        march = aggregator.breakdown_for_range(
            start=date(2025, 3, 1), end=date(2025, 3, 31)
        )
        assert [(row.category_id, row.total_cents) for row in march] == [
            (travel_id, 36_000),
            (food_id, 4_000),
        ]

        only_food = aggregator.breakdown_for_range(category_id=food_id)
        assert [row.category_name for row in only_food] == ["Food"]
        assert aggregator.breakdown_for_range(start=date(2030, 1, 1)) == []


def test_monthly_summary_reports_limits_and_unlimited_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food_id, travel_id = _seed(session)
        empty = CategoryService(session).create(CategoryIn(name="Books"))
        CategoryLimitService(session).create(
            CategoryLimitIn(category_id=travel_id, limit_cents=30_000, month=3, year=2025)
        )

        summary = Aggregator(SqlLedgerStore(session)).monthly_summary(2025, 3)

        assert summary.period == Period(2025, 3)
        assert summary.total_cents == 40_000
        by_id = {snap.category_id: snap for snap in summary.categories}
        assert [snap.category_id for snap in summary.categories] == [
            travel_id,
            food_id,
            empty.id,
        ]
        assert by_id[travel_id].limit_cents == 30_000
        assert by_id[travel_id].exceeded is True
        assert by_id[travel_id].percentage == 120
        assert by_id[food_id].limit_cents is None
        assert by_id[food_id].percentage is None
        assert by_id[empty.id].spent_cents == 0
