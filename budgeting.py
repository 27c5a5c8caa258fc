from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Sequence

from ledger import CategorySpend, LimitRow, SqlLedgerStore
from periods import Period, month_bounds


logger = logging.getLogger(__name__)

WARNING_THRESHOLD_PERCENT = 80


class PreconditionViolation(ValueError):
    pass


class LimitState(str, Enum):
    normal = "normal"
    warning = "warning"
    exceeded = "exceeded"


@dataclass(frozen=True)
class LimitStatus:
    state: LimitState
    percentage: int


def reaches_warning_threshold(spent_cents: int, limit_cents: int) -> bool:
    return spent_cents * 100 >= limit_cents * WARNING_THRESHOLD_PERCENT


def percentage_of_limit(spent_cents: int, limit_cents: int) -> int:
    # Truncates toward zero for negative spend too.
    scaled = spent_cents * 100
    if scaled >= 0:
        return scaled // limit_cents
    return -(-scaled // limit_cents)


def classify(spent_cents: int, limit_cents: int) -> LimitStatus:
    if limit_cents <= 0:
        raise PreconditionViolation(
            f"Cannot classify spending against a non-positive limit ({limit_cents})"
        )
    if spent_cents >= limit_cents:
        state = LimitState.exceeded
    elif reaches_warning_threshold(spent_cents, limit_cents):
        state = LimitState.warning
    else:
        state = LimitState.normal
    return LimitStatus(state=state, percentage=percentage_of_limit(spent_cents, limit_cents))


def select_limit(rows: Sequence[LimitRow]) -> Optional[LimitRow]:
    """Pick the limit that applies to one category in one period.

    Non-positive rows never apply. When several positive rows exist the
    first one (lowest id) wins and the duplicate is logged.
    """
    positive = [row for row in rows if row.limit_cents > 0]
    if not positive:
        return None
    ordered = sorted(positive, key=lambda row: row.id)
    if len(ordered) > 1:
        logger.warning(
            f"duplicate_limits: category_id={ordered[0].category_id} "
            f"limit_ids={[row.id for row in ordered]} using={ordered[0].id}"
        )
    return ordered[0]


def group_limits(rows: Sequence[LimitRow]) -> dict[int, list[LimitRow]]:
    grouped: dict[int, list[LimitRow]] = {}
    for row in rows:
        grouped.setdefault(row.category_id, []).append(row)
    return grouped


@dataclass(frozen=True)
class CategorySpendSnapshot:
    category_id: int
    category_name: str
    period: Period
    spent_cents: int
    limit_cents: Optional[int]
    exceeded: bool
    percentage: Optional[int]

    @classmethod
    def build(
        cls,
        category_id: int,
        category_name: str,
        period: Period,
        spent_cents: int,
        limit_cents: Optional[int],
    ) -> "CategorySpendSnapshot":
        exceeded = limit_cents is not None and spent_cents >= limit_cents
        percentage = None
        if limit_cents is not None and limit_cents > 0:
            percentage = percentage_of_limit(spent_cents, limit_cents)
        return cls(
            category_id=category_id,
            category_name=category_name,
            period=period,
            spent_cents=spent_cents,
            limit_cents=limit_cents,
            exceeded=exceeded,
            percentage=percentage,
        )


@dataclass(frozen=True)
class MonthlySummary:
    period: Period
    categories: list[CategorySpendSnapshot]
    total_cents: int


class Aggregator:
    def __init__(self, store: SqlLedgerStore) -> None:
        self.store = store

    def sum_for_category_period(self, category_id: int, year: int, month: int) -> int:
        return self.store.sum_for_category_period(category_id, year, month)

    def sum_for_category_range(
        self,
        category_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> int:
        return self.store.sum_transactions(category_id, start, end)

    def breakdown_for_range(
        self,
        category_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[CategorySpend]:
        rows = self.store.sums_by_category(category_id, start, end)
        return sorted(rows, key=lambda row: (-row.total_cents, row.category_name))

    def monthly_summary(self, year: int, month: int) -> MonthlySummary:
        period = Period(year, month)
        start, end = month_bounds(year, month)
        spent_by_category = {
            row.category_id: row.total_cents
            for row in self.store.sums_by_category(None, start, end)
        }
        limits = group_limits(self.store.list_limits(year, month))

        snapshots = []
        for category in self.store.list_categories():
            selected = select_limit(limits.get(category.id, []))
            snapshots.append(
                CategorySpendSnapshot.build(
                    category_id=category.id,
                    category_name=category.name,
                    period=period,
                    spent_cents=spent_by_category.get(category.id, 0),
                    limit_cents=selected.limit_cents if selected else None,
                )
            )
        snapshots.sort(key=lambda snap: (-snap.spent_cents, snap.category_name))
        return MonthlySummary(
            period=period,
            categories=snapshots,
            total_cents=sum(snap.spent_cents for snap in snapshots),
        )
