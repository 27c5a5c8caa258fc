"""Read-only access to the ledger tables.

Everything the budgeting and notification code knows about persisted data
goes through ``SqlLedgerStore``. Any database failure surfaces as
``StoreError``; callers decide whether that aborts their work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Category, CategoryLimit, PlannedIncome, Transaction
from periods import month_bounds


logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class CategoryRef:
    id: int
    name: str


@dataclass(frozen=True)
class LimitRow:
    id: int
    category_id: int
    limit_cents: int


@dataclass(frozen=True)
class CategorySpend:
    category_id: int
    category_name: str
    total_cents: int


class SqlLedgerStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _fail(self, operation: str, exc: SQLAlchemyError) -> StoreError:
        logger.warning(f"ledger_read_failed: operation={operation} error={exc}")
        self.session.rollback()
        return StoreError(f"Ledger read failed: {operation}")

    def list_categories(self) -> list[CategoryRef]:
        stmt = select(Category.id, Category.name).order_by(Category.name, Category.id)
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise self._fail("list_categories", exc) from exc
        return [CategoryRef(id=row.id, name=row.name) for row in rows]

    def list_limits(self, year: int, month: int) -> list[LimitRow]:
        stmt = (
            select(CategoryLimit.id, CategoryLimit.category_id, CategoryLimit.limit_cents)
            .where(CategoryLimit.year == year, CategoryLimit.month == month)
            .order_by(CategoryLimit.id)
        )
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise self._fail("list_limits", exc) from exc
        return [
            LimitRow(id=row.id, category_id=row.category_id, limit_cents=row.limit_cents)
            for row in rows
        ]

    def sum_transactions(
        self,
        category_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0))
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        if start is not None:
            stmt = stmt.where(Transaction.date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.date <= end)
        try:
            total = self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as exc:
            raise self._fail("sum_transactions", exc) from exc
        return int(total or 0)

    def sum_for_category_period(self, category_id: int, year: int, month: int) -> int:
        start, end = month_bounds(year, month)
        return self.sum_transactions(category_id, start, end)

    def sums_by_category(
        self,
        category_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[CategorySpend]:
        total = func.sum(Transaction.amount_cents)
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("name"),
                func.coalesce(total, 0).label("total"),
            )
            .join(Category, Category.id == Transaction.category_id)
            .group_by(Category.id, Category.name)
            .order_by(total.desc(), Category.name)
        )
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        if start is not None:
            stmt = stmt.where(Transaction.date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.date <= end)
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise self._fail("sums_by_category", exc) from exc
        return [
            CategorySpend(
                category_id=row.category_id,
                category_name=row.name,
                total_cents=int(row.total or 0),
            )
            for row in rows
        ]

    def count_transactions_on_date(self, day: date) -> int:
        stmt = select(func.count(Transaction.id)).where(Transaction.date == day)
        try:
            count = self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as exc:
            raise self._fail("count_transactions_on_date", exc) from exc
        return int(count or 0)

    def count_planned_income(self, year: int, month: int) -> int:
        stmt = select(func.count(PlannedIncome.id)).where(
            PlannedIncome.year == year, PlannedIncome.month == month
        )
        try:
            count = self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as exc:
            raise self._fail("count_planned_income", exc) from exc
        return int(count or 0)

    def sum_planned_income(self, year: int, month: int) -> int:
        stmt = select(func.coalesce(func.sum(PlannedIncome.amount_cents), 0)).where(
            PlannedIncome.year == year, PlannedIncome.month == month
        )
        try:
            total = self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as exc:
            raise self._fail("sum_planned_income", exc) from exc
        return int(total or 0)
