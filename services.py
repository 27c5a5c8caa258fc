from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import (
    Category,
    CategoryLimit,
    Notification,
    NotificationKind,
    PlannedExpense,
    PlannedIncome,
    Transaction,
)
from periods import Period
from schemas import (
    CategoryIn,
    CategoryLimitIn,
    NotificationIn,
    PlannedExpenseIn,
    PlannedIncomeIn,
    TransactionIn,
)


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name, Category.id)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise ValueError("Category not found")
        return category

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Category).where(func.lower(Category.name) == name.lower())
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        self._ensure_unique_name(name)
        category = Category(name=name, description=data.description.strip())
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        name = data.name.strip()
        self._ensure_unique_name(name, exclude_id=category.id)
        category.name = name
        category.description = data.description.strip()
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category.id
            )
        ) or self.session.scalar(
            select(func.count(CategoryLimit.id)).where(
                CategoryLimit.category_id == category.id
            )
        )
        if in_use:
            raise ValueError("Category is still referenced by transactions or limits")
        self.session.delete(category)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _require_category(self, category_id: int) -> None:
        if not self.session.get(Category, category_id):
            raise ValueError("Category not found")

    def list(
        self,
        *,
        category_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Transaction]:
        stmt = select(Transaction).order_by(Transaction.date.desc(), Transaction.id.desc())
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        if start is not None:
            stmt = stmt.where(Transaction.date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.date <= end)
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        self._require_category(data.category_id)
        txn = Transaction(
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            description=data.description,
            date=data.date,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._require_category(data.category_id)
        txn.category_id = data.category_id
        txn.amount_cents = data.amount_cents
        txn.description = data.description
        txn.date = data.date
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class CategoryLimitService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self,
        *,
        category_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[CategoryLimit]:
        stmt = select(CategoryLimit).order_by(
            CategoryLimit.year.desc(), CategoryLimit.month.desc(), CategoryLimit.id
        )
        if category_id is not None:
            stmt = stmt.where(CategoryLimit.category_id == category_id)
        if month is not None:
            stmt = stmt.where(CategoryLimit.month == month)
        if year is not None:
            stmt = stmt.where(CategoryLimit.year == year)
        return self.session.scalars(stmt).all()

    def get(self, limit_id: int) -> CategoryLimit:
        limit = self.session.get(CategoryLimit, limit_id)
        if not limit:
            raise ValueError("Category limit not found")
        return limit

    def create(self, data: CategoryLimitIn) -> CategoryLimit:
        if not self.session.get(Category, data.category_id):
            raise ValueError("Category not found")
        limit = CategoryLimit(
            category_id=data.category_id,
            limit_cents=data.limit_cents,
            month=data.month,
            year=data.year,
        )
        self.session.add(limit)
        self.session.commit()
        self.session.refresh(limit)
        return limit

    def update(self, limit_id: int, data: CategoryLimitIn) -> CategoryLimit:
        limit = self.get(limit_id)
        if not self.session.get(Category, data.category_id):
            raise ValueError("Category not found")
        limit.category_id = data.category_id
        limit.limit_cents = data.limit_cents
        limit.month = data.month
        limit.year = data.year
        self.session.commit()
        self.session.refresh(limit)
        return limit

    def delete(self, limit_id: int) -> None:
        limit = self.get(limit_id)
        self.session.delete(limit)
        self.session.commit()


class PlannedExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self,
        *,
        category_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        is_completed: Optional[bool] = None,
    ) -> list[PlannedExpense]:
        stmt = select(PlannedExpense).order_by(
            PlannedExpense.planned_date, PlannedExpense.id
        )
        if category_id is not None:
            stmt = stmt.where(PlannedExpense.category_id == category_id)
        if start is not None:
            stmt = stmt.where(PlannedExpense.planned_date >= start)
        if end is not None:
            stmt = stmt.where(PlannedExpense.planned_date <= end)
        if is_completed is not None:
            stmt = stmt.where(PlannedExpense.is_completed.is_(is_completed))
        return self.session.scalars(stmt).all()

    def get(self, expense_id: int) -> PlannedExpense:
        expense = self.session.get(PlannedExpense, expense_id)
        if not expense:
            raise ValueError("Planned expense not found")
        return expense

    def create(self, data: PlannedExpenseIn) -> PlannedExpense:
        if not self.session.get(Category, data.category_id):
            raise ValueError("Category not found")
        expense = PlannedExpense(
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            description=data.description,
            planned_date=data.planned_date,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: PlannedExpenseIn) -> PlannedExpense:
        expense = self.get(expense_id)
        if not self.session.get(Category, data.category_id):
            raise ValueError("Category not found")
        expense.category_id = data.category_id
        expense.amount_cents = data.amount_cents
        expense.description = data.description
        expense.planned_date = data.planned_date
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def set_completed(self, expense_id: int, completed: bool = True) -> PlannedExpense:
        expense = self.get(expense_id)
        expense.is_completed = completed
        self.session.commit()
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()


class PlannedIncomeService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self, *, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[PlannedIncome]:
        stmt = select(PlannedIncome).order_by(
            PlannedIncome.year.desc(), PlannedIncome.month.desc(), PlannedIncome.id
        )
        if month is not None:
            stmt = stmt.where(PlannedIncome.month == month)
        if year is not None:
            stmt = stmt.where(PlannedIncome.year == year)
        return self.session.scalars(stmt).all()

    def get(self, income_id: int) -> PlannedIncome:
        income = self.session.get(PlannedIncome, income_id)
        if not income:
            raise ValueError("Planned income not found")
        return income

    def create(self, data: PlannedIncomeIn) -> PlannedIncome:
        income = PlannedIncome(
            amount_cents=data.amount_cents,
            description=data.description,
            month=data.month,
            year=data.year,
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def update(self, income_id: int, data: PlannedIncomeIn) -> PlannedIncome:
        income = self.get(income_id)
        income.amount_cents = data.amount_cents
        income.description = data.description
        income.month = data.month
        income.year = data.year
        self.session.commit()
        self.session.refresh(income)
        return income

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()

    def copy_from_previous_month(self, year: int, month: int) -> list[PlannedIncome]:
        target = Period(year, month)
        if self.list(month=target.month, year=target.year):
            raise ValueError(f"Planned income already exists for {target.label}")
        previous = target.previous()
        copies = [
            PlannedIncome(
                amount_cents=row.amount_cents,
                description=row.description,
                month=target.month,
                year=target.year,
            )
            for row in self.list(month=previous.month, year=previous.year)
        ]
        if not copies:
            raise ValueError(f"No planned income to copy from {previous.label}")
        self.session.add_all(copies)
        self.session.commit()
        return copies


class NotificationService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, unread_only: bool = False) -> list[Notification]:
        stmt = select(Notification).order_by(
            Notification.created_at.desc(), Notification.id.desc()
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        return self.session.scalars(stmt).all()

    def create(self, data: NotificationIn) -> Notification:
        notification = Notification(
            kind=data.kind, title=data.title, message=data.message, is_read=False
        )
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification:
            raise ValueError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            self.session.commit()
        return notification

    def stats(self) -> dict[str, object]:
        total = self.session.scalar(select(func.count(Notification.id))) or 0
        unread = (
            self.session.scalar(
                select(func.count(Notification.id)).where(
                    Notification.is_read.is_(False)
                )
            )
            or 0
        )
        return {
            "unread_count": int(unread),
            "total_count": int(total),
            "by_kind": {kind.value: self.count_by_kind(kind) for kind in NotificationKind},
        }

    def count_by_kind(self, kind: NotificationKind) -> int:
        stmt = select(func.count(Notification.id)).where(Notification.kind == kind)
        return int(self.session.scalar(stmt) or 0)
