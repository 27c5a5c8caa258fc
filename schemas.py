from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import NotificationKind


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    created_at: datetime
    updated_at: datetime


class TransactionIn(BaseModel):
    category_id: int
    amount_cents: int
    description: str = Field(default="", max_length=500)
    date: date


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    amount_cents: int
    description: str
    date: date
    created_at: datetime
    updated_at: datetime


class CategoryLimitIn(BaseModel):
    category_id: int
    limit_cents: int = Field(..., gt=0)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=3000)


class CategoryLimitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    limit_cents: int
    month: int
    year: int


class PlannedExpenseIn(BaseModel):
    category_id: int
    amount_cents: int = Field(..., ge=0)
    description: str = Field(default="", max_length=500)
    planned_date: date


class PlannedExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    amount_cents: int
    description: str
    planned_date: date
    is_completed: bool


class PlannedIncomeIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    description: str = Field(default="", max_length=500)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=3000)


class PlannedIncomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    description: str
    month: int
    year: int


class NotificationIn(BaseModel):
    kind: NotificationKind
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: NotificationKind
    title: str
    message: str
    is_read: bool
    created_at: datetime


class NotificationStats(BaseModel):
    unread_count: int
    total_count: int
    by_kind: dict[str, int]


class CategorySummaryOut(BaseModel):
    category_id: int
    category_name: str
    amount_cents: int
    limit_cents: Optional[int] = None
    is_exceeded: bool = False
    percentage: Optional[int] = None


class MonthlySummaryOut(BaseModel):
    month: int
    year: int
    categories: list[CategorySummaryOut]
    total_cents: int


class CheckResultOut(BaseModel):
    status: str
    notifications: int
