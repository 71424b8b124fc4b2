from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import Field, field_serializer, field_validator

from ..core.config import settings
from .category import Category
from .common import TransactionType, WireModel


def local_today() -> date:
    return datetime.now(ZoneInfo(settings.TZ)).date()


class TransactionBase(WireModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)
    transaction_date: date
    type: TransactionType = TransactionType.EXPENSE

    @field_serializer("amount")
    def amount_as_number(self, value: Decimal) -> float:
        return float(value)


class TransactionIn(TransactionBase):
    category_id: int

    @field_validator("transaction_date")
    @classmethod
    def not_in_future(cls, value: date) -> date:
        if value > local_today():
            raise ValueError("Date cannot be in the future")
        return value


class Transaction(TransactionBase):
    """A transaction as the backend returns it."""

    id: Optional[int] = None
    amount: Decimal
    category_id: Optional[int] = None
    category: Optional[Category] = None

    @property
    def category_name(self) -> str:
        return self.category.name if self.category else "N/A"

    @property
    def resolved_category_id(self) -> Optional[int]:
        if self.category_id is not None:
            return self.category_id
        return self.category.id if self.category else None


class TransactionSummary(WireModel):
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class MonthlySummary(WireModel):
    month: str
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
