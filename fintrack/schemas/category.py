from __future__ import annotations

from typing import Optional

from pydantic import Field

from .common import TransactionType, WireModel


class CategoryIn(WireModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType = TransactionType.EXPENSE


class Category(CategoryIn):
    id: Optional[int] = None
