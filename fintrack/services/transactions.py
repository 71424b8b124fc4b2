from __future__ import annotations

from ..schemas.common import TransactionType
from ..schemas.transaction import MonthlySummary, Transaction, TransactionIn, TransactionSummary
from .api import ApiClient

BASE_PATH = "/api/transactions"


class TransactionService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def list_all(self) -> list[Transaction]:
        return await self.api.fetch_many(Transaction, "GET", BASE_PATH)

    async def list_by_type(self, type_: TransactionType) -> list[Transaction]:
        return await self.api.fetch_many(Transaction, "GET", f"{BASE_PATH}/type/{TransactionType(type_).value}")

    async def get(self, transaction_id: int) -> Transaction:
        return await self.api.fetch_one(Transaction, "GET", f"{BASE_PATH}/{transaction_id}")

    async def create(self, transaction: TransactionIn) -> Transaction:
        return await self.api.fetch_one(Transaction, "POST", BASE_PATH, json=transaction.to_wire())

    async def update(self, transaction_id: int, transaction: TransactionIn) -> Transaction:
        url = f"{BASE_PATH}/{transaction_id}"
        return await self.api.fetch_one(Transaction, "PUT", url, json=transaction.to_wire())

    async def delete(self, transaction_id: int) -> None:
        await self.api.delete(f"{BASE_PATH}/{transaction_id}")

    async def summary(self) -> TransactionSummary:
        return await self.api.fetch_one(TransactionSummary, "GET", f"{BASE_PATH}/summary")

    async def monthly_summary(self) -> list[MonthlySummary]:
        return await self.api.fetch_many(MonthlySummary, "GET", f"{BASE_PATH}/monthly-summary")
