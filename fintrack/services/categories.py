from __future__ import annotations

from ..schemas.category import Category, CategoryIn
from ..schemas.common import TransactionType
from .api import ApiClient

BASE_PATH = "/api/categories"


class CategoryService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def list_all(self) -> list[Category]:
        return await self.api.fetch_many(Category, "GET", BASE_PATH)

    async def list_by_type(self, type_: TransactionType) -> list[Category]:
        return await self.api.fetch_many(Category, "GET", f"{BASE_PATH}/type/{TransactionType(type_).value}")

    async def get(self, category_id: int) -> Category:
        return await self.api.fetch_one(Category, "GET", f"{BASE_PATH}/{category_id}")

    async def create(self, category: CategoryIn) -> Category:
        return await self.api.fetch_one(Category, "POST", BASE_PATH, json=category.to_wire())

    async def update(self, category_id: int, category: CategoryIn) -> Category:
        return await self.api.fetch_one(Category, "PUT", f"{BASE_PATH}/{category_id}", json=category.to_wire())

    async def delete(self, category_id: int) -> None:
        await self.api.delete(f"{BASE_PATH}/{category_id}")
