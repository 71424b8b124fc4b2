"""Shared fixtures: an in-process fake of the finance REST backend."""

import asyncio
import json
import os
import sys
import time
from pathlib import Path

import httpx
import pytest
from jose import jwt

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DATA_DIR", str(ROOT / "data"))
os.environ.setdefault("API_BASE_URL", "http://backend.test")
os.environ.setdefault("APP_SECRET", "test-secret")
os.environ.setdefault("TZ", "UTC")

from fintrack.services.storage import MemoryStorage, SessionStore  # noqa: E402

SIGNING_KEY = "backend-signing-key"


def make_token(expires_in: float = 3600, sub: str = "alice", **claims) -> str:
    payload = {"sub": sub, "exp": int(time.time() + expires_in), **claims}
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


def _json(status_code: int, payload=None) -> httpx.Response:
    if payload is None:
        return httpx.Response(status_code)
    return httpx.Response(status_code, json=payload)


class FakeBackend:
    """Just enough of the REST API to drive the client end to end."""

    def __init__(self) -> None:
        self.users = {"alice": {"id": 1, "username": "alice", "email": "a@x.com", "password": "secret"}}
        self.tokens: set[str] = set()
        self.categories: dict[int, dict] = {}
        self.transactions: dict[int, dict] = {}
        self._next_id = {"category": 1, "transaction": 1}
        self.requests: list[httpx.Request] = []
        # (METHOD, path) -> response returned instead of the normal behaviour
        self.overrides: dict[tuple[str, str], httpx.Response] = {}

    # ---- helpers for tests

    def issue_token(self, username: str = "alice", expires_in: float = 3600) -> str:
        token = make_token(expires_in, sub=username)
        self.tokens.add(token)
        return token

    def add_category(self, name: str, type_: str = "EXPENSE") -> dict:
        category_id = self._next_id["category"]
        self._next_id["category"] += 1
        record = {"id": category_id, "name": name, "type": type_}
        self.categories[category_id] = record
        return record

    def add_transaction(self, **fields) -> dict:
        transaction_id = self._next_id["transaction"]
        self._next_id["transaction"] += 1
        record = {"id": transaction_id, **fields}
        self.transactions[transaction_id] = record
        return record

    def _render_transaction(self, record: dict) -> dict:
        rendered = dict(record)
        category = self.categories.get(record.get("categoryId"))
        rendered["category"] = dict(category) if category else None
        return rendered

    # ---- transport entry point

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method
        override = self.overrides.get((method, path))
        if override is not None:
            return override
        if path == "/api/auth/signin" and method == "POST":
            return self._signin(json.loads(request.content))
        if path == "/api/auth/signup" and method == "POST":
            return self._signup(json.loads(request.content))
        if not self._authorised(request):
            return _json(401, {"message": "Full authentication is required to access this resource"})
        body = json.loads(request.content) if request.content else None
        if path.startswith("/api/categories"):
            return self._categories(method, path[len("/api/categories"):], body)
        if path.startswith("/api/transactions"):
            return self._transactions(method, path[len("/api/transactions"):], body)
        return _json(404, {"message": "No handler"})

    def _authorised(self, request: httpx.Request) -> bool:
        header = request.headers.get("Authorization", "")
        return header.startswith("Bearer ") and header[len("Bearer "):] in self.tokens

    def _signin(self, body: dict) -> httpx.Response:
        user = self.users.get(body.get("username"))
        if not user or user["password"] != body.get("password"):
            return _json(401, {"message": "Bad credentials"})
        token = self.issue_token(user["username"])
        return _json(200, {"token": token, "type": "Bearer", "id": user["id"], "username": user["username"], "email": user["email"]})

    def _signup(self, body: dict) -> httpx.Response:
        if body.get("username") in self.users:
            return _json(400, {"message": "Error: Username is already taken!"})
        user_id = len(self.users) + 1
        self.users[body["username"]] = {"id": user_id, **body}
        return _json(200, {"message": "User registered successfully!"})

    def _categories(self, method: str, rest: str, body) -> httpx.Response:
        if rest == "" and method == "GET":
            return _json(200, list(self.categories.values()))
        if rest == "" and method == "POST":
            return _json(200, self.add_category(body["name"], body["type"]))
        if rest.startswith("/type/"):
            wanted = rest[len("/type/"):]
            return _json(200, [c for c in self.categories.values() if c["type"] == wanted])
        category_id = int(rest.strip("/"))
        if category_id not in self.categories:
            return _json(404, {"message": "Category not found"})
        if method == "GET":
            return _json(200, self.categories[category_id])
        if method == "PUT":
            self.categories[category_id].update(name=body["name"], type=body["type"])
            return _json(200, self.categories[category_id])
        if method == "DELETE":
            if any(t.get("categoryId") == category_id for t in self.transactions.values()):
                return _json(409, {"message": "Category is used by existing transactions"})
            del self.categories[category_id]
            return _json(200)
        return _json(405)

    def _transactions(self, method: str, rest: str, body) -> httpx.Response:
        if rest == "" and method == "GET":
            return _json(200, [self._render_transaction(t) for t in self.transactions.values()])
        if rest == "" and method == "POST":
            return _json(200, self._render_transaction(self.add_transaction(**body)))
        if rest == "/summary":
            income = sum(t["amount"] for t in self.transactions.values() if t["type"] == "INCOME")
            expense = sum(t["amount"] for t in self.transactions.values() if t["type"] == "EXPENSE")
            return _json(200, {"totalIncome": income, "totalExpense": expense, "balance": income - expense})
        if rest == "/monthly-summary":
            months: dict[str, dict] = {}
            for record in self.transactions.values():
                month = record["transactionDate"][:7]
                row = months.setdefault(month, {"month": month, "totalIncome": 0, "totalExpense": 0})
                key = "totalIncome" if record["type"] == "INCOME" else "totalExpense"
                row[key] += record["amount"]
            return _json(200, [months[key] for key in sorted(months)])
        if rest.startswith("/type/"):
            wanted = rest[len("/type/"):]
            return _json(200, [self._render_transaction(t) for t in self.transactions.values() if t["type"] == wanted])
        transaction_id = int(rest.strip("/"))
        if transaction_id not in self.transactions:
            return _json(404, {"message": "Transaction not found"})
        if method == "GET":
            return _json(200, self._render_transaction(self.transactions[transaction_id]))
        if method == "PUT":
            self.transactions[transaction_id].update(body)
            return _json(200, self._render_transaction(self.transactions[transaction_id]))
        if method == "DELETE":
            del self.transactions[transaction_id]
            return _json(200)
        return _json(405)


class LoopCheckedStorage(MemoryStorage):
    """Memory storage that counts calls made on a running event loop."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.loop_calls: list[str] = []

    def _note(self, operation: str) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.loop_calls.append(operation)

    def get_item(self, key: str) -> str | None:
        self._note(f"get {key}")
        return super().get_item(key)

    def set_item(self, key: str, value: str) -> None:
        self._note(f"set {key}")
        super().set_item(key, value)

    def remove_item(self, key: str) -> None:
        self._note(f"remove {key}")
        super().remove_item(key)


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def transport(backend: FakeBackend) -> httpx.MockTransport:
    return httpx.MockTransport(backend)


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def store(storage: MemoryStorage) -> SessionStore:
    return SessionStore(storage)
