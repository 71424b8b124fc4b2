from __future__ import annotations

import logging
from typing import AsyncIterator, Callable
from uuid import uuid4

from fastapi import Depends, HTTPException, Request, status

from ..core.security import SessionGuard
from ..db.session import SessionLocal
from ..middlewares import principal_ctx_var
from ..services.api import ApiClient
from ..services.auth import AuthService
from ..services.categories import CategoryService
from ..services.storage import DatabaseStorage, SessionStore, Storage
from ..services.transactions import TransactionService

logger = logging.getLogger(__name__)

CLIENT_ID_KEY = "client_id"

StorageFactory = Callable[[str], Storage]


def database_storage(client_id: str) -> Storage:
    return DatabaseStorage(SessionLocal, client_id)


def get_client_id(request: Request) -> str:
    """The opaque id that namespaces this browser's storage, kept in the signed session cookie."""

    client_id = request.session.get(CLIENT_ID_KEY)
    if not client_id:
        client_id = uuid4().hex
        request.session[CLIENT_ID_KEY] = client_id
    return client_id


def get_session_store(request: Request) -> SessionStore:
    factory: StorageFactory = getattr(request.app.state, "storage_factory", None) or database_storage
    return SessionStore(factory(get_client_id(request)))


def get_guard(store: SessionStore = Depends(get_session_store)) -> SessionGuard:
    return SessionGuard(store)


def _set_principal(request: Request, principal: str | None) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


async def get_api(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    guard: SessionGuard = Depends(get_guard),
) -> AsyncIterator[ApiClient]:
    def session_invalidated() -> None:
        request.state.session_invalidated = True
        _set_principal(request, None)

    transport = getattr(request.app.state, "backend_transport", None)
    async with ApiClient(store, guard, transport=transport, listeners=[session_invalidated]) as api:
        yield api


def get_auth_service(api: ApiClient = Depends(get_api)) -> AuthService:
    return AuthService(api)


def get_category_service(api: ApiClient = Depends(get_api)) -> CategoryService:
    return CategoryService(api)


def get_transaction_service(api: ApiClient = Depends(get_api)) -> TransactionService:
    return TransactionService(api)


def require_session(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    guard: SessionGuard = Depends(get_guard),
) -> SessionStore:
    """Gate for protected pages; the 401 is turned into a login redirect by the error handler."""

    if not guard.check():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    record = store.get()
    if record and record.username:
        _set_principal(request, f"user:{record.username}")
    return store
