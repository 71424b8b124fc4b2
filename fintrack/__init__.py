"""Application factory for the finance tracker web client.

The factory wires configuration, the Session Record storage, templates,
middlewares, error handling and the page routers. Tests build their own app
with a mocked backend transport; ``fintrack.main`` builds the real one.
"""

from __future__ import annotations

from typing import Callable

import httpx
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .core.config import settings
from .core.errors import (
    ApiError,
    Unauthorized,
    api_error_handler,
    http_exception_handler,
    unauthorized_handler,
)
from .db.session import init_db
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware
from .services.storage import Storage


def create_app(
    *,
    backend_transport: httpx.AsyncBaseTransport | None = None,
    storage_factory: Callable[[str], Storage] | None = None,
) -> FastAPI:
    app = FastAPI(title=settings.APP_NAME)
    # ``None`` means: real network transport / SQL-backed storage.
    app.state.backend_transport = backend_transport
    app.state.storage_factory = storage_factory

    app.mount("/static", StaticFiles(directory=str(settings.static_dir)), name="static")

    init_db()

    # Middleware added last runs first: request ids wrap everything else.
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.APP_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE,
        same_site="lax",
        https_only=settings.SESSION_HTTPS_ONLY,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Unauthorized, unauthorized_handler)
    app.add_exception_handler(ApiError, api_error_handler)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    from .routers import auth_ui, categories_ui, transactions_ui, ui

    app.include_router(auth_ui.router)
    app.include_router(ui.router)
    app.include_router(transactions_ui.router)
    app.include_router(categories_ui.router)
    return app


__all__ = ["create_app"]
