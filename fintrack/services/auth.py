from __future__ import annotations

import logging
from typing import Any

from starlette.concurrency import run_in_threadpool

from ..core.security import SessionGuard
from ..schemas.auth import AuthResponse, LoginRequest, SignupRequest
from .api import ApiClient, parse_one, read_body
from .storage import SessionStore

logger = logging.getLogger(__name__)


class AuthService:
    """Sign-in, sign-up and the local Session Record lifecycle.

    ``logout``, ``current_user`` and ``is_authenticated`` hit storage directly and
    belong in sync routes, which FastAPI runs in its threadpool.
    """

    def __init__(self, api: ApiClient, store: SessionStore | None = None, guard: SessionGuard | None = None) -> None:
        self.api = api
        self.store = store or api.store
        self.guard = guard or api.guard

    async def login(self, credentials: LoginRequest) -> AuthResponse:
        logger.info("auth.login", extra={"extra_data": {"username": credentials.username}})
        raw = await self.api.send("POST", "/api/auth/signin", json=credentials.to_wire())
        body = read_body(raw)
        response = parse_one(AuthResponse, body, status_code=raw.status_code)
        if response.token:
            await run_in_threadpool(self.store.set, response.token, body)
        else:
            logger.error("auth.login_without_token", extra={"extra_data": {"username": credentials.username}})
        return response

    async def register(self, user: SignupRequest) -> Any:
        logger.info("auth.register", extra={"extra_data": {"username": user.username}})
        return await self.api.post("/api/auth/signup", json=user.to_wire())

    def logout(self) -> None:
        self.store.clear()

    def current_user(self) -> dict[str, Any] | None:
        return self.store.user

    def is_authenticated(self) -> bool:
        return self.guard.check()
