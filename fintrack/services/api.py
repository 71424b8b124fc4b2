"""The single HTTP client every page uses to talk to the REST backend.

Two httpx event hooks wrap each call:

* the request hook presents the stored credential as a bearer token when the
  session guard accepts it (the guard purges the store otherwise);
* the response hook turns every error status into one of the failures in
  ``core.errors`` and, on 401, purges the Session Record and notifies the
  registered session-invalidated listeners.

Nothing is retried. Navigation is left to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from ..core.config import settings
from ..core.errors import (
    ApiError,
    Forbidden,
    NetworkError,
    NotFound,
    ServerError,
    Unauthorized,
    ValidationFailed,
)
from ..core.security import SessionGuard
from ..middlewares import REQUEST_ID_HEADER, request_id_ctx_var
from .storage import SessionStore

logger = logging.getLogger(__name__)

SessionListener = Callable[[], None]

MESSAGE_KEYS = ("message", "detail", "error")
UNREADABLE = "The server returned an unreadable response."

ModelT = TypeVar("ModelT", bound=BaseModel)


def _response_body(response: httpx.Response) -> Any | None:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def server_message(response: httpx.Response) -> str | None:
    """Pull the human readable message a backend put in an error body, if any."""

    body = _response_body(response)
    if isinstance(body, dict):
        for key in MESSAGE_KEYS:
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None
    content_type = response.headers.get("content-type", "")
    if body is None and content_type.startswith("text/plain"):
        text = response.text.strip()
        return text[:500] or None
    return None


def classify_failure(response: httpx.Response) -> ApiError:
    """Map an error response onto the closed failure set."""

    status_code = response.status_code
    message = server_message(response)
    details = _response_body(response)
    if status_code == 401:
        return Unauthorized(message, details=details)
    if status_code == 403:
        return Forbidden(message, details=details)
    if status_code == 404:
        return NotFound(message, details=details)
    if status_code >= 500:
        return ServerError(message, status_code=status_code, details=details)
    errors = details.get("errors") if isinstance(details, dict) else None
    return ValidationFailed(
        message,
        status_code=status_code,
        details=details,
        errors=errors if isinstance(errors, dict) else None,
    )


def read_body(response: httpx.Response) -> Any:
    """Decoded JSON of a successful response, or ``None`` when it has no body."""

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise ServerError(UNREADABLE, status_code=response.status_code) from exc


def parse_one(model: type[ModelT], body: Any, *, status_code: int | None = None) -> ModelT:
    try:
        return model.model_validate({} if body is None else body)
    except ValidationError as exc:
        logger.error("api.unexpected_body", extra={"extra_data": {"model": model.__name__, "errors": exc.error_count()}})
        raise ServerError(UNREADABLE, status_code=status_code, details={"model": model.__name__}) from exc


def parse_many(model: type[ModelT], body: Any, *, status_code: int | None = None) -> list[ModelT]:
    if body is None:
        return []
    if not isinstance(body, list):
        logger.error("api.unexpected_body", extra={"extra_data": {"model": model.__name__, "shape": type(body).__name__}})
        raise ServerError(UNREADABLE, status_code=status_code, details={"model": model.__name__})
    return [parse_one(model, item, status_code=status_code) for item in body]


class ApiClient:
    def __init__(
        self,
        store: SessionStore,
        guard: SessionGuard | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        listeners: Iterable[SessionListener] = (),
    ) -> None:
        self.store = store
        self.guard = guard or SessionGuard(store)
        self._listeners: list[SessionListener] = list(listeners)
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout or settings.API_TIMEOUT),
            transport=transport,
            event_hooks={
                "request": [self._attach_credentials],
                "response": [self._inspect_response],
            },
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def on_session_invalidated(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    # ---- hooks

    def _usable_token(self) -> str | None:
        token = self.store.token
        if token and self.guard.is_valid(token):
            return token
        return None

    async def _attach_credentials(self, request: httpx.Request) -> None:
        # Storage may be a database; keep it off the event loop.
        token = await run_in_threadpool(self._usable_token)
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        request_id = request_id_ctx_var.get()
        if request_id and REQUEST_ID_HEADER not in request.headers:
            request.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "api.request",
            extra={
                "extra_data": {
                    "method": request.method,
                    "url": str(request.url),
                    "has_auth": "Authorization" in request.headers,
                }
            },
        )

    async def _inspect_response(self, response: httpx.Response) -> None:
        request = response.request
        if not response.is_error:
            logger.info(
                "api.response",
                extra={"extra_data": {"method": request.method, "url": str(request.url), "status": response.status_code}},
            )
            return
        await response.aread()
        failure = classify_failure(response)
        log = logger.error if isinstance(failure, ServerError) else logger.warning
        log(
            "api.failure",
            extra={
                "extra_data": {
                    "method": request.method,
                    "url": str(request.url),
                    "status": response.status_code,
                    "kind": failure.kind,
                    "server_message": failure.message or None,
                }
            },
        )
        if isinstance(failure, Unauthorized):
            await self._invalidate_session()
            failure.session_cleared = True
        raise failure

    async def _invalidate_session(self) -> None:
        await run_in_threadpool(self.store.clear)
        logger.warning("session.invalidated")
        for listener in list(self._listeners):
            listener()

    # ---- calls

    async def send(
        self,
        method: str,
        url: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one request through the hooks; error statuses arrive as raised failures."""

        try:
            return await self._client.request(method, url, json=json, params=params)
        except httpx.TransportError as exc:
            logger.error(
                "api.network_error",
                extra={"extra_data": {"method": method, "url": url, "error": str(exc) or type(exc).__name__}},
            )
            raise NetworkError(str(exc), details={"method": method, "url": url}) from exc

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        return read_body(await self.send(method, url, **kwargs))

    async def fetch_one(self, model: type[ModelT], method: str, url: str, **kwargs: Any) -> ModelT:
        response = await self.send(method, url, **kwargs)
        return parse_one(model, read_body(response), status_code=response.status_code)

    async def fetch_many(self, model: type[ModelT], method: str, url: str, **kwargs: Any) -> list[ModelT]:
        response = await self.send(method, url, **kwargs)
        return parse_many(model, read_body(response), status_code=response.status_code)

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Any:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", url, **kwargs)
