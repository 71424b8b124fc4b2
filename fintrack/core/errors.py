from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
HOME_PATH = "/dashboard"


class ApiError(Exception):
    """Base failure raised by the request pipeline and by form validation.

    Every service call either returns a parsed body or raises one of the
    subclasses below, so pages can branch on the type instead of probing
    optional fields.
    """

    kind = "error"
    default_message = "Something went wrong. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        self.message = message or ""
        self.status_code = status_code
        self.details = details
        super().__init__(self.message or self.default_message)

    @property
    def user_message(self) -> str:
        return self.message or self.default_message


class ValidationFailed(ApiError):
    """Rejected input: either caught by form validation or refused by the backend (4xx)."""

    kind = "validation"
    default_message = "Please correct the highlighted fields."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        details: Any | None = None,
        errors: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, details=details)
        self.errors = dict(errors or {})


class Unauthorized(ApiError):
    kind = "unauthorized"
    default_message = "Authentication error. Please login again."

    def __init__(self, message: str | None = None, *, session_cleared: bool = False, **kwargs: Any) -> None:
        kwargs.setdefault("status_code", status.HTTP_401_UNAUTHORIZED)
        super().__init__(message, **kwargs)
        self.session_cleared = session_cleared


class Forbidden(ApiError):
    kind = "forbidden"
    default_message = "You do not have permission to perform this action."

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("status_code", status.HTTP_403_FORBIDDEN)
        super().__init__(message, **kwargs)


class NotFound(ApiError):
    kind = "not_found"
    default_message = "The requested item could not be found."

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("status_code", status.HTTP_404_NOT_FOUND)
        super().__init__(message, **kwargs)


class ServerError(ApiError):
    kind = "server_error"

    @property
    def user_message(self) -> str:
        if self.message:
            return self.message
        return f"Server error: {self.status_code}" if self.status_code else self.default_message


class NetworkError(ApiError):
    kind = "network_error"
    default_message = "No response received from the server. Please check your connection."

    @property
    def user_message(self) -> str:
        return self.default_message


# Failures that pages render inline. ``Unauthorized`` propagates to
# ``unauthorized_handler`` instead.
SURFACED_ERRORS: tuple[type[ApiError], ...] = (
    ValidationFailed,
    Forbidden,
    NotFound,
    ServerError,
    NetworkError,
)


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def is_login_view(request: Request) -> bool:
    return request.url.path.startswith(LOGIN_PATH)


def login_redirect(request: Request) -> RedirectResponse:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return RedirectResponse(url=f"{LOGIN_PATH}?next={quote(target, safe='/')}", status_code=status.HTTP_302_FOUND)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_401_UNAUTHORIZED and not is_login_view(request):
        return login_redirect(request)
    is_page = request.method == "GET" and not request.url.path.startswith("/static")
    if exc.status_code == status.HTTP_404_NOT_FOUND and is_page:
        # Unknown pages fall back to the dashboard.
        return RedirectResponse(url=HOME_PATH, status_code=status.HTTP_302_FOUND)
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = HTTPStatus(exc.status_code).phrase
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(status_code=exc.status_code, code="http_error", message=message, details=details)


async def unauthorized_handler(request: Request, exc: Unauthorized):
    """React to the pipeline's session-invalidated signal by navigating to login."""

    if is_login_view(request):
        return ErrorEnvelope(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=exc.kind,
            message=exc.user_message,
        )
    logger.info(
        "session.redirect_to_login",
        extra={"extra_data": {"path": request.url.path, "session_cleared": exc.session_cleared}},
    )
    return login_redirect(request)


async def api_error_handler(request: Request, exc: ApiError):
    """Last resort for failures a page did not render inline."""

    status_code = exc.status_code or status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, NetworkError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ErrorEnvelope(status_code=status_code, code=exc.kind, message=exc.user_message, details=exc.details)


def failure_message(exc: ApiError, fallback: str | None = None) -> str:
    """The message a page shows inline: the server's own words when it sent any."""

    if isinstance(exc, NetworkError):
        return exc.user_message
    if exc.message:
        return exc.message
    return fallback or exc.user_message
