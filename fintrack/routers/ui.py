from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from ..core.config import settings
from ..core.errors import HOME_PATH, SURFACED_ERRORS, ApiError, ValidationFailed, failure_message
from ..core.jinja import get_templates
from ..core.security import describe_token
from ..deps.session import get_api, get_auth_service, get_session_store, get_transaction_service, require_session
from ..schemas.auth import LoginRequest
from ..schemas.common import parse_form
from ..schemas.transaction import TransactionSummary
from ..services.api import ApiClient
from ..services.auth import AuthService
from ..services.dashboard import build_dashboard
from ..services.storage import SessionStore
from ..services.transactions import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter()
templates = get_templates()

DEBUG_ENDPOINTS = ("/api/categories", "/api/transactions")
SIGNIN_PATH = "/api/auth/signin"
AUTH_CHECK_MODES = ("service", "direct")


@router.get("/")
def index() -> RedirectResponse:
    return RedirectResponse(url=HOME_PATH, status_code=status.HTTP_302_FOUND)


@router.get("/dashboard", response_class=HTMLResponse, dependencies=[Depends(require_session)])
async def dashboard_page(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    transactions: TransactionService = Depends(get_transaction_service),
):
    error = ""
    dashboard = build_dashboard(TransactionSummary(), [])
    try:
        summary = await transactions.summary()
        monthly = await transactions.monthly_summary()
        dashboard = build_dashboard(summary, monthly)
    except SURFACED_ERRORS as exc:
        error = failure_message(exc, "Failed to load dashboard data. Please try again later.")
    record = await run_in_threadpool(store.get)
    context = {"dashboard": dashboard, "error": error, "user": record.user if record else {}}
    return templates.TemplateResponse(request, "dashboard.html", context)


def _preview(data: Any) -> Any:
    return data[:2] if isinstance(data, list) else data


@router.get("/network-debug", response_class=HTMLResponse)
async def network_debug_page(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    api: ApiClient = Depends(get_api),
):
    """Token status plus a live request to each main endpoint, for troubleshooting a deployment."""

    record = await run_in_threadpool(store.get)
    token_status = describe_token(record.token if record else None)
    results: list[dict[str, Any]] = [{"endpoint": "Token Check", "result": token_status}]
    for path in DEBUG_ENDPOINTS:
        entry: dict[str, Any] = {"endpoint": f"GET {path}"}
        try:
            entry.update(success=True, data=_preview(await api.get(path)))
        except ApiError as exc:
            # Every failure kind is reported here, 401 included.
            entry.update(success=False, status=exc.status_code, kind=exc.kind, error=failure_message(exc))
        results.append(entry)
    return templates.TemplateResponse(request, "network_debug.html", {"results": results})


def _auth_check_page(request: Request, *, values: dict[str, str], result: str = "", error: str = ""):
    context = {"values": values, "modes": AUTH_CHECK_MODES, "result": result, "auth_error": error}
    return templates.TemplateResponse(request, "auth_check.html", context)


async def _direct_signin(request: Request, username: str, password: str) -> str:
    """POST the credentials straight to the backend, bypassing the pipeline and the session."""

    transport = getattr(request.app.state, "backend_transport", None)
    async with httpx.AsyncClient(
        base_url=settings.API_BASE_URL,
        timeout=settings.API_TIMEOUT,
        transport=transport,
    ) as client:
        response = await client.post(SIGNIN_PATH, json={"username": username, "password": password})
    try:
        body = json.dumps(response.json(), indent=2)
    except ValueError:
        body = response.text
    return f"HTTP {response.status_code}\n\n{body}"


@router.get("/test-auth", response_class=HTMLResponse)
def auth_check_page(request: Request):
    return _auth_check_page(request, values={"username": "", "mode": "service"})


@router.post("/test-auth", response_class=HTMLResponse)
async def auth_check_submit(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    mode: str = Form("service"),
    auth: AuthService = Depends(get_auth_service),
):
    """Sign-in diagnostics: through the auth service (stores the session) or as a bare POST."""

    mode = mode if mode in AUTH_CHECK_MODES else "service"
    values = {"username": username, "mode": mode}
    if mode == "direct":
        try:
            result = await _direct_signin(request, username, password)
        except httpx.TransportError as exc:
            return _auth_check_page(request, values=values, error=f"Fetch Error: {str(exc) or type(exc).__name__}")
        return _auth_check_page(request, values=values, result=result)
    try:
        response = await auth.login(parse_form(LoginRequest, {"username": username, "password": password}))
    except ValidationFailed as exc:
        message = "; ".join(exc.errors.values()) or failure_message(exc)
        return _auth_check_page(request, values=values, error=f"Error ({exc.status_code or 'form'}): {message}")
    except ApiError as exc:
        status_label = exc.status_code or "no response"
        return _auth_check_page(request, values=values, error=f"Error ({status_label}): {failure_message(exc)}")
    return _auth_check_page(request, values=values, result=json.dumps(response.to_wire(), indent=2))
