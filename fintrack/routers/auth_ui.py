from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..core.errors import HOME_PATH, LOGIN_PATH, ApiError, ValidationFailed, failure_message
from ..core.jinja import get_templates
from ..core.security import SessionGuard
from ..deps.session import get_auth_service, get_guard
from ..schemas.auth import LoginRequest, SignupRequest
from ..schemas.common import parse_form
from ..services.auth import AuthService

router = APIRouter()
templates = get_templates()


def safe_next(target: str | None) -> str:
    """Only follow local paths after login, and never back to the login page itself."""

    if not target or not target.startswith("/") or target.startswith("//") or target.startswith(LOGIN_PATH):
        return HOME_PATH
    return target


def _login_page(request: Request, *, next: str, values=None, errors=None, error: str = "", status_code: int = 200):
    context = {
        "next": next,
        "values": values or {},
        "errors": errors or {},
        "error": error,
    }
    return templates.TemplateResponse(request, "login.html", context, status_code=status_code)


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, next: str = HOME_PATH, guard: SessionGuard = Depends(get_guard)):
    if guard.check():
        return RedirectResponse(url=safe_next(next), status_code=status.HTTP_302_FOUND)
    return _login_page(request, next=next)


@router.post("/login", response_class=HTMLResponse)
async def login_submit(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next: str = Form(HOME_PATH),
    auth: AuthService = Depends(get_auth_service),
):
    values = {"username": username}
    try:
        credentials = parse_form(LoginRequest, {"username": username, "password": password})
        signed_in = await auth.login(credentials)
    except ValidationFailed as exc:
        return _login_page(
            request,
            next=next,
            values=values,
            errors=exc.errors,
            error=exc.message,
            status_code=exc.status_code or status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    except ApiError as exc:
        # A 401 here means bad credentials; we are already on the login view.
        return _login_page(
            request,
            next=next,
            values=values,
            error=failure_message(exc),
            status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY,
        )
    if not signed_in.token:
        return _login_page(
            request,
            next=next,
            values=values,
            error="Authentication failed: No token received",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )
    return RedirectResponse(url=safe_next(next), status_code=status.HTTP_303_SEE_OTHER)


@router.get("/register", response_class=HTMLResponse)
def register_page(request: Request):
    return templates.TemplateResponse(request, "register.html", {"values": {}, "errors": {}, "message": "", "successful": False})


@router.post("/register", response_class=HTMLResponse)
async def register_submit(request: Request, auth: AuthService = Depends(get_auth_service)):
    form = await request.form()
    submitted = {key: str(form.get(key) or "") for key in ("username", "email", "password", "confirm_password")}
    values = {"username": submitted["username"], "email": submitted["email"]}
    context = {"values": values, "errors": {}, "message": "", "successful": False}
    try:
        await auth.register(parse_form(SignupRequest, submitted))
    except ValidationFailed as exc:
        context.update(errors=exc.errors, message=exc.message)
        return templates.TemplateResponse(
            request,
            "register.html",
            context,
            status_code=exc.status_code or status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    except ApiError as exc:
        context["message"] = failure_message(exc)
        return templates.TemplateResponse(
            request, "register.html", context, status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY
        )
    context.update(successful=True, message="Registration successful! You can now log in.")
    return templates.TemplateResponse(request, "register.html", context, status_code=status.HTTP_201_CREATED)


@router.post("/logout")
def logout(auth: AuthService = Depends(get_auth_service)):
    auth.logout()
    return RedirectResponse(url=LOGIN_PATH, status_code=status.HTTP_303_SEE_OTHER)
