from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..core.errors import SURFACED_ERRORS, ValidationFailed, failure_message
from ..core.jinja import get_templates
from ..deps.session import get_category_service, require_session
from ..schemas.category import Category, CategoryIn
from ..schemas.common import TransactionType, parse_form
from ..services.categories import CategoryService
from .transactions_ui import FILTERS, normalise_filter

router = APIRouter(prefix="/categories", dependencies=[Depends(require_session)])
templates = get_templates()

DELETE_FAILED = "Failed to delete category. It may have associated transactions."


async def _render_list(
    request: Request,
    service: CategoryService,
    filter_: str,
    *,
    error: str = "",
    status_code: int = 200,
):
    records: list[Category] = []
    try:
        if filter_ == "ALL":
            records = await service.list_all()
        else:
            records = await service.list_by_type(TransactionType(filter_))
    except SURFACED_ERRORS as exc:
        error = error or failure_message(exc, "Failed to fetch categories. Please try again later.")
    context = {"records": records, "filter": filter_, "filters": FILTERS, "error": error}
    return templates.TemplateResponse(request, "categories.html", context, status_code=status_code)


def _render_form(
    request: Request,
    *,
    values: dict[str, str],
    category_id: int | None = None,
    errors: dict[str, str] | None = None,
    error: str = "",
    status_code: int = 200,
):
    context = {
        "values": values,
        "errors": errors or {},
        "error": error,
        "types": list(TransactionType),
        "category_id": category_id,
        "is_editing": category_id is not None,
    }
    return templates.TemplateResponse(request, "category_form.html", context, status_code=status_code)


async def _save(request: Request, service: CategoryService, category_id: int | None):
    form = await request.form()
    values = {"name": str(form.get("name") or ""), "type": str(form.get("type") or "")}
    try:
        payload = parse_form(CategoryIn, values)
        if category_id is None:
            await service.create(payload)
        else:
            await service.update(category_id, payload)
    except ValidationFailed as exc:
        return _render_form(
            request,
            values=values,
            category_id=category_id,
            errors=exc.errors,
            error=exc.message,
            status_code=exc.status_code or status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    except SURFACED_ERRORS as exc:
        return _render_form(
            request,
            values=values,
            category_id=category_id,
            error=failure_message(exc),
            status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY,
        )
    return RedirectResponse(url="/categories", status_code=status.HTTP_303_SEE_OTHER)


@router.get("", response_class=HTMLResponse)
async def categories_page(
    request: Request,
    type: str | None = None,
    categories: CategoryService = Depends(get_category_service),
):
    return await _render_list(request, categories, normalise_filter(type))


@router.get("/add", response_class=HTMLResponse)
def add_category_page(request: Request):
    return _render_form(request, values={"name": "", "type": TransactionType.EXPENSE.value})


@router.post("/add", response_class=HTMLResponse)
async def add_category_submit(request: Request, categories: CategoryService = Depends(get_category_service)):
    return await _save(request, categories, None)


@router.get("/edit/{category_id}", response_class=HTMLResponse)
async def edit_category_page(
    request: Request,
    category_id: int,
    categories: CategoryService = Depends(get_category_service),
):
    try:
        category = await categories.get(category_id)
    except SURFACED_ERRORS as exc:
        return _render_form(
            request,
            values={"name": "", "type": TransactionType.EXPENSE.value},
            category_id=category_id,
            error=failure_message(exc, "Failed to fetch category details. Please try again later."),
            status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY,
        )
    return _render_form(request, values={"name": category.name, "type": category.type.value}, category_id=category_id)


@router.post("/edit/{category_id}", response_class=HTMLResponse)
async def edit_category_submit(
    request: Request,
    category_id: int,
    categories: CategoryService = Depends(get_category_service),
):
    return await _save(request, categories, category_id)


@router.post("/{category_id}/delete", response_class=HTMLResponse)
async def delete_category(
    request: Request,
    category_id: int,
    type: str | None = None,
    categories: CategoryService = Depends(get_category_service),
):
    """Delete a category; on refusal the list is re-rendered with the category still in it."""

    filter_ = normalise_filter(type)
    try:
        await categories.delete(category_id)
    except SURFACED_ERRORS as exc:
        return await _render_list(
            request,
            categories,
            filter_,
            error=failure_message(exc, DELETE_FAILED),
            status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY,
        )
    target = "/categories" if filter_ == "ALL" else f"/categories?type={filter_}"
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)
