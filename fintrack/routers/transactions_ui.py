from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..core.errors import SURFACED_ERRORS, ValidationFailed, failure_message
from ..core.jinja import get_templates
from ..deps.session import get_category_service, get_transaction_service, require_session
from ..schemas.common import TransactionType, parse_form
from ..schemas.transaction import Transaction, TransactionIn, local_today
from ..services.categories import CategoryService
from ..services.transactions import TransactionService

router = APIRouter(prefix="/transactions", dependencies=[Depends(require_session)])
templates = get_templates()

FORM_FIELDS = ("amount", "description", "transaction_date", "type", "category_id")
FILTERS = ("ALL",) + tuple(member.value for member in TransactionType)


def normalise_filter(value: str | None) -> str:
    value = (value or "ALL").upper()
    return value if value in FILTERS else "ALL"


def _list_url(filter_: str) -> str:
    return "/transactions" if filter_ == "ALL" else f"/transactions?type={filter_}"


async def _load_transactions(service: TransactionService, filter_: str) -> list[Transaction]:
    if filter_ == "ALL":
        return await service.list_all()
    return await service.list_by_type(TransactionType(filter_))


async def _render_list(
    request: Request,
    service: TransactionService,
    filter_: str,
    *,
    error: str = "",
    status_code: int = 200,
):
    records: list[Transaction] = []
    try:
        records = await _load_transactions(service, filter_)
    except SURFACED_ERRORS as exc:
        error = error or failure_message(exc, "Failed to fetch transactions. Please try again later.")
    context = {"records": records, "filter": filter_, "filters": FILTERS, "error": error}
    return templates.TemplateResponse(request, "transactions.html", context, status_code=status_code)


def _form_values(transaction: Transaction | None = None) -> dict[str, str]:
    if transaction is None:
        return {
            "amount": "",
            "description": "",
            "transaction_date": local_today().isoformat(),
            "type": TransactionType.EXPENSE.value,
            "category_id": "",
        }
    category_id = transaction.resolved_category_id
    return {
        "amount": str(transaction.amount),
        "description": transaction.description,
        "transaction_date": transaction.transaction_date.isoformat(),
        "type": transaction.type.value,
        "category_id": "" if category_id is None else str(category_id),
    }


async def _render_form(
    request: Request,
    categories: CategoryService,
    *,
    values: dict[str, str],
    transaction_id: int | None = None,
    errors: dict[str, str] | None = None,
    error: str = "",
    status_code: int = 200,
):
    """Render the add/edit form with the categories that match the selected type."""

    options = []
    try:
        selected_type = TransactionType(values.get("type") or TransactionType.EXPENSE.value)
    except ValueError:
        selected_type = TransactionType.EXPENSE
    try:
        options = await categories.list_by_type(selected_type)
    except SURFACED_ERRORS:
        error = error or "Failed to load categories. Please try again later."
    valid_ids = {str(option.id) for option in options}
    if values.get("category_id") and values["category_id"] not in valid_ids:
        # Switching type invalidates a category of the other type.
        values = {**values, "category_id": str(options[0].id) if options else ""}
    context = {
        "values": values,
        "errors": errors or {},
        "error": error,
        "categories": options,
        "types": list(TransactionType),
        "transaction_id": transaction_id,
        "is_editing": transaction_id is not None,
        "max_date": local_today().isoformat(),
    }
    return templates.TemplateResponse(request, "transaction_form.html", context, status_code=status_code)


async def _submitted_values(request: Request) -> dict[str, str]:
    form = await request.form()
    return {field: str(form.get(field) or "") for field in FORM_FIELDS}


async def _save(
    request: Request,
    transactions: TransactionService,
    categories: CategoryService,
    transaction_id: int | None,
):
    values = await _submitted_values(request)
    try:
        payload = parse_form(TransactionIn, values)
        if transaction_id is None:
            await transactions.create(payload)
        else:
            await transactions.update(transaction_id, payload)
    except ValidationFailed as exc:
        return await _render_form(
            request,
            categories,
            values=values,
            transaction_id=transaction_id,
            errors=exc.errors,
            error=exc.message,
            status_code=exc.status_code or status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    except SURFACED_ERRORS as exc:
        return await _render_form(
            request,
            categories,
            values=values,
            transaction_id=transaction_id,
            error=failure_message(exc, "An error occurred while saving the transaction."),
            status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY,
        )
    return RedirectResponse(url="/transactions", status_code=status.HTTP_303_SEE_OTHER)


@router.get("", response_class=HTMLResponse)
async def transactions_page(
    request: Request,
    type: str | None = None,
    transactions: TransactionService = Depends(get_transaction_service),
):
    return await _render_list(request, transactions, normalise_filter(type))


@router.get("/add", response_class=HTMLResponse)
async def add_transaction_page(
    request: Request,
    type: str | None = None,
    categories: CategoryService = Depends(get_category_service),
):
    values = _form_values()
    if type:
        values["type"] = type.upper()
    return await _render_form(request, categories, values=values)


@router.post("/add", response_class=HTMLResponse)
async def add_transaction_submit(
    request: Request,
    transactions: TransactionService = Depends(get_transaction_service),
    categories: CategoryService = Depends(get_category_service),
):
    return await _save(request, transactions, categories, None)


@router.get("/edit/{transaction_id}", response_class=HTMLResponse)
async def edit_transaction_page(
    request: Request,
    transaction_id: int,
    type: str | None = None,
    transactions: TransactionService = Depends(get_transaction_service),
    categories: CategoryService = Depends(get_category_service),
):
    try:
        transaction = await transactions.get(transaction_id)
    except SURFACED_ERRORS as exc:
        return await _render_form(
            request,
            categories,
            values=_form_values(),
            transaction_id=transaction_id,
            error=failure_message(exc, "Failed to fetch transaction details. Please try again later."),
            status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY,
        )
    values = _form_values(transaction)
    if type:
        values["type"] = type.upper()
    return await _render_form(request, categories, values=values, transaction_id=transaction_id)


@router.post("/edit/{transaction_id}", response_class=HTMLResponse)
async def edit_transaction_submit(
    request: Request,
    transaction_id: int,
    transactions: TransactionService = Depends(get_transaction_service),
    categories: CategoryService = Depends(get_category_service),
):
    return await _save(request, transactions, categories, transaction_id)


@router.post("/{transaction_id}/delete", response_class=HTMLResponse)
async def delete_transaction(
    request: Request,
    transaction_id: int,
    type: str | None = None,
    transactions: TransactionService = Depends(get_transaction_service),
):
    filter_ = normalise_filter(type)
    try:
        await transactions.delete(transaction_id)
    except SURFACED_ERRORS as exc:
        message = failure_message(exc, "Failed to delete transaction. Please try again later.")
        return await _render_list(
            request, transactions, filter_, error=message, status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY
        )
    return RedirectResponse(url=_list_url(filter_), status_code=status.HTTP_303_SEE_OTHER)
