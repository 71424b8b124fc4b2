"""Jinja2 environment for the page templates.

Filters registered here are available in every template through the
``{{ value|filter_name }}`` syntax.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi.templating import Jinja2Templates

from .config import settings


def _to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value).date()
        except ValueError:
            return None
    return None


def _fmt_date(value: Any, fmt: str = "%b %d, %Y") -> str:
    """Return only the date portion, e.g. ``Jan 05, 2024``."""

    parsed = _to_date(value)
    return parsed.strftime(fmt) if parsed else ""


def _fmt_month(value: Any) -> str:
    """Turn ``2024-01`` month keys into ``Jan 2024``; other labels pass through."""

    if not isinstance(value, str):
        return "" if value is None else str(value)
    try:
        return datetime.strptime(value[:7], "%Y-%m").strftime("%b %Y")
    except ValueError:
        return value


def _fmt_currency(value: Any) -> str:
    """Add a dollar sign and thousands separators; negatives keep their sign in front."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return ""
    if number < 0:
        return f"-${abs(number):,.2f}"
    return f"${number:,.2f}"


def get_templates() -> Jinja2Templates:
    templates = Jinja2Templates(directory=str(settings.templates_dir))
    env = templates.env
    env.filters["fmt_date"] = _fmt_date
    env.filters["fmt_month"] = _fmt_month
    env.filters["fmt_currency"] = _fmt_currency
    env.globals["app_name"] = settings.APP_NAME
    return templates
