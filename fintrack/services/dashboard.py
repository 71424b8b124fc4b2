from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List

from ..schemas.transaction import MonthlySummary, TransactionSummary

TWOPLACES = Decimal("0.01")
ONE_PLACE = Decimal("0.1")
HUNDRED = Decimal(100)


def _quantize_currency(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP) if value else Decimal("0.00")


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if not whole or part <= 0:
        return Decimal("0")
    return (part / whole * HUNDRED).quantize(ONE_PLACE, rounding=ROUND_HALF_UP)


def build_monthly_bars(months: Iterable[MonthlySummary]) -> List[Dict[str, Any]]:
    """Scale each month's income and expense against the busiest month for CSS bars."""

    rows = list(months)
    peak = max(
        (max(row.total_income, row.total_expense) for row in rows),
        default=Decimal("0"),
    )
    bars: List[Dict[str, Any]] = []
    for row in rows:
        bars.append(
            {
                "month": row.month,
                "income": _quantize_currency(row.total_income),
                "expense": _quantize_currency(row.total_expense),
                "income_pct": _percent(row.total_income, peak),
                "expense_pct": _percent(row.total_expense, peak),
            }
        )
    return bars


def build_dashboard(summary: TransactionSummary, months: Iterable[MonthlySummary]) -> Dict[str, Any]:
    """Everything the dashboard template renders, with explicit empty-state flags."""

    income = _quantize_currency(summary.total_income)
    expense = _quantize_currency(summary.total_expense)
    balance = _quantize_currency(summary.balance)
    flow = income + expense
    bars = build_monthly_bars(months)
    return {
        "total_income": income,
        "total_expense": expense,
        "balance": balance,
        "balance_positive": balance >= 0,
        "income_share": _percent(income, flow),
        "expense_share": _percent(expense, flow),
        "has_totals": income > 0 or expense > 0,
        "monthly": bars,
        "has_monthly": bool(bars),
    }
