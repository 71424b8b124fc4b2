"""Shared schema plumbing: the transaction type tag and form parsing."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel, to_snake

from ..core.errors import ValidationFailed

ModelT = TypeVar("ModelT", bound=BaseModel)

FORM_LEVEL = "__form__"


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class WireModel(BaseModel):
    """Base for payloads exchanged with the backend (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


def _field_name(loc: tuple[Any, ...]) -> str:
    if not loc:
        return FORM_LEVEL
    return to_snake(str(loc[0]))


def _message(field: str, error: Mapping[str, Any]) -> str:
    if error.get("type") == "missing":
        return f"{field.replace('_', ' ').capitalize()} is required"
    message = str(error.get("msg") or "Invalid value")
    prefix = "Value error, "
    return message[len(prefix):] if message.startswith(prefix) else message


def parse_form(model: type[ModelT], data: Mapping[str, Any]) -> ModelT:
    """Validate submitted form values, raising ``ValidationFailed`` with per-field messages.

    Blank inputs are treated as missing so required fields report
    "<Field> is required" rather than a type error.
    """

    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            value = value.strip()
        if value in ("", None):
            continue
        cleaned[key] = value
    try:
        return model.model_validate(cleaned)
    except ValidationError as exc:
        errors: dict[str, str] = {}
        for error in exc.errors():
            field = _field_name(tuple(error.get("loc", ())))
            errors.setdefault(field, _message(field, error))
        raise ValidationFailed(errors=errors, details={"errors": errors}) from exc
