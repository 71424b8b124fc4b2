from __future__ import annotations

from typing import Any

from pydantic import (
    EmailStr,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)

from .common import WireModel


class LoginRequest(WireModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SignupRequest(WireModel):
    username: str = Field(..., min_length=3, max_length=20)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=40)
    # Checked here, never sent to the backend.
    confirm_password: str = Field(..., exclude=True)

    @field_validator("email", mode="wrap")
    @classmethod
    def email_is_valid(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> str:
        try:
            return handler(value)
        except ValidationError as exc:
            raise ValueError("Email is invalid") from exc

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("Passwords must match")
        return value


class AuthResponse(WireModel):
    token: str | None = None
    type: str = "Bearer"
    id: int | None = None
    username: str | None = None
    email: str | None = None
