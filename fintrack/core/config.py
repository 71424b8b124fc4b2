"""Environment-driven configuration for the finance tracker web client.

*What:* Every setting the client relies on, from the backend base URL to the
cookie that identifies a browser.
*When:* Read once, the first time ``get_settings`` is called.
*How:* ``pydantic-settings`` pulls values from the environment and from the
optional ``.env`` / ``.env.local`` files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Finance Tracker"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent)
    DATA_DIR: Path = Field(default_factory=lambda: Path.cwd() / "data")
    TEMPLATES_DIR: Path | None = None
    STATIC_DIR: Path | None = None
    TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"

    # ---- REST backend
    API_BASE_URL: str = "http://localhost:8081"
    API_TIMEOUT: float = 10.0

    # ---- Browser session (only an opaque client id lives in the cookie)
    APP_SECRET: str = "dev-insecure-secret-change-me"
    SESSION_COOKIE_NAME: str = "ft_session"
    SESSION_MAX_AGE: int = 60 * 60 * 24 * 30
    SESSION_HTTPS_ONLY: bool = False

    # Server-side storage for Session Records, one namespace per browser.
    DB_URL: str = Field(default="sqlite:///data/fintrack.db", validation_alias="DATABASE_URL")

    HOST: str = "0.0.0.0"
    PORT: int = 8090

    @property
    def templates_dir(self) -> Path:
        return self.TEMPLATES_DIR if self.TEMPLATES_DIR is not None else self.BASE_DIR / "templates"

    @property
    def static_dir(self) -> Path:
        return self.STATIC_DIR if self.STATIC_DIR is not None else self.BASE_DIR / "static"

    @field_validator("API_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalise_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if settings.TEMPLATES_DIR is None:
        settings.TEMPLATES_DIR = settings.templates_dir
    if settings.STATIC_DIR is None:
        settings.STATIC_DIR = settings.static_dir
    return settings


settings = get_settings()
