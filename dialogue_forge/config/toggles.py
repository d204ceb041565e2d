"""Configuration and runtime toggles for Dialogue Forge."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

# Load environment variables from a local .env if present.
load_dotenv()


AllowedLogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseModel):
    """Runtime configuration derived from environment variables."""

    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    db_path: str = Field(default="./local/forge.sqlite3", alias="FORGE_DB_PATH")
    log_level: AllowedLogLevel = Field(default="INFO", alias="FORGE_LOG_LEVEL")
    max_call_stack_depth: int = Field(default=32, alias="FORGE_MAX_CALL_STACK_DEPTH")
    max_runner_steps: int = Field(default=1000, alias="FORGE_MAX_RUNNER_STEPS")
    resolve_storylets: bool = Field(default=True, alias="FORGE_RESOLVE_STORYLETS")
    fail_on_missing_graph: bool = Field(
        default=True, alias="FORGE_FAIL_ON_MISSING_GRAPH"
    )
    include_falsy_numbers: bool = Field(
        default=True, alias="FORGE_INCLUDE_FALSY_NUMBERS"
    )
    default_project_id: int = Field(default=1, alias="FORGE_DEFAULT_PROJECT_ID")

    model_config = {"populate_by_name": True}

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: str) -> str:
        path = Path(value).expanduser()
        return str(path)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = str(value).strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(
                "FORGE_LOG_LEVEL must be one of DEBUG|INFO|WARNING|ERROR|CRITICAL."
            )
        return normalized

    @field_validator("max_call_stack_depth", "max_runner_steps")
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Runner limits must be at least 1.")
        return value

    @property
    def db_path_obj(self) -> Path:
        """Return the database path as a Path instance."""
        return Path(self.db_path)

    def has_telegram_credentials(self) -> bool:
        """True when a Telegram bot token is configured."""
        return bool(self.telegram_bot_token.strip())


def _raw_environment() -> dict[str, str]:
    """Snapshot environment variables relevant to the settings."""
    keys = [
        "TELEGRAM_BOT_TOKEN",
        "FORGE_DB_PATH",
        "FORGE_LOG_LEVEL",
        "FORGE_MAX_CALL_STACK_DEPTH",
        "FORGE_MAX_RUNNER_STEPS",
        "FORGE_RESOLVE_STORYLETS",
        "FORGE_FAIL_ON_MISSING_GRAPH",
        "FORGE_INCLUDE_FALSY_NUMBERS",
        "FORGE_DEFAULT_PROJECT_ID",
    ]
    raw: dict[str, str] = {}
    for key in keys:
        value = os.getenv(key)
        # Unset keys fall back to the field defaults.
        if value is not None:
            raw[key] = value
    return raw


def ensure_database_path(path: Path) -> Path:
    """
    Ensure the SQLite file parent directory exists.

    Returns the resolved path for downstream usage.
    """
    if path.suffix != ".sqlite3":
        path = path.with_suffix(".sqlite3")
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return path.resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and memoize Settings from the environment."""
    try:
        return Settings(**_raw_environment())
    except ValidationError as exc:
        raise RuntimeError(f"Invalid Dialogue Forge configuration: {exc}") from exc


__all__ = [
    "Settings",
    "AllowedLogLevel",
    "ensure_database_path",
    "get_settings",
]
