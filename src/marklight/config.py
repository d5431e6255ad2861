"""Centralised application configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/marklight/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_DEFAULT_DATA_DIR = Path.home() / ".marklight"
_DATABASE_FILE_NAME = "annotations.db"


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class StorageConfig(BaseModel):
    """Local annotation storage.

    ``database_url`` defaults to an SQLite file inside ``data_dir``.
    """

    data_dir: Path = _DEFAULT_DATA_DIR
    database_url: str | None = None
    echo: bool = False

    @model_validator(mode="after")
    def _default_database_url(self) -> StorageConfig:
        if not self.database_url:
            db_path = self.data_dir.expanduser() / _DATABASE_FILE_NAME
            self.database_url = f"sqlite+aiosqlite:///{db_path}"
        return self


class AnnotationConfig(BaseModel):
    """Highlight engine tuning."""

    # Characters searched either side of a stale span before the
    # whole-document fallback.
    fuzzy_window: int = Field(default=100, ge=0)
    default_color: str = "yellow"
    save_debounce_seconds: float = Field(default=2.0, ge=0)


class AppConfig(BaseModel):
    """Application runtime configuration."""

    log_dir: Path = Path("logs")


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Application settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``STORAGE__DATABASE_URL``, ``ANNOTATION__FUZZY_WINDOW``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    storage: StorageConfig = StorageConfig()
    annotation: AnnotationConfig = AnnotationConfig()
    app: AppConfig = AppConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None and Path(str(env_file)).is_file():
        logger.info("Settings loaded .env from: %s", env_file)
    else:
        logger.info("Settings: no .env file found, using env vars and defaults")

    return settings
