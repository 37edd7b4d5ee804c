"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_MANGADEX_BASE_URL = "https://api.mangadex.org"
DEFAULT_USER_AGENT = "MangaQuest/0.1 (+https://mangaquest.app/contact)"


def _default_data_dir() -> Path:
    # __file__ is backend/mangaquest/core/config.py
    return (Path(__file__).parent.parent.parent / "data").resolve()


def json_config_settings_source(
    settings: BaseSettings | None = None,
) -> dict[str, Any]:  # noqa: ANN001
    """Load settings from settings.json in the config directory.

    This source has lowest priority - env vars override JSON values.
    A nested ``{"mangadex": {...}}`` block is flattened into ``mangadex_*`` keys
    and a nested ``{"schedule": {...}}`` block into ``schedule_*`` keys.

    Returns:
        Dictionary with lowercase setting keys, empty if the file is missing or invalid.
    """
    data_dir_env = os.environ.get("MANGAQUEST_DATA_DIR", "")
    data_dir = Path(data_dir_env) if data_dir_env else _default_data_dir()

    settings_file = data_dir / "config" / "settings.json"
    if not settings_file.exists():
        return {}

    try:
        with settings_file.open("r") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}

    if not isinstance(data, dict):
        return {}

    flattened: dict[str, Any] = {}
    for key, value in data.items():
        if key in ("mangadex", "schedule") and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flattened[f"{key}_{sub_key}"] = sub_value
        else:
            flattened[key] = value

    return {k.lower(): v for k, v in flattened.items()}


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from (lowest to highest priority):
    1. JSON file (settings.json in config directory)
    2. .env file
    3. Environment variables prefixed with MANGAQUEST_ (e.g., MANGAQUEST_ENV=production)
    4. Values passed to Settings()
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MANGAQUEST_",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources.

        pydantic-settings gives the first source the highest priority, so the
        tuple runs from init kwargs down to the JSON file.
        """
        return (  # type: ignore[return-value]
            init_settings,
            env_settings,
            dotenv_settings,
            json_config_settings_source,
        )

    # Application
    env: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Application environment (development, production, testing)",
    )

    host_bind_address: str = Field(
        default="127.0.0.1",
        description="Host address to bind the server to",
    )

    host_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port number to bind the server to",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Base directory for application data (config, database, logs)",
    )

    # MangaDex catalog API
    mangadex_base_url: str = Field(
        default=DEFAULT_MANGADEX_BASE_URL,
        description="MangaDex API base URL",
    )

    mangadex_user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="Client identification header sent with every MangaDex request",
    )

    mangadex_timeout_seconds: float = Field(default=15.0, gt=0)

    mangadex_max_retries: int = Field(default=2, ge=0)

    mangadex_rate_limit: int = Field(
        default=5,
        ge=1,
        description="Maximum MangaDex requests per rate limit period",
    )

    mangadex_rate_limit_period: float = Field(default=1.0, gt=0)

    # Matching
    match_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum title similarity for a candidate to be accepted",
    )

    search_limit: int = Field(default=10, ge=1, le=100)

    cooldown_hours: float = Field(
        default=24.0,
        ge=0,
        description="Hours before a synced manga may be looked up again",
    )

    batch_delay_seconds: float = Field(
        default=0.25,
        ge=0,
        description="Delay inserted before each item of a batch run",
    )

    default_batch_limit: int = Field(default=20, ge=1)

    max_batch_limit: int = Field(default=100, ge=1)

    # Shared secret for cron services and the admin panel (optional)
    sync_secret: str | None = Field(default=None)

    # Scheduled batch enrichment
    schedule_enabled: bool = Field(default=False)

    schedule_interval_hours: float = Field(default=6.0, gt=0)

    schedule_batch_size: int = Field(default=20, ge=1)

    @property
    def config_dir(self) -> Path:
        """Directory for configuration files (settings.json)."""
        return self.data_dir / "config"

    @property
    def database_dir(self) -> Path:
        """Directory for database files."""
        return self.data_dir / "database"

    @property
    def logs_dir(self) -> Path:
        """Directory for log files."""
        return self.data_dir / "logs"

    @property
    def database_file(self) -> Path:
        """SQLite database file."""
        return self.database_dir / "mangaquest.db"

    @property
    def is_debug(self) -> bool:
        """Check if running in debug/development mode."""
        return self.env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.env == "testing"

    def model_post_init(self, __context: object) -> None:
        """Create data directories if they don't exist."""
        self.data_dir = self.data_dir.resolve()

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.database_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from all sources (JSON, .env, env vars).

    Clears the cache and creates a new Settings instance.

    Returns:
        New Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
