"""Application settings with YAML defaults and .env overrides."""

import logging
from datetime import tzinfo
from pathlib import Path
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from temporal_checkin.config.loader import get_yaml_defaults

logger = logging.getLogger(__name__)

_yaml_defaults = get_yaml_defaults()

TIME_OF_DAY_VALUES = ("morning", "afternoon", "evening", "late_night")


def _yaml_field(key: str, default, alias: str | None = None):
    """Create a Pydantic Field with YAML default.

    Args:
        key: Flattened YAML key (e.g., "STORAGE_TASKS_DB_PATH").
        default: Fallback default if not in YAML.
        alias: Optional field alias.
    """
    yaml_value = _yaml_defaults.get(key.upper(), default)
    return Field(default=yaml_value, alias=alias)


class Settings(BaseSettings):
    """Application settings loaded from YAML defaults + environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================================
    # Storage
    # ============================================================================

    TASKS_DB_PATH: Path = _yaml_field(
        "STORAGE_TASKS_DB_PATH", Path("./data/temporal_checkin.db")
    )
    NOTIFICATIONS_DB_PATH: Path | None = _yaml_field(
        "STORAGE_NOTIFICATIONS_DB_PATH", None
    )
    DB_TIMEOUT_SECONDS: float = _yaml_field("STORAGE_DB_TIMEOUT_SECONDS", 5.0)

    # ============================================================================
    # Check-in scheduling
    # ============================================================================

    CHECKIN_TIMEZONE: str | None = _yaml_field("CHECKIN_TIMEZONE", None)
    CHECKIN_DEFAULT_TIMES: Annotated[list[str], NoDecode] = _yaml_field(
        "CHECKIN_DEFAULT_TIMES", ["morning", "evening"]
    )
    CHECKIN_DEFAULT_DURATION_DAYS: int = _yaml_field(
        "CHECKIN_DEFAULT_DURATION_DAYS", 5
    )
    CHECKIN_PROMPT_PRIORITY: float = _yaml_field("CHECKIN_PROMPT_PRIORITY", 0.7)
    CHECKIN_PROMPT_TTL_HOURS: int = _yaml_field("CHECKIN_PROMPT_TTL_HOURS", 24)

    # ============================================================================
    # Logging / HTTP
    # ============================================================================

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = _yaml_field(
        "LOGGING_LEVEL", "INFO"
    )
    LOG_FILE: str | None = _yaml_field("LOGGING_FILE", None)

    HTTP_HOST: str = _yaml_field("HTTP_HOST", "0.0.0.0")
    HTTP_PORT: int = _yaml_field("HTTP_PORT", 8000)

    @field_validator("CHECKIN_TIMEZONE", "LOG_FILE", "NOTIFICATIONS_DB_PATH", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        """Treat blank YAML/env values as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("CHECKIN_DEFAULT_TIMES", mode="before")
    @classmethod
    def parse_default_times(cls, v):
        """Accept comma-separated strings from .env."""
        if isinstance(v, str):
            v = [item.strip() for item in v.split(",") if item.strip()]
        unknown = [item for item in v if item not in TIME_OF_DAY_VALUES]
        if unknown:
            raise ValueError(f"Unknown time-of-day bucket(s): {', '.join(unknown)}")
        return v

    @field_validator("CHECKIN_DEFAULT_DURATION_DAYS")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if not 1 <= v <= 30:
            raise ValueError("CHECKIN_DEFAULT_DURATION_DAYS must be between 1 and 30")
        return v

    @property
    def notifications_db_path(self) -> Path:
        """Notification queue database (shares the task database unless overridden)."""
        return self.NOTIFICATIONS_DB_PATH or self.TASKS_DB_PATH

    @property
    def tzinfo(self) -> tzinfo | None:
        """Local wall-clock zone for check-in anchors (None = host local time)."""
        if not self.CHECKIN_TIMEZONE:
            return None
        try:
            return ZoneInfo(self.CHECKIN_TIMEZONE)
        except ZoneInfoNotFoundError:
            logger.warning(
                f"Unknown CHECKIN_TIMEZONE={self.CHECKIN_TIMEZONE!r}, using host local time"
            )
            return None


settings = Settings()
