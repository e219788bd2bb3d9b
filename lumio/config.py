"""
Lumio — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

# Load .env from project root (two levels up from lumio/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/lumio.db"

    # Calendar: default zone, overridden by REGION when it resolves
    TIMEZONE: str = "UTC"
    REGION: str = ""

    # Weather: location is optional, no forecast is fetched without it
    LATITUDE: float | None = None
    LONGITUDE: float | None = None
    LOCALITY: str = ""
    WEATHER_API_URL: str = _OPEN_METEO_URL
    WEATHER_CACHE_TTL_MINUTES: int = 30
    WEATHER_CACHE_DISTANCE_KM: float = 20.0

    # Task scheduling
    RANDOMIZE_TASK_TIME: bool = True
    UNLOCK_GRACE_MINUTES: int = 90
    MONITOR_MIN_SLEEP_SECONDS: int = 30
    MONITOR_MAX_SLEEP_SECONDS: int = 900
    SNACK_DROP_CHANCE: float = 0.3

    # Notifications: Telegram is optional, the log notifier is the fallback
    NOTIFICATIONS_ENABLED: bool = True
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: int | None = None

    LOG_LEVEL: str = "INFO"

    @field_validator("LATITUDE", "LONGITUDE", "TELEGRAM_CHAT_ID", mode="before")
    @classmethod
    def parse_optional(cls, v: str | float | int | None) -> str | float | int | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("RANDOMIZE_TASK_TIME", "NOTIFICATIONS_ENABLED", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}

    @model_validator(mode="after")
    def check_location_pair(self) -> Settings:
        if (self.LATITUDE is None) != (self.LONGITUDE is None):
            raise ValueError("LATITUDE and LONGITUDE must be set together")
        return self

    @property
    def location(self) -> tuple[float, float] | None:
        if self.LATITUDE is None or self.LONGITUDE is None:
            return None
        return self.LATITUDE, self.LONGITUDE


def _load_settings() -> Settings:
    """Load settings from environment, validating the location pair."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/lumio.db"),
            TIMEZONE=os.getenv("TIMEZONE", "UTC"),
            REGION=os.getenv("REGION", ""),
            LATITUDE=os.getenv("LATITUDE", ""),
            LONGITUDE=os.getenv("LONGITUDE", ""),
            LOCALITY=os.getenv("LOCALITY", ""),
            WEATHER_API_URL=os.getenv("WEATHER_API_URL", _OPEN_METEO_URL),
            WEATHER_CACHE_TTL_MINUTES=os.getenv("WEATHER_CACHE_TTL_MINUTES", "30"),
            WEATHER_CACHE_DISTANCE_KM=os.getenv("WEATHER_CACHE_DISTANCE_KM", "20"),
            RANDOMIZE_TASK_TIME=os.getenv("RANDOMIZE_TASK_TIME", "true"),
            UNLOCK_GRACE_MINUTES=os.getenv("UNLOCK_GRACE_MINUTES", "90"),
            MONITOR_MIN_SLEEP_SECONDS=os.getenv("MONITOR_MIN_SLEEP_SECONDS", "30"),
            MONITOR_MAX_SLEEP_SECONDS=os.getenv("MONITOR_MAX_SLEEP_SECONDS", "900"),
            SNACK_DROP_CHANCE=os.getenv("SNACK_DROP_CHANCE", "0.3"),
            NOTIFICATIONS_ENABLED=os.getenv("NOTIFICATIONS_ENABLED", "true"),
            TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            TELEGRAM_CHAT_ID=os.getenv("TELEGRAM_CHAT_ID", ""),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValueError as exc:
        print(f"ERROR: invalid configuration in .env: {exc}", file=sys.stderr)
        sys.exit(1)


# Singleton, imported by all other modules as:
#   from lumio.config import settings
settings = _load_settings()
