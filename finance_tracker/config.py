"""Settings read from the environment (and a local ``.env`` file when present)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from .rest_storage import RestRepository
from .storage import SQLiteRepository


@dataclass(frozen=True)
class Settings:
    bot_token: str
    storage: str = "sqlite"
    db_path: str = "finance_tracker.sqlite3"
    supabase_url: str = ""
    supabase_key: str = ""
    timezone: str = "Europe/Moscow"
    request_timeout: float = 10.0
    log_level: str = "INFO"

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)


def load_settings(env_file: Optional[str] = None) -> Settings:
    load_dotenv(env_file)
    storage = os.environ.get("FINANCE_TRACKER_STORAGE", "sqlite").lower()
    if storage not in ("sqlite", "rest"):
        raise ValueError(f"FINANCE_TRACKER_STORAGE must be 'sqlite' or 'rest', got {storage!r}")
    settings = Settings(
        bot_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
        storage=storage,
        db_path=os.environ.get("FINANCE_TRACKER_DB", "finance_tracker.sqlite3"),
        supabase_url=os.environ.get("SUPABASE_URL", ""),
        supabase_key=os.environ.get("SUPABASE_KEY", ""),
        timezone=os.environ.get("FINANCE_TRACKER_TZ", "Europe/Moscow"),
        request_timeout=float(os.environ.get("REQUEST_TIMEOUT", "10")),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
    if settings.storage == "rest" and not (settings.supabase_url and settings.supabase_key):
        raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for rest storage")
    return settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="[%(asctime)s] %(levelname)s %(message)s",
    )


def build_repository(settings: Settings) -> Union[SQLiteRepository, RestRepository]:
    if settings.storage == "rest":
        return RestRepository(settings.supabase_url, settings.supabase_key, settings.tz, settings.request_timeout)
    return SQLiteRepository(settings.db_path, settings.tz)
