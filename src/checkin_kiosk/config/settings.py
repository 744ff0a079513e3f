from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[3]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)

APP_NAME = os.getenv("CHECKIN_APP_NAME", "Check-in Kiosk")


@dataclass(frozen=True)
class Settings:
    app_name: str = APP_NAME
    entry_point_url: str = "http://127.0.0.1:8000"
    search_hash_string: str = ""
    request_timeout: float = 8.0
    dedup_cooldown_seconds: float = 3.0
    checkout_attempts: int = 4
    backoff_base: int = 5
    backoff_unit_seconds: float = 0.001
    notification_timeout: int = 5
    log_level: str = "INFO"

    def describe(self) -> str:
        return (
            f"Settings(app_name={self.app_name}, "
            f"entry_point_url={self.entry_point_url}, "
            f"search_hash_string={self.search_hash_string!r}, "
            f"request_timeout={self.request_timeout}, "
            f"dedup_cooldown_seconds={self.dedup_cooldown_seconds}, "
            f"checkout_attempts={self.checkout_attempts}, "
            f"backoff_base={self.backoff_base}, "
            f"backoff_unit_seconds={self.backoff_unit_seconds}, "
            f"notification_timeout={self.notification_timeout}, "
            f"log_level={self.log_level})"
        )


def load_settings() -> Settings:
    """Build settings from the current environment (``.env`` already applied)."""

    defaults = Settings()
    return Settings(
        app_name=os.getenv("CHECKIN_APP_NAME", defaults.app_name),
        entry_point_url=os.getenv("CHECKIN_ENTRY_POINT_URL", defaults.entry_point_url),
        search_hash_string=os.getenv("CHECKIN_SEARCH_HASH_STRING", defaults.search_hash_string),
        request_timeout=float(os.getenv("CHECKIN_REQUEST_TIMEOUT", defaults.request_timeout)),
        dedup_cooldown_seconds=float(
            os.getenv("CHECKIN_DEDUP_COOLDOWN_SECONDS", defaults.dedup_cooldown_seconds)
        ),
        checkout_attempts=int(os.getenv("CHECKIN_CHECKOUT_ATTEMPTS", defaults.checkout_attempts)),
        backoff_base=int(os.getenv("CHECKIN_BACKOFF_BASE", defaults.backoff_base)),
        backoff_unit_seconds=float(
            os.getenv("CHECKIN_BACKOFF_UNIT_SECONDS", defaults.backoff_unit_seconds)
        ),
        notification_timeout=int(
            os.getenv("CHECKIN_NOTIFICATION_TIMEOUT", defaults.notification_timeout)
        ),
        log_level=os.getenv("CHECKIN_LOG_LEVEL", defaults.log_level).upper(),
    )


settings = load_settings()


def reload_settings() -> Settings:
    """Re-read the environment and replace the module-level settings object."""

    global settings  # noqa: PLW0603 - module-level singleton

    settings = load_settings()
    return settings
