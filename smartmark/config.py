from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


@dataclass
class Settings:
    # Backend
    backend: str = "sqlite"  # sqlite | rest
    db_path: str = "~/.local/share/smartmark/bookmarks.sqlite"
    api_url: str = ""
    api_key: str = ""
    access_token: str = ""
    http_timeout_s: int = 15

    # Local identity (sqlite backend only)
    user_id: str = "local"
    user_email: str = ""
    user_name: str = ""

    # Live updates
    poll_interval_s: float = 2.0
    highlight_s: float = 1.8
    toast_s: float = 3.5

    # Form / display
    title_max_chars: int = 120
    favicon_service: str = "https://www.google.com/s2/favicons?domain={origin}&sz={size}"
    favicon_size: int = 32

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.backend = _env_str("SMARTMARK_BACKEND", s.backend)
        s.db_path = _env_str("SMARTMARK_DB_PATH", s.db_path)
        s.api_url = _env_str("SMARTMARK_API_URL", s.api_url)
        s.api_key = _env_str("SMARTMARK_API_KEY", s.api_key)
        s.access_token = _env_str("SMARTMARK_ACCESS_TOKEN", s.access_token)
        s.http_timeout_s = _env_int("SMARTMARK_HTTP_TIMEOUT_S", s.http_timeout_s)

        s.user_id = _env_str("SMARTMARK_USER_ID", s.user_id)
        s.user_email = _env_str("SMARTMARK_USER_EMAIL", s.user_email)
        s.user_name = _env_str("SMARTMARK_USER_NAME", s.user_name)

        s.poll_interval_s = _env_float("SMARTMARK_POLL_INTERVAL_S", s.poll_interval_s)
        s.highlight_s = _env_float("SMARTMARK_HIGHLIGHT_S", s.highlight_s)
        s.toast_s = _env_float("SMARTMARK_TOAST_S", s.toast_s)

        s.title_max_chars = _env_int("SMARTMARK_TITLE_MAX_CHARS", s.title_max_chars)
        s.favicon_service = _env_str("SMARTMARK_FAVICON_SERVICE", s.favicon_service)
        s.favicon_size = _env_int("SMARTMARK_FAVICON_SIZE", s.favicon_size)

        s.log_level = _env_str("SMARTMARK_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("SMARTMARK_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k):
                setattr(s, k, v)
        return s

    @property
    def db_file(self) -> Path:
        return Path(self.db_path).expanduser()


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
