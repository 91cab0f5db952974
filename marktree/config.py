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


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _default_db_path() -> str:
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return str(Path(base) / "marktree" / "bookmarks.sqlite")


@dataclass
class Settings:
    # Storage
    db_path: str = ""
    busy_timeout_ms: int = 5000
    history_limit: int = 50

    # Editing
    derive_icons: bool = True  # fill icon from scheme://host/favicon.ico on add/edit

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False
    log_file: Optional[str] = None

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.db_path = _env_str("MARKTREE_DB", _default_db_path())
        s.busy_timeout_ms = _env_int("MARKTREE_BUSY_TIMEOUT_MS", s.busy_timeout_ms)
        s.history_limit = _env_int("MARKTREE_HISTORY_LIMIT", s.history_limit)
        s.derive_icons = _env_bool("MARKTREE_DERIVE_ICONS", s.derive_icons)
        s.log_level = _env_str("MARKTREE_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("MARKTREE_NO_COLOR", s.no_color)
        s.log_file = os.getenv("MARKTREE_LOG_FILE") or None
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"config file must contain a mapping: {path}")
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k):
                setattr(s, k, v)
        if s.history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
