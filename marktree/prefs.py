from __future__ import annotations

from typing import Optional

from .db import BookmarksDB

THEMES = ("light", "dark", "system")


class PreferenceStore:
    def __init__(self, db: BookmarksDB):
        self.db = db

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self.db.reading() as c:
            row = c.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        if row is None or row["value"] is None:
            return default
        return str(row["value"])

    def set(self, key: str, value: Optional[str]) -> None:
        with self.db.transaction() as c:
            c.execute(
                "INSERT INTO preferences (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def theme(self) -> Optional[str]:
        return self.get("theme")

    def set_theme(self, theme: str) -> None:
        value = (theme or "").strip().lower()
        if value not in THEMES:
            raise ValueError(f"unknown theme {theme!r} (expected one of: {', '.join(THEMES)})")
        self.set("theme", value)
