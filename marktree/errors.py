from __future__ import annotations


class MarktreeError(Exception):
    """Base class for storage errors."""


class StorageUnavailable(MarktreeError):
    """Raised when the database cannot be opened, initialized or is closed."""


class NotFound(MarktreeError, LookupError):
    """Raised when an operation references a bookmark id that is not stored."""

    def __init__(self, bookmark_id: str) -> None:
        super().__init__(f"bookmark id not found: {bookmark_id!r}")
        self.bookmark_id = bookmark_id


class InvalidMove(MarktreeError, ValueError):
    """Raised when a move would put a node under itself or a descendant."""
