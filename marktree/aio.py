"""Awaitable access to the bookmark core.

SQLite work runs on one dedicated worker thread: the connection is opened,
used and closed there, and operations queue up in submission order, so
callers only need to await each mutation before issuing the next.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence, TypeVar, Union

from .db import BookmarksDB
from .errors import StorageUnavailable
from .history import DEFAULT_CAPACITY, TransactionLog
from .log import get_logger
from .model import Action, BookmarkNode, TransactionRecord
from .prefs import PreferenceStore
from .store import BookmarkStore
from .undo import UndoManager

log = get_logger(__name__)

R = TypeVar("R")


class AsyncBookmarks:
    def __init__(
        self,
        db_path: Path | str,
        *,
        busy_timeout_ms: int = 5000,
        history_limit: int = DEFAULT_CAPACITY,
    ):
        self.db = BookmarksDB(db_path, busy_timeout_ms=busy_timeout_ms)
        self.store = BookmarkStore(self.db)
        self.prefs = PreferenceStore(self.db)
        self.history = TransactionLog(self.db, capacity=history_limit)
        self.undo_manager: Optional[UndoManager] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    async def __aenter__(self) -> "AsyncBookmarks":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="marktree-db")
        try:
            await self._run(self._open_sync)
        except BaseException:
            self._executor.shutdown(wait=False)
            self._executor = None
            raise

    def _open_sync(self) -> None:
        self.db.open()
        self.undo_manager = UndoManager(self.store, self.history)
        log.debug("Async bookmark access ready on %s", self.db.db_path)

    async def close(self) -> None:
        if self._executor is None:
            return
        try:
            await self._run(self.db.close)
        finally:
            self._executor.shutdown(wait=True)
            self._executor = None

    async def _run(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        if self._executor is None:
            raise StorageUnavailable("bookmark database is not open")
        loop = asyncio.get_running_loop()
        fut = loop.run_in_executor(self._executor, partial(fn, *args, **kwargs))
        try:
            # shield: a cancelled caller stops waiting, the queued write still runs.
            return await asyncio.shield(fut)
        except asyncio.CancelledError:
            fut.add_done_callback(partial(_log_abandoned_result, getattr(fn, "__name__", repr(fn))))
            raise

    # -- store ------------------------------------------------------------

    async def save_all(self, tree: Sequence[BookmarkNode]) -> int:
        return await self._run(self.store.save_all, tree)

    async def load_all(self) -> List[BookmarkNode]:
        return await self._run(self.store.load_all)

    async def reorder(self, bookmark_id: str, new_index: int, parent_id: Optional[str]) -> int:
        return await self._run(self.store.reorder, bookmark_id, new_index, parent_id)

    async def move_to_parent(
        self,
        bookmark_id: str,
        new_parent_id: Optional[str],
        new_index: Optional[int] = None,
    ) -> int:
        return await self._run(self.store.move_to_parent, bookmark_id, new_parent_id, new_index)

    async def delete_subtree(self, bookmark_id: str) -> int:
        return await self._run(self.store.delete_subtree, bookmark_id)

    # -- history ----------------------------------------------------------

    async def append(self, action: Union[Action, str], data: Mapping[str, Any]) -> TransactionRecord:
        return await self._run(self.history.append, action, data)

    async def list(self, limit: int = DEFAULT_CAPACITY) -> List[TransactionRecord]:
        return await self._run(self.history.list, limit)

    async def undo(self) -> Optional[List[BookmarkNode]]:
        return await self._run(self._undo_manager().undo)

    async def redo(self) -> Optional[List[BookmarkNode]]:
        return await self._run(self._undo_manager().redo)

    async def reorder_recorded(self, bookmark_id: str, new_index: int, parent_id: Optional[str]) -> TransactionRecord:
        return await self._run(self._undo_manager().reorder, bookmark_id, new_index, parent_id)

    async def move_recorded(
        self,
        bookmark_id: str,
        new_parent_id: Optional[str],
        new_index: Optional[int] = None,
    ) -> TransactionRecord:
        return await self._run(self._undo_manager().move, bookmark_id, new_parent_id, new_index)

    def _undo_manager(self) -> UndoManager:
        if self.undo_manager is None:
            raise StorageUnavailable("bookmark database is not open")
        return self.undo_manager


def _log_abandoned_result(name: str, fut: "asyncio.Future[Any]") -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        log.warning("%s failed after its caller was cancelled: %r", name, exc)
