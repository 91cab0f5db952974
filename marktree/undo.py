"""Linear undo/redo over the bounded transaction log.

Cursor convention: ``history_index`` is the position, in the newest-first
history list, of the most recently undone transaction (-1 when nothing is
undone). Undo replays ``history[history_index + 1]`` backwards and moves the
cursor to it; redo replays ``history[history_index]`` forwards and moves the
cursor one step towards the newest entry.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Iterator, List, Optional, Set

from .history import TransactionLog
from .log import get_logger
from .model import Action, BookmarkNode, TransactionRecord
from .prefs import PreferenceStore
from .store import BookmarkStore

log = get_logger(__name__)

CURSOR_PREF_KEY = "history_cursor"


class UndoManager:
    def __init__(
        self,
        store: BookmarkStore,
        history: TransactionLog,
        *,
        prefs: Optional[PreferenceStore] = None,
    ):
        self.store = store
        self.history = history
        self.prefs = prefs
        self.history_index = -1
        self._abandoned: Set[int] = set()
        self._entries: List[TransactionRecord] = []
        self._load_cursor()
        self.refresh()

    # -- state ------------------------------------------------------------

    @property
    def entries(self) -> List[TransactionRecord]:
        return list(self._entries)

    @property
    def can_undo(self) -> bool:
        return self.history_index < len(self._entries) - 1

    @property
    def can_redo(self) -> bool:
        return self.history_index >= 0

    def refresh(self) -> None:
        live = self.history.list(self.history.capacity)
        self._abandoned &= {t.timestamp for t in live}
        self._entries = [t for t in live if t.timestamp not in self._abandoned]
        if self.history_index >= len(self._entries):
            self.history_index = len(self._entries) - 1

    # -- recorded mutations -----------------------------------------------

    def reorder(self, bookmark_id: str, new_index: int, parent_id: Optional[str]) -> TransactionRecord:
        with self._atomic():
            old_index = self.store.index_of(bookmark_id)
            applied = self.store.reorder(bookmark_id, new_index, parent_id)
            return self._record(
                Action.REORDER,
                {
                    "bookmarkId": bookmark_id,
                    "parentId": parent_id,
                    "oldIndex": old_index,
                    "newIndex": applied,
                },
            )

    def move(
        self,
        bookmark_id: str,
        new_parent_id: Optional[str],
        new_index: Optional[int] = None,
    ) -> TransactionRecord:
        with self._atomic():
            rec = self.store.get(bookmark_id)
            old_index = self.store.index_of(bookmark_id)
            applied = self.store.move_to_parent(bookmark_id, new_parent_id, new_index)
            return self._record(
                Action.MOVE,
                {
                    "bookmarkId": bookmark_id,
                    "oldParentId": rec.parent_id if rec else None,
                    "newParentId": new_parent_id,
                    "oldIndex": old_index,
                    "newIndex": applied,
                },
            )

    def _record(self, action: Action, data: dict) -> TransactionRecord:
        if self.history_index >= 0:
            # The undone tail is a dead redo branch once a new delta lands.
            dropped = self._entries[: self.history_index + 1]
            self._abandoned.update(t.timestamp for t in dropped)
            log.debug("Discarding %d redo step(s)", len(dropped))
        tx = self.history.append(action, data)
        self.history_index = -1
        self.refresh()
        self._save_cursor()
        return tx

    # -- replay -----------------------------------------------------------

    def undo(self) -> Optional[List[BookmarkNode]]:
        self.refresh()
        if not self.can_undo:
            return None
        target = self.history_index + 1
        with self._atomic():
            self._apply(self._entries[target], reverse=True)
            self.history_index = target
            self._save_cursor()
        return self.store.load_all()

    def redo(self) -> Optional[List[BookmarkNode]]:
        self.refresh()
        if not self.can_redo:
            return None
        with self._atomic():
            self._apply(self._entries[self.history_index], reverse=False)
            self.history_index -= 1
            self._save_cursor()
        return self.store.load_all()

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """Store change, history record and cursor commit together; cursor state is restored on failure."""
        saved = (self.history_index, set(self._abandoned), list(self._entries))
        try:
            with self.store.db.transaction():
                yield
        except BaseException:
            self.history_index, self._abandoned, self._entries = saved
            raise

    def _apply(self, tx: TransactionRecord, *, reverse: bool) -> None:
        data = tx.data
        if tx.action == Action.MOVE.value:
            parent_key, index_key = ("oldParentId", "oldIndex") if reverse else ("newParentId", "newIndex")
            self.store.move_to_parent(data["bookmarkId"], data.get(parent_key), data.get(index_key) or 0)
        elif tx.action == Action.REORDER.value:
            index_key = "oldIndex" if reverse else "newIndex"
            self.store.reorder(data["bookmarkId"], data.get(index_key) or 0, data.get("parentId"))
        else:
            log.warning("Unknown transaction type %r at %d; skipping", tx.action, tx.timestamp)

    # -- persistence ------------------------------------------------------

    def _load_cursor(self) -> None:
        if self.prefs is None:
            return
        raw = self.prefs.get(CURSOR_PREF_KEY)
        if not raw:
            return
        try:
            state = json.loads(raw)
            self.history_index = int(state.get("index", -1))
            self._abandoned = {int(x) for x in state.get("abandoned", [])}
        except (ValueError, TypeError, AttributeError):
            log.warning("Ignoring unreadable undo cursor state: %r", raw[:80])
            self.history_index = -1
            self._abandoned = set()

    def _save_cursor(self) -> None:
        if self.prefs is None:
            return
        state = {"index": self.history_index, "abandoned": sorted(self._abandoned)}
        self.prefs.set(CURSOR_PREF_KEY, json.dumps(state))
