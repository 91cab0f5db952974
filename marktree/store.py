from __future__ import annotations

import sqlite3
from typing import Dict, List, Optional, Sequence

from .codec import flatten, reconstruct
from .db import BookmarksDB
from .errors import InvalidMove, NotFound
from .log import get_logger
from .model import BookmarkNode, FlatRecord

log = get_logger(__name__)

_COLUMNS = "id, parent_id, position, title, url, description, icon, folder"
_INSERT = f"INSERT INTO bookmarks ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
_EDITABLE = ("title", "url", "description", "icon")


class BookmarkStore:
    """Flat bookmark table with contiguous sibling ordering.

    Every mutation runs in a single transaction and leaves each affected
    sibling group numbered 0..n-1.
    """

    def __init__(self, db: BookmarksDB):
        self.db = db

    # -- bulk -------------------------------------------------------------

    def save_all(self, tree: Sequence[BookmarkNode]) -> int:
        rows = [_record_row(r) for r in flatten(tree)]
        try:
            with self.db.transaction() as c:
                c.execute("DELETE FROM bookmarks")
                c.executemany(_INSERT, rows)
        except sqlite3.IntegrityError as e:
            raise ValueError(f"cannot save bookmark tree: {e}") from e
        log.debug("Saved %d bookmark records", len(rows))
        return len(rows)

    def load_all(self) -> List[BookmarkNode]:
        return reconstruct(self.records())

    def records(self) -> List[FlatRecord]:
        with self.db.reading() as c:
            rows = c.execute(f"SELECT {_COLUMNS} FROM bookmarks ORDER BY parent_id, position, id").fetchall()
        return [_row_record(r) for r in rows]

    def count(self) -> int:
        with self.db.reading() as c:
            row = c.execute("SELECT COUNT(*) FROM bookmarks").fetchone()
        return int(row[0])

    # -- lookups ----------------------------------------------------------

    def get(self, bookmark_id: str) -> Optional[FlatRecord]:
        with self.db.reading() as c:
            return self._get(c, bookmark_id)

    def children(self, parent_id: Optional[str]) -> List[FlatRecord]:
        with self.db.reading() as c:
            return self._siblings(c, parent_id)

    def index_of(self, bookmark_id: str) -> int:
        with self.db.reading() as c:
            rec = self._require(c, bookmark_id)
            ids = [s.id for s in self._siblings(c, rec.parent_id)]
        return ids.index(bookmark_id)

    # -- mutations --------------------------------------------------------

    def reorder(self, bookmark_id: str, new_index: int, parent_id: Optional[str]) -> int:
        """Move ``bookmark_id`` to ``new_index`` within its sibling group.

        Returns the index actually applied (clamped to the group size).
        """
        with self.db.transaction() as c:
            rec = self._require(c, bookmark_id)
            ids = [s.id for s in self._siblings(c, parent_id)]
            if bookmark_id not in ids:
                log.warning(
                    "Bookmark %s is not a child of %s (stored parent %s); reordering within its stored group",
                    bookmark_id,
                    parent_id,
                    rec.parent_id,
                )
                ids = [s.id for s in self._siblings(c, rec.parent_id)]
            ids.remove(bookmark_id)
            pos = min(max(int(new_index), 0), len(ids))
            ids.insert(pos, bookmark_id)
            self._renumber(c, ids)
        return pos

    def move_to_parent(
        self,
        bookmark_id: str,
        new_parent_id: Optional[str],
        new_index: Optional[int] = None,
    ) -> int:
        """Reparent ``bookmark_id`` and renumber both the old and new groups.

        ``new_index`` of None, negative or past the end appends. Returns the
        index actually applied.
        """
        with self.db.transaction() as c:
            rec = self._require(c, bookmark_id)
            if new_parent_id is not None:
                self._require(c, new_parent_id)
                if self._descends_from(c, new_parent_id, bookmark_id):
                    raise InvalidMove(f"cannot move {bookmark_id!r} into itself or a descendant")
            old_parent_id = rec.parent_id

            ids = [s.id for s in self._siblings(c, new_parent_id) if s.id != bookmark_id]
            pos = len(ids) if new_index is None or not 0 <= new_index <= len(ids) else int(new_index)
            ids.insert(pos, bookmark_id)
            c.execute("UPDATE bookmarks SET parent_id = ? WHERE id = ?", (new_parent_id, bookmark_id))
            self._renumber(c, ids)

            if old_parent_id != new_parent_id:
                self._renumber(c, [s.id for s in self._siblings(c, old_parent_id)])
        return pos

    def delete_subtree(self, bookmark_id: str) -> int:
        """Delete a node and all descendants. Missing ids are a no-op.

        Returns the number of removed records.
        """
        with self.db.transaction() as c:
            rec = self._get(c, bookmark_id)
            if rec is None:
                log.debug("delete_subtree: %s already absent", bookmark_id)
                return 0
            ids = [
                str(r[0])
                for r in c.execute(
                    """
                    WITH RECURSIVE subtree(id) AS (
                        SELECT ?
                        UNION
                        SELECT b.id FROM bookmarks b JOIN subtree s ON b.parent_id = s.id
                    )
                    SELECT id FROM subtree
                    """,
                    (bookmark_id,),
                ).fetchall()
            ]
            c.executemany("DELETE FROM bookmarks WHERE id = ?", [(i,) for i in ids])
            self._renumber(c, [s.id for s in self._siblings(c, rec.parent_id)])
        log.debug("Deleted %d bookmark record(s) under %s", len(ids), bookmark_id)
        return len(ids)

    def clear(self) -> int:
        """Delete every bookmark; returns the number of removed records."""
        with self.db.transaction() as c:
            removed = c.execute("DELETE FROM bookmarks").rowcount
        log.debug("Deleted all %d bookmark record(s)", removed)
        return removed

    def add(self, node: BookmarkNode, parent_id: Optional[str] = None, index: Optional[int] = None) -> int:
        """Insert ``node`` and its subtree under ``parent_id``; returns its index."""
        records = flatten([node], parent_id)
        try:
            with self.db.transaction() as c:
                if parent_id is not None:
                    self._require(c, parent_id)
                ids = [s.id for s in self._siblings(c, parent_id)]
                pos = len(ids) if index is None or not 0 <= index <= len(ids) else int(index)
                c.executemany(_INSERT, [_record_row(r) for r in records])
                ids.insert(pos, node.id)
                self._renumber(c, ids)
        except sqlite3.IntegrityError as e:
            raise ValueError(f"cannot add bookmark {node.id!r}: {e}") from e
        return pos

    def update(self, bookmark_id: str, **fields) -> FlatRecord:
        unknown = sorted(set(fields) - set(_EDITABLE))
        if unknown:
            raise ValueError(f"not editable bookmark field(s): {', '.join(unknown)}")
        with self.db.transaction() as c:
            self._require(c, bookmark_id)
            if fields:
                cols = list(fields)
                assignments = ", ".join(f"{k} = ?" for k in cols)
                c.execute(
                    f"UPDATE bookmarks SET {assignments} WHERE id = ?",
                    [fields[k] for k in cols] + [bookmark_id],
                )
            rec = self._require(c, bookmark_id)
        return rec

    def validate_integrity(self) -> None:
        """Fail when a parent pointer dangles or a sibling group has gaps/duplicates."""
        problems: List[str] = []
        with self.db.reading() as c:
            dangling = c.execute(
                """
                SELECT b.id, b.parent_id
                FROM bookmarks b
                LEFT JOIN bookmarks p ON p.id = b.parent_id
                WHERE b.parent_id IS NOT NULL AND p.id IS NULL
                ORDER BY b.id
                """
            ).fetchall()
            placed = c.execute("SELECT parent_id, position FROM bookmarks").fetchall()
        for r in dangling:
            problems.append(f"{r['id']} -> missing parent {r['parent_id']}")

        groups: Dict[Optional[str], List[int]] = {}
        for r in placed:
            groups.setdefault(r["parent_id"], []).append(int(r["position"]))
        for parent_id, positions in groups.items():
            if sorted(positions) != list(range(len(positions))):
                problems.append(f"children of {parent_id or '<root>'} have positions {sorted(positions)}")

        if problems:
            raise RuntimeError(f"bookmark tree integrity check failed: {'; '.join(problems)}")

    # -- helpers ----------------------------------------------------------

    def _get(self, c: sqlite3.Cursor, bookmark_id: str) -> Optional[FlatRecord]:
        row = c.execute(f"SELECT {_COLUMNS} FROM bookmarks WHERE id = ?", (bookmark_id,)).fetchone()
        return _row_record(row) if row else None

    def _require(self, c: sqlite3.Cursor, bookmark_id: str) -> FlatRecord:
        rec = self._get(c, bookmark_id)
        if rec is None:
            raise NotFound(bookmark_id)
        return rec

    def _siblings(self, c: sqlite3.Cursor, parent_id: Optional[str]) -> List[FlatRecord]:
        rows = c.execute(
            f"SELECT {_COLUMNS} FROM bookmarks WHERE parent_id IS ? ORDER BY position, id",
            (parent_id,),
        ).fetchall()
        return [_row_record(r) for r in rows]

    def _renumber(self, c: sqlite3.Cursor, ordered_ids: List[str]) -> None:
        c.executemany(
            "UPDATE bookmarks SET position = ? WHERE id = ? AND position != ?",
            [(idx, bid, idx) for idx, bid in enumerate(ordered_ids)],
        )

    def _descends_from(self, c: sqlite3.Cursor, node_id: Optional[str], ancestor_id: str) -> bool:
        current = node_id
        seen = set()
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            row = c.execute("SELECT parent_id FROM bookmarks WHERE id = ?", (current,)).fetchone()
            current = row["parent_id"] if row else None
        return False


def _record_row(r: FlatRecord) -> tuple:
    return (r.id, r.parent_id, r.order, r.title or "", r.url, r.description, r.icon, int(r.folder))


def _row_record(row) -> FlatRecord:
    return FlatRecord(
        id=str(row["id"]),
        parent_id=row["parent_id"],
        order=int(row["position"]),
        title=row["title"] or "",
        url=row["url"],
        description=row["description"],
        icon=row["icon"],
        folder=bool(row["folder"]),
    )
