from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Mapping, Optional, Union

from .db import BookmarksDB
from .log import get_logger
from .model import Action, TransactionRecord

log = get_logger(__name__)

DEFAULT_CAPACITY = 50


class TransactionLog:
    """Bounded append-only log of reorder/move deltas, keyed by timestamp.

    Timestamps are microseconds and strictly increasing, so they double as
    the natural order of the log.
    """

    def __init__(self, db: BookmarksDB, *, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("history capacity must be >= 1")
        self.db = db
        self.capacity = int(capacity)

    def append(self, action: Union[Action, str], data: Mapping[str, Any]) -> TransactionRecord:
        tag = action.value if isinstance(action, Action) else str(action)
        payload = json.dumps(dict(data), ensure_ascii=False, sort_keys=True)
        with self.db.transaction() as c:
            row = c.execute("SELECT MAX(timestamp) FROM history").fetchone()
            last = int(row[0]) if row[0] is not None else 0
            ts = max(_now_us(), last + 1)
            c.execute(
                "INSERT INTO history (timestamp, action, data_json) VALUES (?, ?, ?)",
                (ts, tag, payload),
            )
            trimmed = c.execute(
                """
                DELETE FROM history WHERE timestamp IN (
                    SELECT timestamp FROM history ORDER BY timestamp DESC LIMIT -1 OFFSET ?
                )
                """,
                (self.capacity,),
            ).rowcount
        if trimmed > 0:
            log.debug("Evicted %d old history record(s)", trimmed)
        return TransactionRecord(timestamp=ts, action=tag, data=json.loads(payload))

    def list(self, limit: int = DEFAULT_CAPACITY) -> List[TransactionRecord]:
        """Most recent records first."""
        if limit <= 0:
            return []
        with self.db.reading() as c:
            rows = c.execute(
                "SELECT timestamp, action, data_json FROM history ORDER BY timestamp DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return [_row_record(r) for r in rows]

    def latest(self) -> Optional[TransactionRecord]:
        out = self.list(1)
        return out[0] if out else None

    def count(self) -> int:
        with self.db.reading() as c:
            row = c.execute("SELECT COUNT(*) FROM history").fetchone()
        return int(row[0])


def _row_record(row) -> TransactionRecord:
    return TransactionRecord(
        timestamp=int(row["timestamp"]),
        action=str(row["action"]),
        data=_safe_json_object(row["data_json"]),
    )


def _safe_json_object(value: Optional[str]) -> Dict[str, Any]:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except ValueError:
        log.warning("Ignoring unreadable history payload: %r", value[:80])
        return {}
    return data if isinstance(data, dict) else {}


def _now_us() -> int:
    return int(time.time() * 1_000_000)
