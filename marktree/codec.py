"""Conversion between the nested bookmark tree and flat parent-pointer records.

The storage table only knows flat rows keyed by id, so the tree is encoded as
``parent_id`` + ``order`` and rebuilt on read. Both directions are pure.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .log import get_logger
from .model import BookmarkNode, FlatRecord

log = get_logger(__name__)


def flatten(tree: Sequence[BookmarkNode], parent_id: Optional[str] = None) -> List[FlatRecord]:
    """Depth-first pre-order walk; ``order`` is the index within each input list."""
    out: List[FlatRecord] = []
    # Frames of (sibling list, their parent id, next index); no recursion so depth is unbounded.
    stack: List[Tuple[Sequence[BookmarkNode], Optional[str], int]] = [(tree, parent_id, 0)]
    while stack:
        nodes, pid, idx = stack.pop()
        if idx >= len(nodes):
            continue
        node = nodes[idx]
        out.append(
            FlatRecord(
                id=node.id,
                parent_id=pid,
                order=idx,
                title=node.title,
                url=node.url,
                description=node.description,
                icon=node.icon,
                folder=node.children is not None,
            )
        )
        stack.append((nodes, pid, idx + 1))
        if node.children:
            stack.append((node.children, node.id, 0))
    return out


def reconstruct(records: Iterable[FlatRecord]) -> List[BookmarkNode]:
    """Rebuild the tree from flat records.

    Records whose parent is missing (or that sit on a parent cycle) never get
    attached and are dropped from the result; they are logged, not raised.
    """
    by_parent: Dict[Optional[str], List[FlatRecord]] = defaultdict(list)
    total = 0
    for r in records:
        by_parent[r.parent_id].append(r)
        total += 1
    for group in by_parent.values():
        group.sort(key=lambda r: (r.order, r.id))

    # Top-down pass: claim every record reachable from the root level.
    seen = set()
    reached: List[FlatRecord] = []
    kids_of: Dict[Optional[str], List[str]] = {}
    pending: List[Optional[str]] = [None]
    while pending:
        pid = pending.pop()
        claimed: List[str] = []
        for r in by_parent.get(pid, []):
            if r.id in seen:
                continue
            seen.add(r.id)
            claimed.append(r.id)
            reached.append(r)
            pending.append(r.id)
        kids_of[pid] = claimed

    # Bottom-up pass: a record is always reached after its parent.
    built: Dict[str, BookmarkNode] = {}
    for r in reversed(reached):
        kids = [built[k] for k in kids_of.get(r.id, [])]
        built[r.id] = BookmarkNode(
            id=r.id,
            title=r.title,
            url=r.url,
            description=r.description,
            icon=r.icon,
            children=kids if (kids or r.folder) else None,
        )
    tree = [built[k] for k in kids_of[None]]

    if len(seen) < total:
        orphans = sorted(
            r.id for group in by_parent.values() for r in group if r.id not in seen
        )
        log.warning(
            "Dropped %d orphaned bookmark record(s) during reconstruction: %s",
            len(orphans),
            ", ".join(orphans[:10]) + (" ..." if len(orphans) > 10 else ""),
        )
    return tree
