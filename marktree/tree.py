from __future__ import annotations

import os
from dataclasses import replace
from typing import Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from .model import BookmarkNode


def new_id() -> str:
    # 12 hex chars: short enough to type, never mistaken for a CLI flag.
    return os.urandom(6).hex()


def favicon_url(url: Optional[str]) -> str:
    try:
        p = urlparse(url or "")
    except ValueError:
        return ""
    if not p.scheme or not p.hostname:
        return ""
    return f"{p.scheme}://{p.hostname}/favicon.ico"


def iter_nodes(items: Sequence[BookmarkNode]) -> Iterator[BookmarkNode]:
    stack = [iter(items)]
    while stack:
        item = next(stack[-1], None)
        if item is None:
            stack.pop()
            continue
        yield item
        if item.children:
            stack.append(iter(item.children))


def find_bookmark(items: Sequence[BookmarkNode], bookmark_id: str) -> Optional[BookmarkNode]:
    for node in iter_nodes(items):
        if node.id == bookmark_id:
            return node
    return None


def path_to_bookmark(items: Sequence[BookmarkNode], bookmark_id: str) -> List[str]:
    """Ids from the root-level ancestor down to ``bookmark_id``; [] when absent."""
    for item in items:
        if item.id == bookmark_id:
            return [item.id]
        if item.children:
            sub = path_to_bookmark(item.children, bookmark_id)
            if sub:
                return [item.id] + sub
    return []


def add_bookmark_to_tree(
    items: Sequence[BookmarkNode],
    parent_id: Optional[str],
    new_node: BookmarkNode,
) -> List[BookmarkNode]:
    if not parent_id:
        return list(items) + [new_node]
    out: List[BookmarkNode] = []
    for item in items:
        if item.id == parent_id:
            out.append(replace(item, children=list(item.children or []) + [new_node]))
        elif item.children:
            out.append(replace(item, children=add_bookmark_to_tree(item.children, parent_id, new_node)))
        else:
            out.append(item)
    return out


def update_bookmark_in_tree(items: Sequence[BookmarkNode], bookmark_id: str, **updates) -> List[BookmarkNode]:
    out: List[BookmarkNode] = []
    for item in items:
        if item.id == bookmark_id:
            out.append(replace(item, **updates))
        elif item.children:
            out.append(replace(item, children=update_bookmark_in_tree(item.children, bookmark_id, **updates)))
        else:
            out.append(item)
    return out
