from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Action(str, Enum):
    REORDER = "reorderBookmark"
    MOVE = "moveBookmark"


@dataclass
class BookmarkNode:
    id: str
    title: str
    url: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    # None => leaf; a list (even empty) => folder.
    children: Optional[List["BookmarkNode"]] = None

    @property
    def is_folder(self) -> bool:
        return self.children is not None or not self.url


@dataclass
class FlatRecord:
    id: str
    parent_id: Optional[str]
    order: int
    title: str
    url: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    folder: bool = False


@dataclass
class TransactionRecord:
    timestamp: int
    action: str
    data: Dict[str, Any] = field(default_factory=dict)
