import sys
from pathlib import Path

import pytest

# Allow `import marktree` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from marktree.db import BookmarksDB  # noqa: E402
from marktree.history import TransactionLog  # noqa: E402
from marktree.model import BookmarkNode  # noqa: E402
from marktree.prefs import PreferenceStore  # noqa: E402
from marktree.store import BookmarkStore  # noqa: E402


@pytest.fixture
def db(tmp_path: Path):
    with BookmarksDB(tmp_path / "bookmarks.sqlite") as handle:
        yield handle


@pytest.fixture
def store(db) -> BookmarkStore:
    return BookmarkStore(db)


@pytest.fixture
def history(db) -> TransactionLog:
    return TransactionLog(db)


@pytest.fixture
def prefs(db) -> PreferenceStore:
    return PreferenceStore(db)


def leaf(bid: str, title: str = "") -> BookmarkNode:
    return BookmarkNode(id=bid, title=title or bid, url=f"https://{bid.lower()}.example/")


def folder(bid: str, *children: BookmarkNode) -> BookmarkNode:
    return BookmarkNode(id=bid, title=bid, children=list(children))


def positions(store: BookmarkStore, parent_id):
    return [(r.id, r.order) for r in store.children(parent_id)]
