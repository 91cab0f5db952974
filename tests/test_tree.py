from conftest import folder, leaf

from marktree.model import BookmarkNode
from marktree.tree import (
    add_bookmark_to_tree,
    favicon_url,
    find_bookmark,
    iter_nodes,
    new_id,
    path_to_bookmark,
    update_bookmark_in_tree,
)


def _tree():
    return [folder("F", leaf("A"), folder("G", leaf("B"))), leaf("C")]


def test_new_ids_are_short_and_distinct():
    ids = {new_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(len(i) == 12 and not i.startswith("-") for i in ids)


def test_favicon_url_uses_scheme_and_host():
    assert favicon_url("https://docs.python.org/3/library/") == "https://docs.python.org/favicon.ico"
    assert favicon_url("http://Example.COM:8080/x") == "http://example.com/favicon.ico"
    assert favicon_url("not a url") == ""
    assert favicon_url(None) == ""


def test_iter_nodes_is_preorder():
    assert [n.id for n in iter_nodes(_tree())] == ["F", "A", "G", "B", "C"]


def test_find_and_path():
    tree = _tree()
    assert find_bookmark(tree, "B").url == "https://b.example/"
    assert find_bookmark(tree, "missing") is None
    assert path_to_bookmark(tree, "B") == ["F", "G", "B"]
    assert path_to_bookmark(tree, "C") == ["C"]
    assert path_to_bookmark(tree, "missing") == []


def test_add_bookmark_returns_new_tree():
    tree = _tree()
    node = BookmarkNode(id="N", title="New", url="https://n.example/")
    added = add_bookmark_to_tree(tree, "G", node)
    assert [n.id for n in find_bookmark(added, "G").children] == ["B", "N"]
    assert [n.id for n in find_bookmark(tree, "G").children] == ["B"]

    at_root = add_bookmark_to_tree(tree, None, node)
    assert [n.id for n in at_root] == ["F", "C", "N"]


def test_add_into_leaf_turns_it_into_parent():
    added = add_bookmark_to_tree(_tree(), "C", leaf("N"))
    assert [n.id for n in added[1].children] == ["N"]


def test_update_bookmark_leaves_input_untouched():
    tree = _tree()
    updated = update_bookmark_in_tree(tree, "A", title="Renamed", description="note")
    a = find_bookmark(updated, "A")
    assert (a.title, a.description) == ("Renamed", "note")
    assert find_bookmark(tree, "A").title == "A"
    assert find_bookmark(updated, "B") == find_bookmark(tree, "B")
