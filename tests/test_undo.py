import logging

import pytest
from conftest import folder, leaf, positions

from marktree.errors import NotFound
from marktree.model import Action
from marktree.undo import UndoManager


def _ids(nodes):
    return [n.id for n in nodes]


@pytest.fixture
def undo(store, history) -> UndoManager:
    return UndoManager(store, history)


def test_undo_after_reorder_restores_order(store, undo):
    store.save_all([leaf("A"), leaf("B"), leaf("C")])
    tx = undo.reorder("C", 0, None)
    assert tx.action == "reorderBookmark"
    assert tx.data == {"bookmarkId": "C", "parentId": None, "oldIndex": 2, "newIndex": 0}
    assert _ids(store.load_all()) == ["C", "A", "B"]

    tree = undo.undo()
    assert _ids(tree) == ["A", "B", "C"]
    assert positions(store, None) == [("A", 0), ("B", 1), ("C", 2)]
    assert undo.history_index == 0


def test_move_records_old_and_new_positions(store, history, undo):
    store.save_all([folder("A", leaf("B"), leaf("C")), leaf("D")])
    tx = undo.move("B", "D", 0)
    assert tx.action == Action.MOVE.value
    assert tx.data == {"bookmarkId": "B", "oldParentId": "A", "newParentId": "D", "oldIndex": 0, "newIndex": 0}
    assert history.latest() == tx
    tree = store.load_all()
    assert _ids(tree[0].children) == ["C"]
    assert _ids(tree[1].children) == ["B"]


def test_undo_redo_move(store, undo):
    store.save_all([folder("A", leaf("B"), leaf("C")), leaf("D")])
    undo.move("C", "D")
    tree = undo.undo()
    assert _ids(tree[0].children) == ["B", "C"]
    assert tree[1].children is None
    assert undo.can_redo

    tree = undo.redo()
    assert _ids(tree[0].children) == ["B"]
    assert _ids(tree[1].children) == ["C"]
    assert undo.history_index == -1
    assert not undo.can_redo
    store.validate_integrity()


def test_undo_walks_back_through_several_steps_and_redo_forward(store, undo):
    store.save_all([leaf("A"), leaf("B"), leaf("C"), folder("F")])
    undo.reorder("C", 0, None)  # C A B F
    undo.move("A", "F")  # C B F / F:[A]
    undo.reorder("F", 0, None)  # F C B
    snapshots = [store.load_all()]

    assert _ids(undo.undo()) == ["C", "B", "F"]
    assert _ids(undo.undo()) == ["C", "A", "B", "F"]
    assert _ids(undo.undo()) == ["A", "B", "C", "F"]
    assert undo.undo() is None
    assert undo.history_index == 2

    undo.redo()
    undo.redo()
    assert _ids(undo.redo()) == ["F", "C", "B"]
    assert undo.redo() is None
    assert store.load_all() == snapshots[0]


def test_new_change_after_undo_discards_redo_branch(store, undo):
    store.save_all([leaf("A"), leaf("B"), leaf("C")])
    undo.reorder("C", 0, None)  # C A B
    undo.undo()  # A B C
    undo.reorder("A", 2, None)  # B C A
    assert undo.history_index == -1
    assert not undo.can_redo
    assert len(undo.entries) == 1

    assert _ids(undo.undo()) == ["A", "B", "C"]
    # The abandoned reorder of C must not be undone a second time.
    assert undo.undo() is None
    assert _ids(store.load_all()) == ["A", "B", "C"]


def test_unknown_action_is_skipped_with_warning(store, history, undo, caplog):
    store.save_all([leaf("A"), leaf("B")])
    undo.reorder("B", 0, None)
    history.append("renameBookmark", {"bookmarkId": "A"})
    before = store.records()
    with caplog.at_level(logging.WARNING, logger="marktree.undo"):
        tree = undo.undo()
    assert "Unknown transaction type" in caplog.text
    assert store.records() == before
    assert _ids(tree) == ["B", "A"]
    assert undo.history_index == 0
    assert _ids(undo.undo()) == ["A", "B"]


def test_replay_failure_keeps_cursor(store, undo):
    store.save_all([folder("A", leaf("B")), leaf("D")])
    undo.move("B", "D")
    store.delete_subtree("D")
    with pytest.raises(NotFound):
        undo.undo()
    assert undo.history_index == -1


def test_cursor_state_persists_through_preferences(store, history, prefs):
    store.save_all([leaf("A"), leaf("B"), leaf("C")])
    first = UndoManager(store, history, prefs=prefs)
    first.reorder("C", 0, None)
    first.reorder("B", 0, None)  # B C A
    first.undo()  # C A B

    second = UndoManager(store, history, prefs=prefs)
    assert second.history_index == 0
    assert _ids(second.undo()) == ["A", "B", "C"]
    assert _ids(second.redo()) == ["C", "A", "B"]


def test_nothing_to_undo_on_empty_history(store, undo):
    assert not undo.can_undo
    assert undo.undo() is None
    assert undo.redo() is None


def _fail(*args, **kwargs):
    raise RuntimeError("disk full")


def test_failed_history_append_rolls_back_the_reorder(store, history, undo, monkeypatch):
    store.save_all([leaf("A"), leaf("B"), leaf("C")])
    monkeypatch.setattr(history, "append", _fail)
    with pytest.raises(RuntimeError, match="disk full"):
        undo.reorder("C", 0, None)
    assert _ids(store.load_all()) == ["A", "B", "C"]
    assert history.count() == 0
    assert not undo.can_undo


def test_failed_history_append_rolls_back_the_move(store, history, undo, monkeypatch):
    store.save_all([folder("A", leaf("B")), folder("D")])
    monkeypatch.setattr(history, "append", _fail)
    with pytest.raises(RuntimeError):
        undo.move("B", "D")
    assert positions(store, "A") == [("B", 0)]
    assert positions(store, "D") == []


def test_failed_cursor_save_rolls_back_the_undo(store, history, prefs, monkeypatch):
    store.save_all([leaf("A"), leaf("B"), leaf("C")])
    manager = UndoManager(store, history, prefs=prefs)
    manager.reorder("C", 0, None)
    monkeypatch.setattr(prefs, "set", _fail)
    with pytest.raises(RuntimeError):
        manager.undo()
    assert _ids(store.load_all()) == ["C", "A", "B"]
    assert manager.history_index == -1
    assert manager.can_undo
