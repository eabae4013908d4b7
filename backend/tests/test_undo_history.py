"""Tests for undo/redo snapshots."""

import os
import pytest
import sys

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gedcom_utils import parse_gedcom_content
from tree_edit import add_sibling
from undo_history import UndoHistory


@pytest.fixture
def history():
    return UndoHistory(max_history=3)


def snapshot_text(n):
    return f"0 HEAD\n0 @I{n}@ INDI\n0 TRLR\n"


class TestUndoHistory:
    """Tests for the undo and redo stacks."""

    def test_undo_returns_previous_state(self, history):
        assert history.save_snapshot("Add sibling", snapshot_text(1))
        restored = history.undo(snapshot_text(2))
        assert restored == snapshot_text(1)
        assert history.can_redo
        assert not history.can_undo

    def test_redo_after_undo(self, history):
        history.save_snapshot("Add sibling", snapshot_text(1))
        history.undo(snapshot_text(2))
        assert history.redo(snapshot_text(1)) == snapshot_text(2)
        assert history.can_undo
        assert not history.can_redo

    def test_empty_stacks_return_none(self, history):
        assert history.undo(snapshot_text(1)) is None
        assert history.redo(snapshot_text(1)) is None

    def test_too_short_snapshot_ignored(self, history):
        assert not history.save_snapshot("Nothing", "")
        assert not history.save_snapshot("Nothing", "0 HEAD")
        assert not history.can_undo

    def test_duplicate_snapshot_ignored(self, history):
        assert history.save_snapshot("First", snapshot_text(1))
        assert not history.save_snapshot("Again", snapshot_text(1))
        assert history.state()["undoCount"] == 1

    def test_oldest_snapshot_dropped(self, history):
        for n in range(5):
            history.save_snapshot(f"Edit {n}", snapshot_text(n))
        assert [a["description"] for a in history.get_undo_stack()] == ["Edit 2", "Edit 3", "Edit 4"]

    def test_new_snapshot_clears_redo(self, history):
        history.save_snapshot("First", snapshot_text(1))
        history.undo(snapshot_text(2))
        history.save_snapshot("Other", snapshot_text(3))
        assert not history.can_redo
        assert history.get_redo_stack() == []

    def test_listeners_receive_state(self, history):
        states = []
        history.add_listener(states.append)
        history.save_snapshot("First", snapshot_text(1))
        history.undo(snapshot_text(2))
        history.remove_listener(states.append)
        history.clear()
        assert states == [
            {"canUndo": True, "canRedo": False, "undoCount": 1, "redoCount": 0},
            {"canUndo": False, "canRedo": True, "undoCount": 0, "redoCount": 1},
        ]

    def test_restores_a_real_tree(self, history):
        tree = parse_gedcom_content(None)
        before = tree.to_gedcom()
        history.save_snapshot("Add sibling", before)
        add_sibling(tree, tree.get_individual("@I1@"), "Sister", "F")

        restored = parse_gedcom_content(history.undo(tree.to_gedcom()))
        assert list(restored.individuals) == ["@I1@", "@I2@", "@I3@"]
        assert restored.to_gedcom() == before
