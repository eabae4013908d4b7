"""Undo/redo over GEDCOM text snapshots."""

import logging
from datetime import datetime
from typing import Any, Callable

logger = logging.getLogger("famgrid.undo_history")

MAX_HISTORY = 30
MIN_SNAPSHOT_LENGTH = 10


class UndoHistory:
    """Undo and redo stacks of exported GEDCOM text.

    Restoring a snapshot means re-parsing its text, so every entry is a
    complete, self-contained tree.
    """

    def __init__(self, max_history: int = MAX_HISTORY):
        self.max_history = max_history
        self._undo_stack: list[dict[str, Any]] = []
        self._redo_stack: list[dict[str, Any]] = []
        self._listeners: list[Callable[[dict[str, Any]], None]] = []

    def save_snapshot(self, description: str, gedcom_text: str) -> bool:
        """Save the state before an action. Returns False when nothing was stored."""
        if not gedcom_text or len(gedcom_text) < MIN_SNAPSHOT_LENGTH:
            logger.warning("No valid GEDCOM data to save")
            return False

        if self._undo_stack and self._undo_stack[-1]["text"] == gedcom_text:
            return False

        self._undo_stack.append(self._entry(description, gedcom_text))
        while len(self._undo_stack) > self.max_history:
            self._undo_stack.pop(0)

        # A new action invalidates anything that was undone
        self._redo_stack.clear()
        logger.debug(f"Saved snapshot '{description}' ({len(self._undo_stack)} in history)")
        self._notify()
        return True

    def undo(self, current_text: str) -> str | None:
        """Return the text to restore, pushing `current_text` onto the redo stack."""
        if not self._undo_stack:
            return None
        action = self._undo_stack.pop()
        self._redo_stack.append(self._entry(action["description"], current_text))
        logger.info(f"Undo: {action['description']}")
        self._notify()
        return action["text"]

    def redo(self, current_text: str) -> str | None:
        if not self._redo_stack:
            return None
        action = self._redo_stack.pop()
        self._undo_stack.append(self._entry(action["description"], current_text))
        logger.info(f"Redo: {action['description']}")
        self._notify()
        return action["text"]

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def get_undo_stack(self) -> list[dict[str, Any]]:
        return [{"description": a["description"], "timestamp": a["timestamp"]} for a in self._undo_stack]

    def get_redo_stack(self) -> list[dict[str, Any]]:
        return [{"description": a["description"], "timestamp": a["timestamp"]} for a in self._redo_stack]

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._notify()

    def add_listener(self, listener: Callable[[dict[str, Any]], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[dict[str, Any]], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def state(self) -> dict[str, Any]:
        return {
            "canUndo": self.can_undo,
            "canRedo": self.can_redo,
            "undoCount": len(self._undo_stack),
            "redoCount": len(self._redo_stack),
        }

    def _notify(self) -> None:
        state = self.state()
        for listener in list(self._listeners):
            listener(state)

    @staticmethod
    def _entry(description: str, text: str) -> dict[str, Any]:
        return {"description": description, "text": text, "timestamp": datetime.now().isoformat()}
