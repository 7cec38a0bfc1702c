from __future__ import annotations

import logging
from typing import List, Optional

from core.grid import GridSnapshot


logger = logging.getLogger(__name__)


class StrokeHistory:
    """
    Undo/redo stacks holding one snapshot per stroke.

    The owner calls begin_stroke() on pointer-down, record() before every
    mutating paint and end_stroke() on release. Only the first record() of a
    stroke is kept, so a whole drag undoes as one unit.
    """

    def __init__(self, limit: Optional[int] = None) -> None:
        self._undo_stack: List[GridSnapshot] = []
        self._redo_stack: List[GridSnapshot] = []
        self._limit = limit
        self._stroke_open = False
        self._stroke_recorded = False

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    @property
    def in_stroke(self) -> bool:
        return self._stroke_open

    def begin_stroke(self) -> None:
        self._stroke_open = True
        self._stroke_recorded = False

    def end_stroke(self) -> None:
        self._stroke_open = False
        self._stroke_recorded = False

    def record(self, snap: GridSnapshot) -> bool:
        """Push the pre-paint snapshot unless this stroke already has one."""
        if self._stroke_open and self._stroke_recorded:
            return False
        self._undo_stack.append(snap)
        if self._limit is not None and len(self._undo_stack) > self._limit:
            self._undo_stack.pop(0)
        self._redo_stack.clear()
        # A paint outside begin/end (e.g. a programmatic fill) is its own stroke
        self._stroke_recorded = self._stroke_open
        logger.debug("History push undo=%s stroke_open=%s", len(self._undo_stack), self._stroke_open)
        return True

    def undo(self, current: GridSnapshot) -> Optional[GridSnapshot]:
        if not self._undo_stack:
            logger.debug("History undo skipped: empty stack")
            return None
        self._redo_stack.append(current)
        prev = self._undo_stack.pop()
        self._stroke_recorded = False
        logger.debug("History undo undo=%s redo=%s", len(self._undo_stack), len(self._redo_stack))
        return prev

    def redo(self, current: GridSnapshot) -> Optional[GridSnapshot]:
        if not self._redo_stack:
            logger.debug("History redo skipped: empty stack")
            return None
        self._undo_stack.append(current)
        nxt = self._redo_stack.pop()
        self._stroke_recorded = False
        logger.debug("History redo undo=%s redo=%s", len(self._undo_stack), len(self._redo_stack))
        return nxt

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()
        self.end_stroke()
