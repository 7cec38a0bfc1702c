from __future__ import annotations

import logging
from typing import Optional

from core.grid import PuzzleGrid


logger = logging.getLogger(__name__)


def find_next_incomplete_color(grid: PuzzleGrid, active: int) -> Optional[int]:
    """First color after `active` with blank cells, wrapping to 0..active-1. None if there is none."""
    n = len(grid.palette)
    for i in range(active + 1, n):
        if not grid.is_color_complete(i):
            return i
    for i in range(0, min(active, n)):
        if not grid.is_color_complete(i):
            return i
    return None


def advance_active_color(grid: PuzzleGrid, active: int) -> int:
    """
    Active color to use after a successful paint batch.

    Unchanged while the active color still has blank cells or once the whole
    grid is colored.
    """
    if grid.is_complete or not grid.is_color_complete(active):
        return active
    nxt = find_next_incomplete_color(grid, active)
    if nxt is None:
        logger.error(
            "No incomplete color to advance to from %s but %s/%s cells are colored",
            active,
            grid.completed,
            grid.total,
        )
        return active
    logger.debug("Active color %s finished, advancing to %s", active, nxt)
    return nxt


def check_invariant(grid: PuzzleGrid) -> None:
    """Raise AssertionError if an incomplete grid has no incomplete color."""
    if grid.is_complete:
        return
    if all(grid.completed_colors()):
        raise AssertionError(
            f"grid reports {grid.completed}/{grid.total} colored but every color is complete"
        )
