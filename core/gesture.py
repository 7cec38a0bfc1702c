from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple


logger = logging.getLogger(__name__)

# Screen-space brush tolerance per difficulty, in pixels
BRUSH_RADIUS_PX: Dict[str, float] = {
    "easy": 25.0,
    "medium": 12.0,
    "hard": 4.0,
}
INTERPOLATION_STEP_PX = 5.0
PINCH_DEADZONE_PX = 10.0
PINCH_ZOOM_PER_PX = 0.005
WHEEL_ZOOM_PER_UNIT = 0.01
BUTTON_ZOOM_STEP = 0.5
MIN_ZOOM = 1.0
MAX_ZOOM = 5.0
MODE_REVERT_MS = 3000

MODE_PAINT = "paint"
MODE_MOVE = "move"

STATE_IDLE = "idle"
STATE_SINGLE = "single"
STATE_MULTI = "multi"

Point = Tuple[float, float]


class Timer(Protocol):
    """Cancellable single-shot timer."""

    def start(self, interval_ms: int, callback: Callable[[], None]) -> None: ...

    def cancel(self) -> None: ...

    @property
    def is_active(self) -> bool: ...


@dataclass
class Viewport:
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def reset(self) -> None:
        self.zoom = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0


@dataclass
class ContentRect:
    """Where the grid is drawn inside the viewport at zoom 1 (square, centered)."""

    x0: float
    y0: float
    size: float

    @classmethod
    def centered(cls, width: float, height: float) -> "ContentRect":
        side = max(0.0, min(float(width), float(height)))
        return cls(x0=(width - side) * 0.5, y0=(height - side) * 0.5, size=side)


def screen_to_content(
    x: float,
    y: float,
    width: float,
    height: float,
    viewport: Viewport,
) -> Point:
    """Undo pan, then undo zoom, both about the viewport center."""
    cx = width * 0.5
    cy = height * 0.5
    return (
        (x - viewport.pan_x - cx) / viewport.zoom + cx,
        (y - viewport.pan_y - cy) / viewport.zoom + cy,
    )


def content_to_screen(
    x: float,
    y: float,
    width: float,
    height: float,
    viewport: Viewport,
) -> Point:
    cx = width * 0.5
    cy = height * 0.5
    return (
        (x - cx) * viewport.zoom + cx + viewport.pan_x,
        (y - cy) * viewport.zoom + cy + viewport.pan_y,
    )


def brush_indices(
    x: float,
    y: float,
    width: float,
    height: float,
    grid_size: int,
    viewport: Viewport,
    radius_px: float,
) -> List[int]:
    """
    Row-major indices of every cell whose center lies within radius_px
    (screen space) of the point. Falls back to the single cell under the
    point when the radius is too small to reach any center.
    """
    rect = ContentRect.centered(width, height)
    if rect.size <= 0 or grid_size <= 0 or viewport.zoom <= 0:
        return []

    wx, wy = screen_to_content(x, y, width, height, viewport)
    ratio = grid_size / rect.size
    gx = (wx - rect.x0) * ratio
    gy = (wy - rect.y0) * ratio

    r = float(radius_px) * ratio / viewport.zoom
    r2 = r * r
    min_col = max(0, int(math.floor(gx - r)))
    max_col = min(grid_size - 1, int(math.ceil(gx + r)))
    min_row = max(0, int(math.floor(gy - r)))
    max_row = min(grid_size - 1, int(math.ceil(gy + r)))

    out: List[int] = []
    for row in range(min_row, max_row + 1):
        dy = row + 0.5 - gy
        for col in range(min_col, max_col + 1):
            dx = col + 0.5 - gx
            if dx * dx + dy * dy <= r2:
                out.append(row * grid_size + col)

    if not out:
        col = int(math.floor(gx))
        row = int(math.floor(gy))
        if 0 <= col < grid_size and 0 <= row < grid_size:
            out.append(row * grid_size + col)
    return out


def interpolate(start: Point, end: Point, step: float = INTERPOLATION_STEP_PX) -> List[Point]:
    """Points from start (exclusive) to end (inclusive) spaced at most `step` apart."""
    dist = math.hypot(end[0] - start[0], end[1] - start[1])
    steps = int(math.ceil(dist / step)) if step > 0 else 0
    pts: List[Point] = []
    for i in range(1, steps + 1):
        t = i / steps
        pts.append((start[0] + (end[0] - start[0]) * t, start[1] + (end[1] - start[1]) * t))
    if not pts or pts[-1] != end:
        pts.append(end)
    return pts


class GestureEngine:
    """
    Turns pointer events into affected cell indices and viewport changes.

    Pointers are tracked as a plain id -> (x, y) map in viewport coordinates.
    One pointer paints (or pans in move mode); two pointers pinch-zoom and pan.
    """

    def __init__(
        self,
        grid_size: int,
        difficulty: str = "medium",
        timer: Optional[Timer] = None,
        on_stroke_begin: Optional[Callable[[], None]] = None,
        on_stroke_end: Optional[Callable[[], None]] = None,
        on_view_changed: Optional[Callable[[], None]] = None,
        on_mode_changed: Optional[Callable[[str], None]] = None,
    ):
        self.grid_size = int(grid_size)
        self.difficulty = difficulty
        self.viewport = Viewport()
        self.mode = MODE_PAINT
        self.width = 0.0
        self.height = 0.0

        self._pointers: Dict[int, Point] = {}
        self._anchor: Optional[Point] = None
        self._pinch_dist: Optional[float] = None
        self._pinch_center: Optional[Point] = None
        self._stroke_open = False

        self._timer = timer
        self._on_stroke_begin = on_stroke_begin
        self._on_stroke_end = on_stroke_end
        self._on_view_changed = on_view_changed
        self._on_mode_changed = on_mode_changed

    # ---- state ----
    @property
    def state(self) -> str:
        n = len(self._pointers)
        if n == 0:
            return STATE_IDLE
        if n == 1:
            return STATE_SINGLE
        return STATE_MULTI

    @property
    def pointer_count(self) -> int:
        return len(self._pointers)

    @property
    def brush_radius_px(self) -> float:
        return BRUSH_RADIUS_PX.get(self.difficulty, BRUSH_RADIUS_PX["medium"])

    def set_viewport_size(self, width: float, height: float) -> None:
        self.width = max(0.0, float(width))
        self.height = max(0.0, float(height))

    def set_grid_size(self, grid_size: int) -> None:
        """New puzzle: forget pointers and reset the view."""
        self.grid_size = int(grid_size)
        self._pointers.clear()
        self._end_stroke()
        self.reset_view()

    def content_rect(self) -> ContentRect:
        return ContentRect.centered(self.width, self.height)

    def hit_test(self, x: float, y: float) -> List[int]:
        return brush_indices(
            x, y, self.width, self.height, self.grid_size, self.viewport, self.brush_radius_px
        )

    # ---- mode / view ----
    def set_mode(self, mode: str) -> None:
        if mode not in (MODE_PAINT, MODE_MOVE):
            raise ValueError(f"Unknown mode: {mode}")
        if mode == self.mode:
            return
        self.mode = mode
        if mode == MODE_MOVE:
            self._start_revert_timer()
        else:
            self._cancel_revert_timer()
        if self._on_mode_changed is not None:
            self._on_mode_changed(mode)

    def toggle_mode(self) -> str:
        self.set_mode(MODE_MOVE if self.mode == MODE_PAINT else MODE_PAINT)
        return self.mode

    def zoom_by(self, delta: float) -> float:
        new_zoom = max(MIN_ZOOM, min(MAX_ZOOM, self.viewport.zoom + float(delta)))
        self.viewport.zoom = new_zoom
        if new_zoom == MIN_ZOOM:
            self.viewport.pan_x = 0.0
            self.viewport.pan_y = 0.0
        self._view_changed()
        return new_zoom

    def pan_by(self, dx: float, dy: float) -> None:
        self.viewport.pan_x += dx
        self.viewport.pan_y += dy
        self._view_changed()

    def wheel(self, delta_y: float, ctrl: bool) -> bool:
        """Ctrl+wheel zooms. Returns True when the event was consumed."""
        if not ctrl or delta_y == 0:
            return False
        self._cancel_revert_timer()
        self.zoom_by(-float(delta_y) * WHEEL_ZOOM_PER_UNIT)
        self._start_revert_timer()
        return True

    def reset_view(self) -> None:
        self._cancel_revert_timer()
        self.viewport.reset()
        if self.mode != MODE_PAINT:
            self.mode = MODE_PAINT
            if self._on_mode_changed is not None:
                self._on_mode_changed(MODE_PAINT)
        self._view_changed()

    def teardown(self) -> None:
        self._cancel_revert_timer()
        self._pointers.clear()
        self._end_stroke()

    # ---- pointer events ----
    def pointer_down(self, pointer_id: int, x: float, y: float) -> List[int]:
        self._cancel_revert_timer()
        self._pointers[pointer_id] = (float(x), float(y))
        n = len(self._pointers)

        if n == 2:
            (x1, y1), (x2, y2) = list(self._pointers.values())
            self._pinch_dist = math.hypot(x1 - x2, y1 - y2)
            self._pinch_center = ((x1 + x2) * 0.5, (y1 + y2) * 0.5)
            return []

        self._anchor = (float(x), float(y))
        if n != 1:
            return []

        self._begin_stroke()
        if self.mode != MODE_PAINT:
            return []
        return self.hit_test(x, y)

    def pointer_move(self, pointer_id: int, x: float, y: float) -> List[int]:
        if pointer_id not in self._pointers:
            return []
        self._cancel_revert_timer()
        self._pointers[pointer_id] = (float(x), float(y))
        n = len(self._pointers)

        if n == 2:
            self._pinch_move()
            return []
        if n != 1 or self._anchor is None:
            return []

        pos = (float(x), float(y))
        if self.mode == MODE_MOVE:
            dx = pos[0] - self._anchor[0]
            dy = pos[1] - self._anchor[1]
            self._anchor = pos
            self.pan_by(dx, dy)
            return []

        hit: Set[int] = set()
        for px, py in interpolate(self._anchor, pos):
            hit.update(self.hit_test(px, py))
        self._anchor = pos
        return sorted(hit)

    def pointer_up(self, pointer_id: int) -> None:
        if self._pointers.pop(pointer_id, None) is None:
            return
        n = len(self._pointers)
        self._pinch_dist = None
        self._pinch_center = None
        if n == 0:
            self._anchor = None
            self._end_stroke()
            self._start_revert_timer()
        elif n == 1:
            # Remaining finger becomes the drag anchor so nothing jumps
            self._anchor = next(iter(self._pointers.values()))

    def pointer_cancel(self) -> None:
        """Drop every pointer (capture lost, widget hidden)."""
        for pid in list(self._pointers):
            self.pointer_up(pid)

    # ---- internals ----
    def _pinch_move(self) -> None:
        (x1, y1), (x2, y2) = list(self._pointers.values())
        dist = math.hypot(x1 - x2, y1 - y2)
        center = ((x1 + x2) * 0.5, (y1 + y2) * 0.5)
        if self._pinch_dist is not None and self._pinch_center is not None:
            dd = dist - self._pinch_dist
            if abs(dd) > PINCH_DEADZONE_PX:
                self.zoom_by(dd * PINCH_ZOOM_PER_PX)
            self.pan_by(center[0] - self._pinch_center[0], center[1] - self._pinch_center[1])
        self._pinch_dist = dist
        self._pinch_center = center

    def _begin_stroke(self) -> None:
        if self._stroke_open:
            return
        self._stroke_open = True
        if self._on_stroke_begin is not None:
            self._on_stroke_begin()

    def _end_stroke(self) -> None:
        if not self._stroke_open:
            return
        self._stroke_open = False
        if self._on_stroke_end is not None:
            self._on_stroke_end()

    def _revert_mode(self) -> None:
        logger.debug("Idle timeout: reverting to paint mode")
        self.set_mode(MODE_PAINT)

    def _start_revert_timer(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer.start(MODE_REVERT_MS, self._revert_mode)

    def _cancel_revert_timer(self) -> None:
        if self._timer is not None and self._timer.is_active:
            self._timer.cancel()

    def _view_changed(self) -> None:
        if self._on_view_changed is not None:
            self._on_view_changed()
