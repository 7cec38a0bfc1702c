from __future__ import annotations
from typing import Optional, Callable, List

from PySide6.QtCore import Qt, QEvent, QPointF, QRectF
from PySide6.QtGui import QPainter, QColor, QPen, QFont, QEventPoint
from PySide6.QtWidgets import QWidget

from core.gesture import (
    BUTTON_ZOOM_STEP,
    MODE_MOVE,
    GestureEngine,
    content_to_screen,
)
from core.grid import PuzzleGrid
from ui.timers import QtTimer

MOUSE_POINTER_ID = -1
# Qt reports 120 units per wheel notch; the engine expects ~100 per notch
WHEEL_UNITS_PER_NOTCH = 100.0 / 120.0

BLANK = QColor(241, 245, 249)
ACTIVE_BLANK = QColor(255, 255, 255)
HINT = QColor(254, 240, 138)
GRID_LINE = QColor(226, 232, 240)
NUM_ACTIVE = QColor(71, 85, 105)
NUM_IDLE = QColor(203, 213, 225)


class PuzzleCanvas(QWidget):
    """
    Draws the puzzle grid with view zoom/pan and feeds pointer input to the
    gesture engine.
    Supports:
      - left-drag / single touch: paint (or pan in move mode)
      - two-finger touch: pinch zoom + pan
      - ctrl+wheel: view zoom
      - middle-drag: pan view
    """
    def __init__(
        self,
        on_paint_cells: Callable[[List[int]], None],
        on_stroke_begin: Optional[Callable[[], None]] = None,
        on_stroke_end: Optional[Callable[[], None]] = None,
        on_mode_changed: Optional[Callable[[str], None]] = None,
        parent: Optional[QWidget] = None,
    ):
        super().__init__(parent)
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)
        self.setAttribute(Qt.WA_AcceptTouchEvents, True)
        self.setMinimumSize(240, 240)

        self._grid: Optional[PuzzleGrid] = None
        self._active_color = 0
        self._hint_index: Optional[int] = None

        self._on_paint_cells = on_paint_cells
        self._dragging_mid = False
        self._last_mid_pos = QPointF()

        self.engine = GestureEngine(
            grid_size=1,
            timer=QtTimer(self),
            on_stroke_begin=on_stroke_begin,
            on_stroke_end=on_stroke_end,
            on_view_changed=self.update,
            on_mode_changed=on_mode_changed,
        )

    # ---------------------------
    # Model
    # ---------------------------
    def set_puzzle(self, grid: Optional[PuzzleGrid], active_color: int, hint_index: Optional[int]) -> None:
        if grid is not self._grid:
            self._grid = grid
            # New puzzle: fresh pointer state and view
            self.engine.set_grid_size(grid.grid_size if grid is not None else 1)
        self._active_color = active_color
        self._hint_index = hint_index
        self.update()

    def set_difficulty(self, difficulty: str) -> None:
        self.engine.difficulty = difficulty

    def zoom_in(self) -> None:
        self.engine.zoom_by(BUTTON_ZOOM_STEP)

    def zoom_out(self) -> None:
        self.engine.zoom_by(-BUTTON_ZOOM_STEP)

    def reset_view(self) -> None:
        self.engine.reset_view()

    def toggle_mode(self) -> str:
        return self.engine.toggle_mode()

    def teardown(self) -> None:
        self.engine.teardown()

    # ---------------------------
    # Painting
    # ---------------------------
    def resizeEvent(self, e) -> None:
        self.engine.set_viewport_size(self.width(), self.height())
        super().resizeEvent(e)

    def paintEvent(self, _) -> None:
        p = QPainter(self)
        p.fillRect(self.rect(), QColor(226, 232, 240))

        if self._grid is None:
            p.setPen(QPen(QColor(100, 116, 139)))
            p.drawText(self.rect(), Qt.AlignCenter, "Describe a picture and press Generate")
            return

        rect = self.engine.content_rect()
        if rect.size <= 0:
            return
        vp = self.engine.viewport

        # content origin on screen, then zoom from there
        ox, oy = content_to_screen(0.0, 0.0, self.width(), self.height(), vp)
        p.translate(ox, oy)
        p.scale(vp.zoom, vp.zoom)

        g = self._grid.grid_size
        cell = rect.size / float(g)
        palette = [QColor(*c.rgb) for c in self._grid.palette]
        color_index = self._grid.color_index
        colored = self._grid.colored

        on_screen_cell = cell * vp.zoom
        show_numbers = on_screen_cell >= 10.0
        font = QFont(self.font())
        font.setPixelSize(max(4, int(cell * 0.5)))
        font.setBold(True)
        p.setFont(font)

        p.fillRect(QRectF(rect.x0, rect.y0, rect.size, rect.size), BLANK)
        line_pen = QPen(GRID_LINE, 0)

        for i in range(g * g):
            row, col = divmod(i, g)
            r = QRectF(rect.x0 + col * cell, rect.y0 + row * cell, cell, cell)
            ci = int(color_index[i])
            if colored[i]:
                p.fillRect(r, palette[ci])
                continue

            is_active = ci == self._active_color
            if i == self._hint_index:
                p.fillRect(r, HINT)
            elif is_active:
                p.fillRect(r, ACTIVE_BLANK)
            p.setPen(line_pen)
            p.drawRect(r)
            if show_numbers:
                p.setPen(QPen(NUM_ACTIVE if is_active or i == self._hint_index else NUM_IDLE))
                p.drawText(r, Qt.AlignCenter, str(ci + 1))

        p.resetTransform()
        p.setPen(QPen(QColor(100, 116, 139)))
        msg = "Ctrl+Wheel: zoom | Middle-drag: pan | Two fingers: pinch/pan"
        if self.engine.mode == MODE_MOVE:
            msg = "Move mode: drag to pan | " + msg
        p.drawText(10, self.height() - 10, msg)

    # ---------------------------
    # Input
    # ---------------------------
    def _emit_paint(self, indices: List[int]) -> None:
        if indices:
            self._on_paint_cells(indices)

    def wheelEvent(self, e) -> None:
        delta = e.angleDelta().y()
        ctrl = bool(e.modifiers() & Qt.ControlModifier)
        if self.engine.wheel(-delta * WHEEL_UNITS_PER_NOTCH, ctrl):
            e.accept()
            return
        super().wheelEvent(e)

    def mousePressEvent(self, e) -> None:
        pos = e.position()
        if e.button() == Qt.LeftButton:
            self._emit_paint(self.engine.pointer_down(MOUSE_POINTER_ID, pos.x(), pos.y()))
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = True
            self._last_mid_pos = pos

    def mouseMoveEvent(self, e) -> None:
        pos = e.position()
        if self._dragging_mid:
            self.engine.pan_by(pos.x() - self._last_mid_pos.x(), pos.y() - self._last_mid_pos.y())
            self._last_mid_pos = pos
            return
        self._emit_paint(self.engine.pointer_move(MOUSE_POINTER_ID, pos.x(), pos.y()))

    def mouseReleaseEvent(self, e) -> None:
        if e.button() == Qt.LeftButton:
            self.engine.pointer_up(MOUSE_POINTER_ID)
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = False

    def leaveEvent(self, e) -> None:
        self.engine.pointer_up(MOUSE_POINTER_ID)
        super().leaveEvent(e)

    def event(self, e) -> bool:
        t = e.type()
        if t in (QEvent.TouchBegin, QEvent.TouchUpdate, QEvent.TouchEnd):
            self._handle_touch(e)
            e.accept()
            return True
        if t == QEvent.TouchCancel:
            self.engine.pointer_cancel()
            e.accept()
            return True
        return super().event(e)

    def _handle_touch(self, e) -> None:
        painted: List[int] = []
        for pt in e.points():
            pid = int(pt.id())
            pos = pt.position()
            state = pt.state()
            if state == QEventPoint.State.Pressed:
                painted.extend(self.engine.pointer_down(pid, pos.x(), pos.y()))
            elif state == QEventPoint.State.Updated:
                painted.extend(self.engine.pointer_move(pid, pos.x(), pos.y()))
            elif state == QEventPoint.State.Released:
                self.engine.pointer_up(pid)
        self._emit_paint(painted)

