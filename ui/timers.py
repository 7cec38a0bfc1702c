from __future__ import annotations
from typing import Callable, Optional

from PySide6.QtCore import QObject, QTimer


class QtTimer:
    """Single-shot QTimer behind the core Timer protocol."""

    def __init__(self, parent: Optional[QObject] = None):
        self._timer = QTimer(parent)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._fire)
        self._callback: Optional[Callable[[], None]] = None

    def start(self, interval_ms: int, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._timer.start(int(interval_ms))

    def cancel(self) -> None:
        self._timer.stop()
        self._callback = None

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()

    def _fire(self) -> None:
        cb = self._callback
        self._callback = None
        if cb is not None:
            cb()
