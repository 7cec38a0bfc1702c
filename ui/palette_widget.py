from __future__ import annotations
from typing import Callable, List, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor, QIcon, QPixmap
from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QListWidget, QListWidgetItem, QLabel, QProgressBar
)

from core.state import PaletteColor


class PaletteWidget(QWidget):
    """
    Numbered palette list:
    - Each item stores its palette index in Qt.UserRole
    - Finished colors are marked and cannot be selected
    """
    def __init__(
        self,
        on_select: Callable[[int], None],
        parent: Optional[QWidget] = None,
    ):
        super().__init__(parent)
        self._on_select = on_select

        self.progress = QProgressBar()
        self.progress.setRange(0, 1)
        self.progress.setValue(0)
        self.progress.setFormat("%v / %m")

        self.listw = QListWidget()
        self.listw.currentItemChanged.connect(self._current_changed)

        lay = QVBoxLayout()
        lay.addWidget(self.progress)
        lay.addWidget(QLabel("Colors:"))
        lay.addWidget(self.listw)
        self.setLayout(lay)

    def _current_changed(self, item: Optional[QListWidgetItem], _prev) -> None:
        if item is None:
            return
        self._on_select(int(item.data(Qt.UserRole)))

    def set_palette(self, palette: List[PaletteColor], completed: List[bool], active: int) -> None:
        self.listw.blockSignals(True)
        self.listw.clear()
        for i, color in enumerate(palette):
            done = completed[i] if i < len(completed) else False
            item = QListWidgetItem(self._swatch(color), self._fmt(i, color, done))
            item.setData(Qt.UserRole, i)
            flags = Qt.ItemIsEnabled
            if not done:
                flags |= Qt.ItemIsSelectable
            item.setFlags(flags)
            self.listw.addItem(item)
        if 0 <= active < self.listw.count():
            self.listw.setCurrentRow(active)
        self.listw.blockSignals(False)

    def set_progress(self, completed: int, total: int) -> None:
        self.progress.setRange(0, max(1, total))
        self.progress.setValue(completed)

    @staticmethod
    def _swatch(color: PaletteColor) -> QIcon:
        pm = QPixmap(16, 16)
        pm.fill(QColor(*color.rgb))
        return QIcon(pm)

    @staticmethod
    def _fmt(index: int, color: PaletteColor, done: bool) -> str:
        mark = "  (done)" if done else ""
        return f"{index + 1}.  {color.hex.upper()}{mark}"
