from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np
from PIL import Image

from core.state import Cell, PaletteColor


@dataclass
class GridSnapshot:
    colored: np.ndarray
    active_color_index: int
    completed_pixels: int


class PuzzleGrid:
    """
    Paintable cells for one puzzle.

    Palette indices are fixed at construction; only the colored mask changes.
    """

    def __init__(self, palette: Sequence[PaletteColor], indices: Iterable[int], grid_size: int):
        self.palette: List[PaletteColor] = list(palette)
        self.grid_size = int(grid_size)
        self.color_index = np.asarray(indices if isinstance(indices, np.ndarray) else list(indices), dtype=np.int32).ravel()
        if self.color_index.size != self.grid_size * self.grid_size:
            raise ValueError(
                f"Expected {self.grid_size * self.grid_size} cells, got {self.color_index.size}"
            )
        if self.color_index.size and (self.color_index.min() < 0 or self.color_index.max() >= len(self.palette)):
            raise ValueError("Cell palette index out of range")
        self.colored = np.zeros(self.color_index.shape, dtype=bool)
        self._completed = 0

    @classmethod
    def from_cells(cls, palette: Sequence[PaletteColor], cells: Sequence[Cell], grid_size: int) -> "PuzzleGrid":
        grid = cls(palette, [c.palette_index for c in cells], grid_size)
        grid.colored = np.array([bool(c.is_colored) for c in cells], dtype=bool)
        grid._completed = int(np.count_nonzero(grid.colored))
        return grid

    def cells(self) -> List[Cell]:
        return [
            Cell(palette_index=int(i), is_colored=bool(c))
            for i, c in zip(self.color_index.tolist(), self.colored.tolist())
        ]

    @property
    def total(self) -> int:
        return int(self.color_index.size)

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def is_complete(self) -> bool:
        return self._completed == self.total

    def remaining(self, color: int) -> int:
        return int(np.count_nonzero((self.color_index == color) & ~self.colored))

    def is_color_complete(self, color: int) -> bool:
        return self.remaining(color) == 0

    def completed_colors(self) -> List[bool]:
        return [self.is_color_complete(i) for i in range(len(self.palette))]

    def uncolored_indices(self, color: int) -> List[int]:
        return np.flatnonzero((self.color_index == color) & ~self.colored).tolist()

    def paint(self, indices: Iterable[int], active_color: int) -> int:
        """
        Color every listed cell that belongs to active_color and is still blank.
        Other indices are ignored. Returns the number of newly colored cells.
        """
        idx = np.fromiter((int(i) for i in indices), dtype=np.int64)
        if idx.size == 0:
            return 0
        idx = idx[(idx >= 0) & (idx < self.total)]
        idx = np.unique(idx)
        idx = idx[(self.color_index[idx] == active_color) & ~self.colored[idx]]
        if idx.size == 0:
            return 0
        self.colored[idx] = True
        self._completed += int(idx.size)
        return int(idx.size)

    def reset_progress(self) -> None:
        self.colored[:] = False
        self._completed = 0

    def snapshot(self, active_color_index: int) -> GridSnapshot:
        return GridSnapshot(
            colored=self.colored.copy(),
            active_color_index=int(active_color_index),
            completed_pixels=self._completed,
        )

    def restore(self, snap: GridSnapshot) -> int:
        """Restore the colored mask and counters. Returns the snapshot's active color."""
        self.colored = snap.colored.copy()
        self._completed = int(snap.completed_pixels)
        return snap.active_color_index

    def render(self, cell_px: int = 8, blank_rgb=(241, 245, 249), reveal: bool = False) -> Image.Image:
        """Render the grid as an RGB image; blank cells use blank_rgb unless reveal is set."""
        g = self.grid_size
        lut = np.array([p.rgb for p in self.palette], dtype=np.uint8).reshape(-1, 3)
        rgb = lut[self.color_index]
        if not reveal:
            rgb = np.where(self.colored[:, None], rgb, np.array(blank_rgb, dtype=np.uint8))
        img = Image.fromarray(rgb.reshape(g, g, 3).astype(np.uint8))
        if cell_px > 1:
            img = img.resize((g * cell_px, g * cell_px), resample=Image.Resampling.NEAREST)
        return img
