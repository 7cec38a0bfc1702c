from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


STAGE_INPUT = "input"
STAGE_PREVIEW = "preview"
STAGE_PROCESSING = "processing"
STAGE_PLAYING = "playing"
STAGE_COMPLETE = "complete"


DIFFICULTIES = ("easy", "medium", "hard")


@dataclass(frozen=True)
class PaletteColor:
    rgb: Tuple[int, int, int]

    @property
    def hex(self) -> str:
        r, g, b = self.rgb
        return f"#{r:02x}{g:02x}{b:02x}"

    @classmethod
    def from_hex(cls, value: str) -> "PaletteColor":
        s = value.strip().lstrip("#")
        if len(s) != 6:
            raise ValueError(f"Expected #rrggbb color, got {value!r}")
        return cls(rgb=(int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16)))


@dataclass
class Cell:
    palette_index: int
    is_colored: bool = False


@dataclass
class GenerationStats:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    model: str = ""


@dataclass
class PuzzleState:
    """Serializable description of one puzzle and its progress."""

    id: Optional[str] = None
    stage: str = STAGE_INPUT
    prompt: str = ""
    style: str = "cute"
    difficulty: str = "medium"
    grid_size: int = 32
    color_count: int = 10

    palette: List[PaletteColor] = field(default_factory=list)
    cells: List[Cell] = field(default_factory=list)
    active_color_index: int = 0
    completed_pixels: int = 0
    total_pixels: int = 0

    generation_stats: Optional[GenerationStats] = None
    timestamp: int = 0

    def palette_hex(self) -> List[str]:
        return [p.hex for p in self.palette]

    @property
    def is_complete(self) -> bool:
        return self.total_pixels > 0 and self.completed_pixels == self.total_pixels
