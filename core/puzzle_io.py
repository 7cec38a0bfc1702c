from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from core.state import (
    DIFFICULTIES,
    STAGE_COMPLETE,
    STAGE_PLAYING,
    Cell,
    GenerationStats,
    PaletteColor,
    PuzzleState,
)


logger = logging.getLogger(__name__)

STORE_VERSION = 1


def _palette_from_raw(raw_palette: list) -> List[PaletteColor]:
    palette: List[PaletteColor] = []
    for item in raw_palette:
        if isinstance(item, str):
            palette.append(PaletteColor.from_hex(item))
            continue
        if isinstance(item, dict):
            rgb = item.get("rgb", [0, 0, 0])
            if isinstance(rgb, list) and len(rgb) == 3:
                palette.append(PaletteColor(rgb=(int(rgb[0]), int(rgb[1]), int(rgb[2]))))
    return palette


def _cell_from_raw(raw: dict) -> Cell:
    # older records use camelCase keys
    idx = raw.get("palette_index", raw.get("colorIndex", 0))
    colored = raw.get("is_colored", raw.get("isColored", False))
    return Cell(palette_index=int(idx), is_colored=bool(colored))


def _stats_to_raw(stats: Optional[GenerationStats]) -> Optional[dict]:
    if stats is None:
        return None
    return {
        "input_tokens": stats.input_tokens,
        "output_tokens": stats.output_tokens,
        "total_tokens": stats.total_tokens,
        "model": stats.model,
    }


def _stats_from_raw(raw) -> Optional[GenerationStats]:
    if not isinstance(raw, dict):
        return None
    return GenerationStats(
        input_tokens=int(raw.get("input_tokens", raw.get("inputTokens", 0)) or 0),
        output_tokens=int(raw.get("output_tokens", raw.get("outputTokens", 0)) or 0),
        total_tokens=int(raw.get("total_tokens", raw.get("totalTokens", 0)) or 0),
        model=str(raw.get("model", "")),
    )


def serialize_puzzle(state: PuzzleState) -> dict:
    return {
        "id": state.id,
        "timestamp": int(state.timestamp),
        "prompt": state.prompt,
        "style": state.style,
        "difficulty": state.difficulty,
        "grid_size": int(state.grid_size),
        "color_count": int(state.color_count),
        "palette": [p.hex for p in state.palette],
        "cells": [{"palette_index": c.palette_index, "is_colored": bool(c.is_colored)} for c in state.cells],
        "active_color_index": int(state.active_color_index),
        "completed_pixels": int(state.completed_pixels),
        "total_pixels": int(state.total_pixels),
        "generation_stats": _stats_to_raw(state.generation_stats),
    }


def deserialize_puzzle(raw: dict) -> PuzzleState:
    """Build a PuzzleState from a stored record; missing fields take defaults."""
    cells_raw = raw.get("cells", raw.get("grid", []))
    cells = [_cell_from_raw(c) for c in cells_raw if isinstance(c, dict)]
    grid_size = int(raw.get("grid_size", raw.get("gridSize", 0)) or 0)
    if grid_size <= 0:
        grid_size = int(round(len(cells) ** 0.5)) if cells else 32

    completed = sum(1 for c in cells if c.is_colored)
    total = len(cells)

    difficulty = str(raw.get("difficulty", "medium")).lower()
    if difficulty not in DIFFICULTIES:
        difficulty = "medium"

    state = PuzzleState(
        id=None if raw.get("id") is None else str(raw.get("id")),
        prompt=str(raw.get("prompt", "")),
        style=str(raw.get("style", "cute")),
        difficulty=difficulty,
        grid_size=grid_size,
        color_count=int(raw.get("color_count", raw.get("colorCount", 10))),
        palette=_palette_from_raw(raw.get("palette", [])),
        cells=cells,
        active_color_index=int(raw.get("active_color_index", raw.get("activeColorIndex", 0))),
        completed_pixels=completed,
        total_pixels=total,
        generation_stats=_stats_from_raw(raw.get("generation_stats", raw.get("generationStats"))),
        timestamp=int(raw.get("timestamp", 0)),
    )
    state.stage = STAGE_COMPLETE if state.is_complete else STAGE_PLAYING
    return state


class PuzzleStore:
    """Saved puzzles kept in a single JSON file, keyed by puzzle id."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_raw(self) -> List[dict]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Failed to load saved puzzles from %s: %s", self.path, e)
            return []
        items = raw.get("puzzles", []) if isinstance(raw, dict) else raw
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    def _write_raw(self, items: List[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": STORE_VERSION, "puzzles": items}
        self.path.write_text(json.dumps(payload), encoding="utf-8")

    def list(self) -> List[PuzzleState]:
        """Newest first."""
        states = []
        for item in self._read_raw():
            try:
                states.append(deserialize_puzzle(item))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable saved puzzle %r: %s", item.get("id"), e)
        states.sort(key=lambda s: s.timestamp, reverse=True)
        return states

    def get(self, puzzle_id: str) -> Optional[PuzzleState]:
        for state in self.list():
            if state.id == puzzle_id:
                return state
        return None

    def put(self, state: PuzzleState) -> PuzzleState:
        if not state.id:
            state.id = str(int(time.time() * 1000))
        if not state.timestamp:
            state.timestamp = int(time.time() * 1000)
        items = [item for item in self._read_raw() if str(item.get("id")) != state.id]
        items.append(serialize_puzzle(state))
        items.sort(key=lambda r: int(r.get("timestamp", 0)), reverse=True)
        self._write_raw(items)
        logger.debug("Saved puzzle %s (%s/%s)", state.id, state.completed_pixels, state.total_pixels)
        return state

    def delete(self, puzzle_id: str) -> bool:
        items = self._read_raw()
        kept = [item for item in items if str(item.get("id")) != puzzle_id]
        if len(kept) == len(items):
            return False
        self._write_raw(kept)
        return True
