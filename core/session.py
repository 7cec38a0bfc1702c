from __future__ import annotations

import logging
import random
import time
from typing import Callable, Iterable, List, Optional

from core.cycle import advance_active_color
from core.errors import GenerationError, PuzzleError
from core.gesture import Timer
from core.grid import GridSnapshot, PuzzleGrid
from core.history import StrokeHistory
from core.io import ImageSource
from core.learning import CategoryLearning
from core.puzzle_io import PuzzleStore
from core.quantize import QuantizeResult, quantize_source
from core.state import (
    STAGE_COMPLETE,
    STAGE_INPUT,
    STAGE_PLAYING,
    STAGE_PREVIEW,
    STAGE_PROCESSING,
    GenerationStats,
    PuzzleState,
)


logger = logging.getLogger(__name__)

Listener = Callable[[str], None]

EVENT_CHANGED = "changed"
EVENT_STAGE = "stage"
EVENT_COMPLETE = "complete"
EVENT_HINT = "hint"
EVENT_ERROR = "error"

COOLDOWN_MS = 10000
HINT_MS = 3000
PROCESSING_ERROR_MESSAGE = "Error creating your puzzle."


class PuzzleSession:
    """
    Owned state for the puzzle being generated or played.

    All mutations go through methods on this object; observers subscribe
    and get an event name after each change.
    """

    def __init__(
        self,
        grid_size: int = 32,
        color_count: int = 10,
        style: str = "cute",
        difficulty: str = "medium",
        cooldown_ms: int = COOLDOWN_MS,
        hint_ms: int = HINT_MS,
        hint_timer: Optional[Timer] = None,
        history_limit: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        learning: Optional[CategoryLearning] = None,
    ):
        self.stage = STAGE_INPUT
        self.puzzle_id: Optional[str] = None
        self.prompt = ""
        self.style = style
        self.difficulty = difficulty
        self.grid_size = int(grid_size)
        self.color_count = int(color_count)
        self.preview_image: Optional[ImageSource] = None
        self.generation_stats: Optional[GenerationStats] = None
        self.error: Optional[str] = None

        self.grid: Optional[PuzzleGrid] = None
        self.active_color_index = 0
        self.hint_index: Optional[int] = None
        self.history = StrokeHistory(limit=history_limit)
        self.learning = learning

        self._cooldown_ms = int(cooldown_ms)
        self._cooldown_until = 0.0
        self._hint_ms = int(hint_ms)
        self._hint_timer = hint_timer
        self._clock = clock
        self._rng = rng or random.Random()
        self._listeners: List[Listener] = []
        self._ticket = 0
        self._completion_fired = False

    # ---------------------------
    # Observers
    # ---------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _set_stage(self, stage: str) -> None:
        if stage == self.stage:
            return
        logger.debug("Stage %s -> %s", self.stage, stage)
        self.stage = stage
        self._emit(EVENT_STAGE)

    # ---------------------------
    # Read-only views
    # ---------------------------
    @property
    def completed_pixels(self) -> int:
        return self.grid.completed if self.grid is not None else 0

    @property
    def total_pixels(self) -> int:
        return self.grid.total if self.grid is not None else 0

    @property
    def palette(self):
        return self.grid.palette if self.grid is not None else []

    def cooldown_remaining_ms(self) -> int:
        return max(0, int(round((self._cooldown_until - self._clock()) * 1000.0)))

    # ---------------------------
    # Image generation (provider runs elsewhere)
    # ---------------------------
    def begin_generation(self, prompt: str) -> Optional[int]:
        """
        Start a provider request for `prompt`. Returns a ticket, or None when
        the prompt is blank or the cooldown is still running.
        """
        prompt = (prompt or "").strip()
        if not prompt or self.cooldown_remaining_ms() > 0:
            return None
        self.prompt = prompt
        self.preview_image = None
        self.error = None
        self._cooldown_until = self._clock() + self._cooldown_ms / 1000.0
        self._ticket += 1
        logger.debug("Generation requested ticket=%s prompt=%r style=%s", self._ticket, prompt, self.style)
        self._emit(EVENT_CHANGED)
        return self._ticket

    def finish_generation(self, ticket: int, image: ImageSource, stats: Optional[GenerationStats] = None) -> bool:
        if ticket != self._ticket:
            logger.warning("Discarding stale generation result ticket=%s current=%s", ticket, self._ticket)
            return False
        self.preview_image = image
        self.generation_stats = stats
        self._set_stage(STAGE_PREVIEW)
        self._emit(EVENT_CHANGED)
        return True

    def fail_generation(self, ticket: int, error: GenerationError) -> bool:
        if ticket != self._ticket:
            return False
        self.error = str(error)
        logger.info("Generation failed category=%s: %s", error.category.value, error)
        self._emit(EVENT_ERROR)
        return True

    # ---------------------------
    # Quantization
    # ---------------------------
    def begin_processing(self) -> Optional[int]:
        """Confirm the preview. Returns a ticket; older unfinished tickets become stale."""
        if self.preview_image is None:
            return None
        self._ticket += 1
        self.error = None
        self._set_stage(STAGE_PROCESSING)
        return self._ticket

    def finish_processing(self, ticket: int, result: QuantizeResult) -> bool:
        if ticket != self._ticket:
            logger.warning("Discarding stale quantization result ticket=%s current=%s", ticket, self._ticket)
            return False
        self._install_grid(PuzzleGrid(result.palette, result.indices, result.grid_size))
        self.puzzle_id = str(int(time.time() * 1000))
        self._set_stage(STAGE_PLAYING)
        self._emit(EVENT_CHANGED)
        return True

    def fail_processing(self, ticket: int, error: Exception) -> bool:
        if ticket != self._ticket:
            return False
        logger.warning("Quantization failed: %s", error)
        self.error = PROCESSING_ERROR_MESSAGE
        # preview_image is kept so the user can retry
        self._set_stage(STAGE_PREVIEW)
        self._emit(EVENT_ERROR)
        return True

    def process_preview(self) -> bool:
        """Quantize the preview synchronously. Returns False on failure."""
        ticket = self.begin_processing()
        if ticket is None:
            return False
        try:
            result = quantize_source(self.preview_image, self.grid_size, self.color_count)
        except (PuzzleError, ValueError) as e:
            self.fail_processing(ticket, e)
            return False
        return self.finish_processing(ticket, result)

    def cancel_pending(self) -> None:
        """Invalidate any in-flight generation or quantization."""
        self._ticket += 1
        if self.stage == STAGE_PROCESSING:
            self._set_stage(STAGE_PREVIEW)

    def _install_grid(self, grid: PuzzleGrid) -> None:
        self.grid = grid
        self.active_color_index = 0
        self.history.clear()
        self._completion_fired = grid.is_complete
        self.clear_hint()

    # ---------------------------
    # Painting
    # ---------------------------
    def begin_stroke(self) -> None:
        self.history.begin_stroke()

    def end_stroke(self) -> None:
        self.history.end_stroke()

    def paint(self, indices: Iterable[int]) -> int:
        """Apply a batch of candidate cells with the active color. Returns cells newly colored."""
        if self.stage != STAGE_PLAYING or self.grid is None:
            return 0
        before = self.grid.snapshot(self.active_color_index)
        added = self.grid.paint(indices, self.active_color_index)
        if added == 0:
            return 0

        self.history.record(before)
        self.clear_hint()
        self.active_color_index = advance_active_color(self.grid, self.active_color_index)
        if self.grid.is_complete:
            self._set_stage(STAGE_COMPLETE)
            if not self._completion_fired:
                self._completion_fired = True
                logger.info("Puzzle %s complete (%s cells)", self.puzzle_id, self.grid.total)
                self._emit(EVENT_COMPLETE)
        self._emit(EVENT_CHANGED)
        return added

    def select_color(self, index: int) -> bool:
        if self.grid is None or not (0 <= index < len(self.grid.palette)):
            return False
        if index == self.active_color_index:
            return False
        self.active_color_index = int(index)
        self._emit(EVENT_CHANGED)
        return True

    # ---------------------------
    # Undo / redo
    # ---------------------------
    def _current_snapshot(self) -> GridSnapshot:
        return self.grid.snapshot(self.active_color_index)

    def undo(self) -> bool:
        if self.grid is None or self.stage != STAGE_PLAYING:
            return False
        snap = self.history.undo(self._current_snapshot())
        if snap is None:
            return False
        self.active_color_index = self.grid.restore(snap)
        self._emit(EVENT_CHANGED)
        return True

    def redo(self) -> bool:
        if self.grid is None or self.stage != STAGE_PLAYING:
            return False
        snap = self.history.redo(self._current_snapshot())
        if snap is None:
            return False
        self.active_color_index = self.grid.restore(snap)
        self._emit(EVENT_CHANGED)
        return True

    # ---------------------------
    # Hints
    # ---------------------------
    def hint(self) -> Optional[int]:
        if self.stage != STAGE_PLAYING or self.grid is None:
            return None
        candidates = self.grid.uncolored_indices(self.active_color_index)
        if not candidates:
            return None
        self.hint_index = self._rng.choice(candidates)
        if self._hint_timer is not None:
            self._hint_timer.cancel()
            self._hint_timer.start(self._hint_ms, self.clear_hint)
        self._emit(EVENT_HINT)
        return self.hint_index

    def clear_hint(self) -> None:
        if self._hint_timer is not None and self._hint_timer.is_active:
            self._hint_timer.cancel()
        if self.hint_index is None:
            return
        self.hint_index = None
        self._emit(EVENT_HINT)

    # ---------------------------
    # Lifecycle
    # ---------------------------
    def restart(self) -> None:
        if self.grid is None:
            return
        self.grid.reset_progress()
        self.active_color_index = 0
        self.history.clear()
        self.clear_hint()
        self._completion_fired = False
        self._set_stage(STAGE_PLAYING)
        self._emit(EVENT_CHANGED)

    def discard(self, feedback: Optional[str] = None, weight: int = 1) -> None:
        """Drop the preview and go back to prompt entry, noting why if the user said."""
        if feedback is not None and self.learning is not None:
            self.learning.record_feedback(feedback, weight)
        self.cancel_pending()
        self.preview_image = None
        self._set_stage(STAGE_INPUT)
        self._emit(EVENT_CHANGED)

    def reset(self) -> None:
        """Forget the puzzle entirely; style and difficulty are kept."""
        self.cancel_pending()
        self.puzzle_id = None
        self.prompt = ""
        self.preview_image = None
        self.generation_stats = None
        self.error = None
        self.grid = None
        self.active_color_index = 0
        self.history.clear()
        self.clear_hint()
        self._completion_fired = False
        self._set_stage(STAGE_INPUT)
        self._emit(EVENT_CHANGED)

    def teardown(self) -> None:
        if self._hint_timer is not None:
            self._hint_timer.cancel()
        self._listeners.clear()

    # ---------------------------
    # Persistence bridge
    # ---------------------------
    def to_state(self) -> PuzzleState:
        return PuzzleState(
            id=self.puzzle_id,
            stage=self.stage,
            prompt=self.prompt,
            style=self.style,
            difficulty=self.difficulty,
            grid_size=self.grid.grid_size if self.grid is not None else self.grid_size,
            color_count=self.color_count,
            palette=list(self.palette),
            cells=self.grid.cells() if self.grid is not None else [],
            active_color_index=self.active_color_index,
            completed_pixels=self.completed_pixels,
            total_pixels=self.total_pixels,
            generation_stats=self.generation_stats,
            timestamp=int(time.time() * 1000),
        )

    def load_state(self, state: PuzzleState) -> None:
        """Resume a saved puzzle. History starts empty."""
        self.cancel_pending()
        grid = PuzzleGrid.from_cells(state.palette, state.cells, state.grid_size)
        self.puzzle_id = state.id
        self.prompt = state.prompt
        self.style = state.style
        self.difficulty = state.difficulty
        self.grid_size = grid.grid_size
        self.color_count = state.color_count
        self.preview_image = None
        self.generation_stats = state.generation_stats
        self.error = None
        self._install_grid(grid)
        n = len(grid.palette)
        self.active_color_index = min(max(0, int(state.active_color_index)), max(0, n - 1))
        self._set_stage(STAGE_COMPLETE if grid.is_complete else STAGE_PLAYING)
        self._emit(EVENT_CHANGED)

    def save_to_store(self, store: PuzzleStore) -> Optional[PuzzleState]:
        """Write the current puzzle to the gallery; the store assigns an id on first save."""
        if self.grid is None:
            return None
        state = store.put(self.to_state())
        self.puzzle_id = state.id
        if self.learning is not None:
            self.learning.record_save()
        return state

    def load_from_store(self, store: PuzzleStore, puzzle_id: str) -> bool:
        state = store.get(puzzle_id)
        if state is None:
            logger.warning("No saved puzzle with id %s", puzzle_id)
            return False
        self.load_state(state)
        return True

    def save_preview_to_store(self, store: PuzzleStore) -> Optional[PuzzleState]:
        """
        Quantize the preview and store it as an unstarted puzzle without
        leaving the preview stage. Returns None when there is no preview or
        the image cannot be processed.
        """
        if self.preview_image is None:
            return None
        try:
            result = quantize_source(self.preview_image, self.grid_size, self.color_count)
        except (PuzzleError, ValueError) as e:
            logger.warning("Could not save preview: %s", e)
            self.error = PROCESSING_ERROR_MESSAGE
            self._emit(EVENT_ERROR)
            return None
        grid = PuzzleGrid(result.palette, result.indices, result.grid_size)
        state = PuzzleState(
            stage=STAGE_PLAYING,
            prompt=self.prompt,
            style=self.style,
            difficulty=self.difficulty,
            grid_size=grid.grid_size,
            color_count=self.color_count,
            palette=list(grid.palette),
            cells=grid.cells(),
            active_color_index=0,
            completed_pixels=0,
            total_pixels=grid.total,
            generation_stats=self.generation_stats,
        )
        state = store.put(state)
        if self.learning is not None:
            self.learning.record_save()
        return state
