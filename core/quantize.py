from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
from PIL import Image

from core.io import ImageSource, decode_image
from core.state import PaletteColor


logger = logging.getLogger(__name__)

BUCKET_STEP = 5
MIN_PALETTE_DISTANCE = 40.0


@dataclass
class QuantizeResult:
    palette: List[PaletteColor]
    indices: np.ndarray  # (G*G,) row-major palette indices
    grid_size: int
    relaxed_count: int = 0


def sample_grid(img: Image.Image, grid_size: int) -> np.ndarray:
    """Nearest-neighbor downsample to grid_size x grid_size, returned as (N, 3) int32."""
    small = img.convert("RGB").resize((grid_size, grid_size), resample=Image.Resampling.NEAREST)
    arr = np.asarray(small, dtype=np.uint8)
    return arr.reshape(-1, 3).astype(np.int32)


def bucket_samples(samples: np.ndarray, step: int = BUCKET_STEP) -> List[Tuple[Tuple[int, int, int], int]]:
    """
    Round every channel to the nearest multiple of `step` (halves round up) and
    count the buckets. Sorted by descending count; equal counts keep first-seen order.
    """
    rounded = np.floor(samples / float(step) + 0.5).astype(np.int32) * step
    counts: Dict[Tuple[int, int, int], int] = {}
    for r, g, b in rounded.tolist():
        key = (r, g, b)
        counts[key] = counts.get(key, 0) + 1
    # sorted() is stable, so insertion order breaks ties
    return sorted(counts.items(), key=lambda kv: -kv[1])


def _dist(a: Tuple[int, int, int], b: Tuple[int, int, int]) -> float:
    dr = a[0] - b[0]
    dg = a[1] - b[1]
    db = a[2] - b[2]
    return float(np.sqrt(dr * dr + dg * dg + db * db))


def select_palette(
    candidates: List[Tuple[int, int, int]],
    color_count: int,
    min_distance: float = MIN_PALETTE_DISTANCE,
) -> Tuple[List[Tuple[int, int, int]], int]:
    """
    Greedy distinct-color selection over frequency-ranked candidates.

    Returns (colors, relaxed_count) where relaxed_count is how many entries
    were added by the relaxed fill pass and may sit closer than min_distance.
    """
    picked: List[Tuple[int, int, int]] = []
    if not candidates or color_count <= 0:
        return picked, 0

    picked.append(candidates[0])
    for cand in candidates[1:]:
        if len(picked) >= color_count:
            break
        if all(_dist(cand, p) > min_distance for p in picked):
            picked.append(cand)

    strict = len(picked)
    if strict < color_count:
        chosen = set(picked)
        for cand in candidates[1:]:
            if len(picked) >= color_count:
                break
            if cand not in chosen:
                picked.append(cand)
                chosen.add(cand)

    return picked, len(picked) - strict


def nearest_palette_indices(samples: np.ndarray, palette_rgb: np.ndarray) -> np.ndarray:
    """Index of the closest palette entry for every sample. Ties go to the lowest index."""
    diff = samples[:, None, :].astype(np.int64) - palette_rgb[None, :, :].astype(np.int64)
    d2 = np.sum(diff * diff, axis=2)
    # argmin returns the first occurrence of the minimum
    return np.argmin(d2, axis=1).astype(np.int32)


def quantize_image(img: Image.Image, grid_size: int, color_count: int) -> QuantizeResult:
    if grid_size < 1:
        raise ValueError("grid_size must be >= 1")
    if color_count < 1:
        raise ValueError("color_count must be >= 1")

    samples = sample_grid(img, grid_size)
    ranked = bucket_samples(samples)
    colors, relaxed = select_palette([rgb for rgb, _ in ranked], color_count)

    palette_rgb = np.array(colors, dtype=np.int32).reshape(-1, 3)
    indices = nearest_palette_indices(samples, palette_rgb)

    logger.debug(
        "Quantized grid=%s requested=%s buckets=%s palette=%s relaxed=%s",
        grid_size,
        color_count,
        len(ranked),
        len(colors),
        relaxed,
    )
    return QuantizeResult(
        palette=[PaletteColor(rgb=(int(r), int(g), int(b))) for r, g, b in colors],
        indices=indices,
        grid_size=grid_size,
        relaxed_count=relaxed,
    )


def quantize_source(source: ImageSource, grid_size: int, color_count: int) -> QuantizeResult:
    """Decode then quantize. Raises ImageDecodeError for malformed input."""
    return quantize_image(decode_image(source), grid_size, color_count)
