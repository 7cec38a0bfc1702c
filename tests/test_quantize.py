from __future__ import annotations

from io import BytesIO
import unittest

import numpy as np
from PIL import Image

from core.errors import ImageDecodeError
from core.io import encode_data_uri
from core.quantize import (
    MIN_PALETTE_DISTANCE,
    bucket_samples,
    nearest_palette_indices,
    quantize_image,
    quantize_source,
    select_palette,
)


def _png_bytes(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _halves(size: int = 4) -> Image.Image:
    img = Image.new("RGB", (size, size), (0, 0, 255))
    for y in range(size):
        for x in range(size // 2):
            img.putpixel((x, y), (255, 0, 0))
    return img


class BucketTests(unittest.TestCase):
    def test_rounds_to_nearest_multiple_of_five(self) -> None:
        samples = np.array([[2, 3, 7], [8, 255, 253]], dtype=np.int32)
        keys = [rgb for rgb, _ in bucket_samples(samples)]
        self.assertIn((0, 5, 5), keys)
        self.assertIn((10, 255, 255), keys)

    def test_sorted_by_count_with_first_seen_ties(self) -> None:
        samples = np.array(
            [[100, 0, 0], [0, 100, 0], [0, 0, 100], [0, 0, 100]],
            dtype=np.int32,
        )
        ranked = bucket_samples(samples)
        self.assertEqual(ranked[0], ((0, 0, 100), 2))
        self.assertEqual([rgb for rgb, _ in ranked[1:]], [(100, 0, 0), (0, 100, 0)])


class SelectPaletteTests(unittest.TestCase):
    def test_skips_close_colors_when_enough_distinct(self) -> None:
        colors, relaxed = select_palette([(0, 0, 0), (10, 10, 10), (255, 0, 0)], 2)
        self.assertEqual(colors, [(0, 0, 0), (255, 0, 0)])
        self.assertEqual(relaxed, 0)

    def test_relaxed_fill_adds_close_colors(self) -> None:
        colors, relaxed = select_palette([(0, 0, 0), (10, 10, 10), (255, 0, 0)], 3)
        self.assertEqual(colors, [(0, 0, 0), (255, 0, 0), (10, 10, 10)])
        self.assertEqual(relaxed, 1)

    def test_fewer_candidates_than_requested(self) -> None:
        colors, relaxed = select_palette([(0, 0, 0), (200, 200, 200)], 5)
        self.assertEqual(len(colors), 2)
        self.assertEqual(relaxed, 0)

    def test_empty_candidates(self) -> None:
        self.assertEqual(select_palette([], 4), ([], 0))


class NearestIndexTests(unittest.TestCase):
    def test_ties_go_to_lowest_index(self) -> None:
        palette = np.array([[0, 0, 0], [10, 0, 0]], dtype=np.int32)
        samples = np.array([[5, 0, 0], [9, 0, 0], [1, 0, 0]], dtype=np.int32)
        self.assertEqual(nearest_palette_indices(samples, palette).tolist(), [0, 1, 0])


class QuantizeImageTests(unittest.TestCase):
    def test_two_color_image(self) -> None:
        result = quantize_image(_halves(), 4, 2)
        self.assertEqual([p.rgb for p in result.palette], [(255, 0, 0), (0, 0, 255)])
        expected = [0, 0, 1, 1] * 4
        self.assertEqual(result.indices.tolist(), expected)
        self.assertEqual(result.grid_size, 4)
        self.assertEqual(result.relaxed_count, 0)

    def test_indices_in_range_and_palette_distinct(self) -> None:
        rng = np.random.default_rng(7)
        arr = rng.integers(0, 256, size=(32, 32, 3), dtype=np.uint8)
        result = quantize_image(Image.fromarray(arr), 16, 6)

        self.assertLessEqual(len(result.palette), 6)
        self.assertEqual(result.indices.shape, (256,))
        self.assertTrue(int(result.indices.min()) >= 0)
        self.assertTrue(int(result.indices.max()) < len(result.palette))

        strict = [np.array(p.rgb, dtype=float) for p in result.palette[: len(result.palette) - result.relaxed_count]]
        for i in range(len(strict)):
            for j in range(i + 1, len(strict)):
                self.assertGreater(float(np.linalg.norm(strict[i] - strict[j])), MIN_PALETTE_DISTANCE)

    def test_single_color_image_gives_one_entry(self) -> None:
        result = quantize_image(Image.new("RGB", (10, 10), (12, 34, 56)), 5, 4)
        self.assertEqual([p.rgb for p in result.palette], [(10, 35, 55)])
        self.assertEqual(set(result.indices.tolist()), {0})

    def test_invalid_sizes(self) -> None:
        with self.assertRaises(ValueError):
            quantize_image(_halves(), 0, 2)
        with self.assertRaises(ValueError):
            quantize_image(_halves(), 4, 0)


class QuantizeSourceTests(unittest.TestCase):
    def test_png_bytes_and_data_uri(self) -> None:
        data = _png_bytes(_halves())
        from_bytes = quantize_source(data, 4, 2)
        from_uri = quantize_source(encode_data_uri(data), 4, 2)
        self.assertEqual(from_bytes.indices.tolist(), from_uri.indices.tolist())

    def test_alpha_is_dropped(self) -> None:
        img = Image.new("RGBA", (4, 4), (0, 200, 0, 0))
        result = quantize_source(_png_bytes(img), 2, 3)
        self.assertEqual([p.rgb for p in result.palette], [(0, 200, 0)])

    def test_malformed_bytes(self) -> None:
        with self.assertRaises(ImageDecodeError):
            quantize_source(b"not an image", 4, 2)

    def test_bad_data_uri(self) -> None:
        with self.assertRaises(ImageDecodeError):
            quantize_source("data:image/png;base64,@@@", 4, 2)


if __name__ == "__main__":
    unittest.main()
