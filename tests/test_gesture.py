from __future__ import annotations

import unittest

from core.gesture import (
    MAX_ZOOM,
    MIN_ZOOM,
    MODE_MOVE,
    MODE_PAINT,
    MODE_REVERT_MS,
    STATE_IDLE,
    STATE_MULTI,
    STATE_SINGLE,
    GestureEngine,
    Viewport,
    brush_indices,
    content_to_screen,
    interpolate,
    screen_to_content,
)


class FakeTimer:
    def __init__(self) -> None:
        self.interval = None
        self.callback = None

    def start(self, interval_ms, callback) -> None:
        self.interval = interval_ms
        self.callback = callback

    def cancel(self) -> None:
        self.callback = None

    @property
    def is_active(self) -> bool:
        return self.callback is not None

    def fire(self) -> None:
        cb, self.callback = self.callback, None
        cb()


def _engine(difficulty: str = "medium", **kwargs) -> GestureEngine:
    # 10x10 grid in a 100x100 viewport: one cell is 10px at zoom 1
    engine = GestureEngine(grid_size=10, difficulty=difficulty, **kwargs)
    engine.set_viewport_size(100, 100)
    return engine


class TransformTests(unittest.TestCase):
    def test_identity_at_zoom_one(self) -> None:
        self.assertEqual(screen_to_content(30, 70, 100, 100, Viewport()), (30, 70))

    def test_zoom_about_center(self) -> None:
        vp = Viewport(zoom=2.0, pan_x=10.0, pan_y=0.0)
        x, y = screen_to_content(70, 50, 100, 100, vp)
        self.assertAlmostEqual(x, 55.0)
        self.assertAlmostEqual(y, 50.0)
        sx, sy = content_to_screen(x, y, 100, 100, vp)
        self.assertAlmostEqual(sx, 70.0)
        self.assertAlmostEqual(sy, 50.0)

    def test_origin_plus_zoom_matches_point_mapping(self) -> None:
        # the canvas paints with translate(origin) then scale(zoom)
        vp = Viewport(zoom=1.5, pan_x=-8.0, pan_y=4.0)
        ox, oy = content_to_screen(0, 0, 200, 100, vp)
        for x, y in ((0, 0), (50, 0), (120, 90), (200, 100)):
            sx, sy = content_to_screen(x, y, 200, 100, vp)
            self.assertAlmostEqual(sx, ox + x * vp.zoom)
            self.assertAlmostEqual(sy, oy + y * vp.zoom)

    def test_interpolate_spacing(self) -> None:
        self.assertEqual(interpolate((0, 0), (10, 0), 5), [(5.0, 0.0), (10.0, 0.0)])
        self.assertEqual(len(interpolate((0, 0), (12, 0), 5)), 3)
        self.assertEqual(interpolate((3, 3), (3, 3), 5), [(3, 3)])


class BrushTests(unittest.TestCase):
    def test_medium_radius_covers_neighbors(self) -> None:
        hit = brush_indices(55, 55, 100, 100, 10, Viewport(), 12.0)
        self.assertEqual(hit, [45, 54, 55, 56, 65])

    def test_fallback_single_cell_at_max_zoom(self) -> None:
        vp = Viewport(zoom=MAX_ZOOM)
        hit = brush_indices(52, 53, 100, 100, 10, vp, 4.0)
        self.assertEqual(hit, [55])

    def test_outside_grid(self) -> None:
        self.assertEqual(brush_indices(-50, -50, 100, 100, 10, Viewport(), 4.0), [])

    def test_non_square_viewport_centers_content(self) -> None:
        # 200x100: content is the 100px square from x=50 to x=150
        self.assertEqual(brush_indices(55, 5, 200, 100, 10, Viewport(), 4.0), [0])
        self.assertEqual(brush_indices(20, 5, 200, 100, 10, Viewport(), 4.0), [])

    def test_zero_viewport(self) -> None:
        self.assertEqual(brush_indices(0, 0, 0, 0, 10, Viewport(), 12.0), [])


class GestureEngineTests(unittest.TestCase):
    def test_single_pointer_paints(self) -> None:
        engine = _engine()
        self.assertEqual(engine.pointer_down(1, 55, 55), [45, 54, 55, 56, 65])
        self.assertEqual(engine.state, STATE_SINGLE)

    def test_drag_is_interpolated(self) -> None:
        engine = _engine("hard")
        self.assertEqual(engine.pointer_down(1, 5, 55), [50])
        self.assertEqual(engine.pointer_move(1, 85, 55), list(range(51, 59)))

    def test_hard_brush_at_max_zoom_hits_one_cell(self) -> None:
        engine = _engine("hard")
        engine.zoom_by(MAX_ZOOM)
        self.assertEqual(engine.pointer_down(1, 52, 53), [55])

    def test_stroke_callbacks(self) -> None:
        calls = []
        engine = _engine(
            on_stroke_begin=lambda: calls.append("begin"),
            on_stroke_end=lambda: calls.append("end"),
        )
        engine.pointer_down(1, 10, 10)
        engine.pointer_down(2, 90, 90)
        engine.pointer_up(2)
        engine.pointer_up(1)
        self.assertEqual(calls, ["begin", "end"])

    def test_pinch_zoom_respects_deadzone_but_pan_does_not(self) -> None:
        engine = _engine()
        engine.pointer_down(1, 40, 50)
        engine.pointer_down(2, 60, 50)
        self.assertEqual(engine.state, STATE_MULTI)

        self.assertEqual(engine.pointer_move(2, 65, 50), [])
        self.assertEqual(engine.viewport.zoom, 1.0)
        self.assertAlmostEqual(engine.viewport.pan_x, 2.5)

        engine.pointer_move(2, 80, 50)
        self.assertAlmostEqual(engine.viewport.zoom, 1.075)
        self.assertAlmostEqual(engine.viewport.pan_x, 10.0)

    def test_remaining_pointer_becomes_anchor(self) -> None:
        engine = _engine()
        engine.set_mode(MODE_MOVE)
        engine.pointer_down(1, 40, 50)
        engine.pointer_down(2, 60, 50)
        engine.pointer_move(2, 90, 50)
        engine.pointer_up(2)
        pan_before = engine.viewport.pan_x
        engine.pointer_move(1, 43, 50)
        self.assertAlmostEqual(engine.viewport.pan_x, pan_before + 3.0)

    def test_move_mode_pans_instead_of_painting(self) -> None:
        engine = _engine()
        engine.set_mode(MODE_MOVE)
        self.assertEqual(engine.pointer_down(1, 50, 50), [])
        self.assertEqual(engine.pointer_move(1, 60, 45), [])
        self.assertEqual((engine.viewport.pan_x, engine.viewport.pan_y), (10.0, -5.0))

    def test_idle_timer_reverts_to_paint(self) -> None:
        timer = FakeTimer()
        modes = []
        engine = _engine(timer=timer, on_mode_changed=modes.append)
        engine.set_mode(MODE_MOVE)
        engine.pointer_down(1, 50, 50)
        self.assertFalse(timer.is_active)
        engine.pointer_up(1)
        self.assertTrue(timer.is_active)
        self.assertEqual(timer.interval, MODE_REVERT_MS)
        timer.fire()
        self.assertEqual(engine.mode, MODE_PAINT)
        self.assertEqual(modes, [MODE_MOVE, MODE_PAINT])

    def test_teardown_cancels_timer(self) -> None:
        timer = FakeTimer()
        engine = _engine(timer=timer)
        engine.set_mode(MODE_MOVE)
        engine.teardown()
        self.assertFalse(timer.is_active)

    def test_untracked_pointer_is_ignored(self) -> None:
        engine = _engine()
        self.assertEqual(engine.pointer_move(7, 50, 50), [])
        engine.pointer_up(7)
        self.assertEqual(engine.state, STATE_IDLE)

    def test_third_pointer_moves_are_ignored(self) -> None:
        engine = _engine()
        engine.pointer_down(1, 10, 10)
        engine.pointer_down(2, 20, 20)
        engine.pointer_down(3, 30, 30)
        self.assertEqual(engine.pointer_move(3, 80, 80), [])
        self.assertEqual((engine.viewport.zoom, engine.viewport.pan_x), (1.0, 0.0))

    def test_zero_viewport_is_noop(self) -> None:
        engine = _engine()
        engine.set_viewport_size(0, 0)
        self.assertEqual(engine.pointer_down(1, 0, 0), [])
        self.assertEqual(engine.pointer_move(1, 5, 5), [])

    def test_zoom_clamp_and_pan_reset(self) -> None:
        engine = _engine()
        self.assertEqual(engine.zoom_by(100), MAX_ZOOM)
        engine.pan_by(20, 20)
        self.assertEqual(engine.zoom_by(-100), MIN_ZOOM)
        self.assertEqual((engine.viewport.pan_x, engine.viewport.pan_y), (0.0, 0.0))

    def test_ctrl_wheel_zooms(self) -> None:
        engine = _engine()
        self.assertFalse(engine.wheel(-100, False))
        self.assertTrue(engine.wheel(-100, True))
        self.assertAlmostEqual(engine.viewport.zoom, 2.0)

    def test_cancel_drops_all_pointers(self) -> None:
        calls = []
        engine = _engine(on_stroke_end=lambda: calls.append("end"))
        engine.pointer_down(1, 10, 10)
        engine.pointer_down(2, 20, 20)
        engine.pointer_cancel()
        self.assertEqual(engine.state, STATE_IDLE)
        self.assertEqual(calls, ["end"])

    def test_new_grid_resets_view(self) -> None:
        engine = _engine()
        engine.zoom_by(2)
        engine.pan_by(5, 5)
        engine.pointer_down(1, 50, 50)
        engine.set_grid_size(20)
        self.assertEqual(engine.pointer_count, 0)
        self.assertEqual(engine.viewport, Viewport())


if __name__ == "__main__":
    unittest.main()
