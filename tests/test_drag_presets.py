"""
Drag Preset Tests: scripted pointer paths start on the grab point and stay sane.
"""

import sys
import os
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from drag_presets import DragPreset, PRESETS, PRESETS_BY_NAME

START = (300.0, 300.0)


class TestPresetPaths:

    @pytest.mark.parametrize("key", sorted(PRESETS))
    def test_first_point_is_start(self, key):
        fn, _label = PRESETS[key]
        path = fn(START, 600, 600)
        assert path.ndim == 2 and path.shape[1] == 2
        np.testing.assert_array_equal(path[0], START)

    def test_sweep_ends_at_right_edge(self):
        path = DragPreset.sweep(START, 600, 600, ticks=60)
        assert len(path) == 61
        np.testing.assert_allclose(path[-1], [600.0, 300.0])
        assert np.all(np.diff(path[:, 0]) > 0)

    def test_circle_radius(self):
        path = DragPreset.circle(START, 600, 600, ticks=120)
        ring = path[1 + 120 // 6:]
        radii = np.hypot(ring[:, 0] - 300.0, ring[:, 1] - 300.0)
        np.testing.assert_allclose(radii, 0.35 * 600)

    def test_corner_flick_visits_both_corners(self):
        path = DragPreset.corner_flick(START, 600, 400, ticks=45)
        assert any(np.allclose(p, [0.0, 0.0]) for p in path)
        np.testing.assert_allclose(path[-1], [600.0, 400.0])


class TestPresetRegistry:

    def test_keys_and_names(self):
        assert sorted(PRESETS) == ["1", "2", "3"]
        assert set(PRESETS_BY_NAME) == {"sweep", "circle", "corner_flick"}
        assert PRESETS_BY_NAME["sweep"] is DragPreset.sweep
