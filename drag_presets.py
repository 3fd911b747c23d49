"""
Drag Preset System
Scripted pointer gestures, one pointer position per tick. The first point
is always the grab point (handle center), so replaying a path through the
Drag Controller starts a real drag.
"""

import numpy as np


def _segment(p0, p1, ticks: int) -> np.ndarray:
    """Points from p0 (exclusive) to p1 (inclusive) over ``ticks`` steps."""
    ticks = max(1, int(ticks))
    t = np.linspace(0.0, 1.0, ticks + 1)[1:, None]
    return np.asarray(p0, dtype=float) + (np.asarray(p1, dtype=float) - np.asarray(p0, dtype=float)) * t


class DragPreset:
    """Each preset returns an (n, 2) array of canvas-space pointer positions."""

    @staticmethod
    def sweep(start, canvas_width: float, canvas_height: float, ticks: int = 60) -> np.ndarray:
        """Drag straight to the right edge: the whole chain is pushed right."""
        start = np.asarray(start, dtype=float)
        end = np.array([canvas_width, start[1]])
        return np.vstack([start[None, :], _segment(start, end, ticks)])

    @staticmethod
    def circle(start, canvas_width: float, canvas_height: float, ticks: int = 120) -> np.ndarray:
        """Approach a circle around the canvas center, then go round once."""
        start = np.asarray(start, dtype=float)
        cx, cy = canvas_width / 2, canvas_height / 2
        radius = 0.35 * min(canvas_width, canvas_height)
        approach_ticks = max(1, ticks // 6)
        angles = np.linspace(0.0, 2 * np.pi, max(2, ticks - approach_ticks))
        ring = np.column_stack([cx + radius * np.cos(angles), cy + radius * np.sin(angles)])
        approach = _segment(start, ring[0], approach_ticks)
        return np.vstack([start[None, :], approach, ring[1:]])

    @staticmethod
    def corner_flick(start, canvas_width: float, canvas_height: float, ticks: int = 45) -> np.ndarray:
        """Fast flick into the top-left corner, then slowly across to bottom-right."""
        start = np.asarray(start, dtype=float)
        flick_ticks = max(1, ticks // 4)
        top_left = np.array([0.0, 0.0])
        bottom_right = np.array([canvas_width, canvas_height])
        return np.vstack([
            start[None, :],
            _segment(start, top_left, flick_ticks),
            _segment(top_left, bottom_right, ticks - flick_ticks),
        ])


# Preset map (keys 1-3)
PRESETS = {
    "1": (DragPreset.sweep,        "sweep"),
    "2": (DragPreset.circle,       "circle"),
    "3": (DragPreset.corner_flick, "corner_flick"),
}

PRESETS_BY_NAME = {label: fn for fn, label in PRESETS.values()}
