"""
Frame Store: ordered frame sequence (outermost first, handle last).

The sequence is always rebuilt wholesale from canvas size and shape
parameters; single frames are never added or removed.
"""

import logging
import math

import numpy as np

from physics import Frame, PhysicsConfig

logger = logging.getLogger("framepusher.frame_store")


def frame_step(config: PhysicsConfig) -> float:
    """Size lost per nesting level: one gap and one border on each side."""
    return 2.0 * (config.gap + config.frame_thickness)


def max_frame_count(canvas_width: float, canvas_height: float,
                    config: PhysicsConfig) -> int:
    """Largest frame count whose deepest parent still holds the handle.

    Returns ``config.num_frames`` unchanged when the step is not positive
    (sizes would never shrink).
    """
    step = frame_step(config)
    if step <= 0:
        return max(1, config.num_frames)
    room = min(canvas_width, canvas_height) - config.handle_size - 2.0 * config.frame_thickness
    return max(1, math.floor(room / step) + 2)


def build_frames(canvas_width: float, canvas_height: float,
                 config: PhysicsConfig) -> list:
    """Build a centered nested sequence for the given canvas."""
    count = max(1, min(config.num_frames, max_frame_count(canvas_width, canvas_height, config)))
    step = frame_step(config)

    widths = canvas_width - np.arange(count, dtype=float) * step
    heights = canvas_height - np.arange(count, dtype=float) * step
    widths[-1] = heights[-1] = config.handle_size

    frames = []
    for w, h in zip(widths, heights):
        w, h = float(w), float(h)
        frames.append(Frame(x=(canvas_width - w) / 2, y=(canvas_height - h) / 2,
                            width=w, height=h))
    return frames


class FrameStore:
    """Owns the frame list. Engines get ``frames`` as a mutable view."""

    def __init__(self, canvas_width: float, canvas_height: float,
                 config: PhysicsConfig | None = None):
        self.canvas_width = float(canvas_width)
        self.canvas_height = float(canvas_height)
        self.frames: list[Frame] = []
        self.rebuild(canvas_width, canvas_height, config or PhysicsConfig())

    def rebuild(self, canvas_width: float, canvas_height: float,
                config: PhysicsConfig) -> list:
        """Replace the whole sequence atomically and return it."""
        limit = max_frame_count(canvas_width, canvas_height, config)
        if config.num_frames > limit:
            logger.warning("[CFG] num_frames=%d does not fit %.0fx%.0f canvas, using %d",
                           config.num_frames, canvas_width, canvas_height, limit)
        frames = build_frames(canvas_width, canvas_height, config)
        self.canvas_width = float(canvas_width)
        self.canvas_height = float(canvas_height)
        self.frames = frames
        logger.debug("[CFG] rebuilt %d frames", len(self.frames))
        return self.frames

    @property
    def handle(self) -> Frame:
        return self.frames[-1]

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self):
        return iter(self.frames)

    def __getitem__(self, index):
        return self.frames[index]

    def snapshot(self) -> list:
        """Plain-dict copy of every frame for renderers."""
        return [f.as_dict() for f in self.frames]

    def copy_frames(self) -> list:
        return [f.copy() for f in self.frames]
