"""
Nested Frame Physics Engine
Containment (drag mode) and spring settling (release mode) for a chain
of concentric rectangular frames.
"""

import math
from dataclasses import dataclass, fields, replace
from typing import List, Optional, Sequence

# ──────────────────────────────────────────────
# Defaults (canvas pixels, per-tick units)
# ──────────────────────────────────────────────
FRAME_THICKNESS: float = 20.0   # border width each frame reserves inside itself
GAP: float = 10.0               # spacing between nested frames at creation
HANDLE_SIZE: float = 40.0       # innermost (draggable) frame edge length
NUM_FRAMES: int = 10            # requested frame count, handle included

DAMPING: float = 0.9            # velocity decay per tick while settling
SPRING_STRENGTH: float = 0.2    # boundary spring coefficient
REACTION_FACTOR: float = 0.5    # share of the spring impulse pushed back onto the parent


@dataclass
class Frame:
    """One link of the nested chain. Only x, y, vx, vy change at runtime."""
    x: float
    y: float
    width: float
    height: float
    vx: float = 0.0
    vy: float = 0.0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains_point(self, px: float, py: float) -> bool:
        return self.x < px < self.right and self.y < py < self.bottom

    def copy(self) -> "Frame":
        return Frame(self.x, self.y, self.width, self.height, self.vx, self.vy)

    def as_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width,
                "height": self.height, "vx": self.vx, "vy": self.vy}


@dataclass(frozen=True)
class Bounds:
    """Allowed top-left range of a frame inside its parent."""
    min_x: float
    max_x: float
    min_y: float
    max_y: float


@dataclass(frozen=True)
class PhysicsConfig:
    """Tunable parameters, owned by the controller and passed into engines."""
    frame_thickness: float = FRAME_THICKNESS
    gap: float = GAP
    handle_size: float = HANDLE_SIZE
    num_frames: int = NUM_FRAMES
    damping: float = DAMPING
    spring_strength: float = SPRING_STRENGTH
    settle_on_release: bool = True

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def updated(self, **changes) -> "PhysicsConfig":
        """Return a copy with ``changes`` applied, coerced to each field's type.

        Raises:
            ValueError: unknown field name, a value that cannot be coerced,
                or a non-finite number (nan / inf).
        """
        coerced = {}
        for name, value in changes.items():
            if name not in self.field_names():
                raise ValueError(f"unknown config field '{name}'")
            current = getattr(self, name)
            try:
                if isinstance(current, bool):
                    if isinstance(value, str):
                        value = value.strip().lower() in ("1", "true", "yes", "on")
                    coerced[name] = bool(value)
                    continue
                number = float(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"invalid value for '{name}': {value!r}") from exc
            if not math.isfinite(number):
                raise ValueError(f"'{name}' must be a finite number, got {value!r}")
            coerced[name] = int(round(number)) if isinstance(current, int) else number
        return replace(self, **coerced)

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.field_names()}


def canvas_frame(canvas_width: float, canvas_height: float) -> Frame:
    """The canvas rectangle as a static, zero-velocity parent."""
    return Frame(0.0, 0.0, canvas_width, canvas_height)


def inner_bounds(parent: Frame, frame: Frame, inner_offset: float) -> Bounds:
    return Bounds(
        min_x=parent.x + inner_offset,
        max_x=parent.x + parent.width - inner_offset - frame.width,
        min_y=parent.y + inner_offset,
        max_y=parent.y + parent.height - inner_offset - frame.height,
    )


def boundary_overlap(frame: Frame, bounds: Bounds) -> float:
    """Total distance by which ``frame`` sits outside ``bounds`` (0 when inside)."""
    return (max(0.0, bounds.min_x - frame.x) + max(0.0, frame.x - bounds.max_x) +
            max(0.0, bounds.min_y - frame.y) + max(0.0, frame.y - bounds.max_y))


class FramePhysics:
    """Containment and settling rules over a frame sequence (outermost first)."""

    def __init__(self, config: Optional[PhysicsConfig] = None):
        self.config = config or PhysicsConfig()
        self.events: list = []
        self._in_contact: set = set()

    # ──────────────────────────────────────────
    # Drag mode: containment
    # ──────────────────────────────────────────
    def apply_containment(self, frames: Sequence[Frame]) -> None:
        """Push every parent so its child stays inside its inner edge.

        Pairs are visited from the handle's parent outward, so each parent is
        corrected against a child that has already been corrected this call.
        The handle itself is never moved. A single pass is assumed to be
        enough; there is no iterative relaxation.
        """
        self.events.clear()
        offset = self.config.frame_thickness
        pushed = set()

        for i in range(len(frames) - 2, -1, -1):
            parent = frames[i]
            child = frames[i + 1]
            start_x, start_y = parent.x, parent.y

            self._push_left(parent, child, offset)
            self._push_right(parent, child, offset)
            self._push_top(parent, child, offset)
            self._push_bottom(parent, child, offset)

            distance = abs(parent.x - start_x) + abs(parent.y - start_y)
            if distance > 0.0:
                pushed.add(i)
                if i not in self._in_contact:
                    self.events.append({"type": "contact", "frame": i, "distance": distance})

        self._in_contact = pushed

    def reset_contacts(self) -> None:
        self._in_contact = set()

    @staticmethod
    def _push_left(parent: Frame, child: Frame, offset: float) -> None:
        target = child.x - offset
        if parent.x > target:
            parent.x = target

    @staticmethod
    def _push_right(parent: Frame, child: Frame, offset: float) -> None:
        target = child.x + child.width - parent.width + offset
        if parent.x < target:
            parent.x = target

    @staticmethod
    def _push_top(parent: Frame, child: Frame, offset: float) -> None:
        target = child.y - offset
        if parent.y > target:
            parent.y = target

    @staticmethod
    def _push_bottom(parent: Frame, child: Frame, offset: float) -> None:
        target = child.y + child.height - parent.height + offset
        if parent.y < target:
            parent.y = target

    # ──────────────────────────────────────────
    # Release mode: spring settling
    # ──────────────────────────────────────────
    def apply_settling(self, frames: Sequence[Frame],
                       canvas_width: float, canvas_height: float) -> None:
        """One settling tick: damped motion, then boundary springs.

        Frames are visited last to first. Each frame's parent is the previous
        frame, or the canvas for the outermost one. A violated boundary adds
        ``overlap * spring_strength`` to the frame's velocity and takes half of
        that from the parent's, except when the parent is the canvas.
        """
        damping = self.config.damping
        for frame in frames:
            frame.vx *= damping
            frame.vy *= damping
            frame.x += frame.vx
            frame.y += frame.vy

        for i in range(len(frames) - 1, -1, -1):
            frame = frames[i]
            has_parent = i > 0
            if has_parent:
                parent = frames[i - 1]
                bounds = inner_bounds(parent, frame, self.config.frame_thickness)
            else:
                parent = canvas_frame(canvas_width, canvas_height)
                bounds = inner_bounds(parent, frame, 0.0)
            self._apply_spring_forces(frame, parent, bounds, has_parent)

    def _apply_spring_forces(self, frame: Frame, parent: Frame,
                             bounds: Bounds, has_parent: bool) -> None:
        k = self.config.spring_strength
        reaction = k * REACTION_FACTOR

        # Left
        overlap = bounds.min_x - frame.x
        if overlap > 0:
            frame.vx += overlap * k
            if has_parent:
                parent.vx -= overlap * reaction

        # Right
        overlap = bounds.max_x - frame.x
        if overlap < 0:
            frame.vx += overlap * k
            if has_parent:
                parent.vx -= overlap * reaction

        # Top
        overlap = bounds.min_y - frame.y
        if overlap > 0:
            frame.vy += overlap * k
            if has_parent:
                parent.vy -= overlap * reaction

        # Bottom
        overlap = bounds.max_y - frame.y
        if overlap < 0:
            frame.vy += overlap * k
            if has_parent:
                parent.vy -= overlap * reaction

    @staticmethod
    def stop_all_movement(frames: Sequence[Frame]) -> None:
        for frame in frames:
            frame.vx = 0.0
            frame.vy = 0.0

    # ──────────────────────────────────────────
    # Diagnostics
    # ──────────────────────────────────────────
    def total_overlap(self, frames: Sequence[Frame],
                      canvas_width: float, canvas_height: float) -> float:
        """Sum of boundary violations across the chain, canvas included."""
        total = 0.0
        for i, frame in enumerate(frames):
            if i > 0:
                bounds = inner_bounds(frames[i - 1], frame, self.config.frame_thickness)
            else:
                bounds = inner_bounds(canvas_frame(canvas_width, canvas_height), frame, 0.0)
            total += boundary_overlap(frame, bounds)
        return total

    @staticmethod
    def max_speed(frames: Sequence[Frame]) -> float:
        return max((abs(f.vx) + abs(f.vy) for f in frames), default=0.0)

    def simulate_settling(self, frames: List[Frame], canvas_width: float,
                          canvas_height: float, max_ticks: int = 1000,
                          overlap_tol: float = 0.01, speed_tol: float = 0.01) -> int:
        """
        Run settling ticks until the chain is at rest or max_ticks is reached.

        Returns:
            Number of ticks executed.
        """
        ticks = 0
        while ticks < max_ticks:
            self.apply_settling(frames, canvas_width, canvas_height)
            ticks += 1
            if (self.max_speed(frames) <= speed_tol and
                    self.total_overlap(frames, canvas_width, canvas_height) <= overlap_tol):
                break
        return ticks
