"""
Drag Controller: pointer/touch input collaborator.

Front ends translate mouse or touch events into pointer_down / pointer_move /
pointer_up calls in canvas coordinates. Only the drag target (the handle
frame) is ever written here.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from physics import Frame


@dataclass
class DragInfo:
    """Current drag state for the handle."""
    target: Frame
    is_dragging: bool = False
    offset_x: float = 0.0
    offset_y: float = 0.0


class DragController:
    """Hit-tests the handle, tracks the grab offset and clamps to the canvas."""

    def __init__(self, target: Frame, canvas_width: float, canvas_height: float):
        self.drag_info = DragInfo(target=target)
        self.canvas_width = float(canvas_width)
        self.canvas_height = float(canvas_height)
        self.pointer: tuple[float, float] | None = None

        self.on_drag_start: Optional[Callable[[], None]] = None
        self.on_drag_move: Optional[Callable[[tuple], None]] = None
        self.on_drag_end: Optional[Callable[[], None]] = None

    # ── Wiring ────────────────────────────────────────────────────────────────

    def set_drag_callbacks(self, on_drag_start=None, on_drag_move=None, on_drag_end=None) -> None:
        self.on_drag_start = on_drag_start
        self.on_drag_move = on_drag_move
        self.on_drag_end = on_drag_end

    def set_target(self, target: Frame) -> None:
        self.drag_info.target = target

    def set_canvas(self, canvas_width: float, canvas_height: float) -> None:
        self.canvas_width = float(canvas_width)
        self.canvas_height = float(canvas_height)

    @property
    def target(self) -> Frame:
        return self.drag_info.target

    def is_dragging(self) -> bool:
        return self.drag_info.is_dragging

    def set_dragging(self, is_dragging: bool) -> None:
        """Force the drag state without firing callbacks."""
        self.drag_info.is_dragging = bool(is_dragging)

    # ── Pointer events ────────────────────────────────────────────────────────

    def pointer_down(self, x: float, y: float) -> bool:
        """Start dragging if (x, y) is strictly inside the handle. Returns True if it did."""
        self.pointer = (float(x), float(y))
        target = self.drag_info.target
        if not target.contains_point(x, y):
            return False

        self.drag_info.is_dragging = True
        self.drag_info.offset_x = x - target.x
        self.drag_info.offset_y = y - target.y
        if self.on_drag_start:
            self.on_drag_start()
        return True

    def pointer_move(self, x: float, y: float) -> None:
        self.pointer = (float(x), float(y))
        if not self.drag_info.is_dragging:
            return

        target = self.drag_info.target
        target.x = x - self.drag_info.offset_x
        target.y = y - self.drag_info.offset_y
        self.clamp_to_canvas()

        if self.on_drag_move:
            self.on_drag_move(self.pointer)

    def pointer_up(self) -> None:
        """End the drag. Also used when the pointer leaves the surface."""
        if not self.drag_info.is_dragging:
            return
        self.drag_info.is_dragging = False
        if self.on_drag_end:
            self.on_drag_end()

    def clamp_to_canvas(self) -> None:
        target = self.drag_info.target
        max_x = self.canvas_width - target.width
        max_y = self.canvas_height - target.height
        target.x = max(0.0, min(max_x, target.x))
        target.y = max(0.0, min(max_y, target.y))

    def get_drag_offset(self) -> tuple[float, float]:
        return self.drag_info.offset_x, self.drag_info.offset_y
