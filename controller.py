"""
FramePusherController: Layer 2 (Game Logic)

Owns the configuration, the Frame Store, the drag collaborator and the
motion state machine (REST → DRAGGING → SETTLING → REST).
Communicates with Layer 3 (main.py / server.py) via two queues:
  - pending_events  : rendering commands (rebuild_frames, drag_start, settled, …)
  - physics_events  : containment contact events for sound playback

Layer 3 calls:
  ctrl.pointer_down/move/up     translated mouse/touch input (canvas px)
  ctrl.step()                   one animation frame: input script, then physics
  ctrl.pending_events           list of dicts to consume and act on
  ctrl.physics_events           list of contact dicts for sounds
  ctrl.frames / ctrl.mode       read-only after each step
"""

import enum
import json
import logging
import math
from collections import deque

import numpy as np

from physics import FramePhysics, PhysicsConfig
from frame_store import FrameStore
from drag import DragController
from drag_presets import PRESETS, PRESETS_BY_NAME

logger = logging.getLogger("framepusher.controller")


DEFAULT_CANVAS_SIZE = 600.0

# ── Default info-bar message ───────────────────────────────────────────────────
DEFAULT_INFO_MSG = (
    "Drag the green square.  [R] Reset  [S] Settle on/off  [1-3] Presets  [P] Params([/])"
)

# ── Parameter panel rows: (field, label, min, max, step, rebuilds frames) ─────
CONFIG_PARAMS = [
    ("num_frames",      "Frames",     2,     50,    1,    True),
    ("frame_thickness", "Thickness",  5,     50,    1,    True),
    ("gap",             "Gap",        0,     30,    1,    True),
    ("handle_size",     "Handle",     10,    100,   2,    True),
    ("damping",         "Damping",    0.1,   1.0,   0.01, False),
    ("spring_strength", "Spring",     0.01,  1.0,   0.01, False),
]

STRUCTURAL_FIELDS = {row[0] for row in CONFIG_PARAMS if row[5]}


class MotionState(enum.Enum):
    REST = "rest"
    DRAGGING = "dragging"
    SETTLING = "settling"


class FramePusherController:
    """Layer 2: motion state machine + physics orchestration."""

    REST_OVERLAP = 0.01        # px, summed over the chain
    REST_SPEED = 0.01          # px per tick, fastest frame
    MAX_SETTLE_TICKS = 2000

    def __init__(self, canvas_width: float = DEFAULT_CANVAS_SIZE,
                 canvas_height: float = DEFAULT_CANVAS_SIZE,
                 config: PhysicsConfig | None = None):
        self.config = config or PhysicsConfig()
        self.engine = FramePhysics(self.config)
        self.store = FrameStore(canvas_width, canvas_height, self.config)

        self.drag = DragController(self.store.handle, canvas_width, canvas_height)
        self.drag.set_drag_callbacks(self._on_drag_start, None, self._on_drag_end)

        self.mode = MotionState.REST
        self.tick_count = 0

        # Scripted gesture (drag presets / "drag" command)
        self._script_path: deque = deque()
        self._script_active = False
        self._script_label = ""

        # Status / info messages (L3 reads these to update text)
        self.status_msg = ""
        self.info_msg = DEFAULT_INFO_MSG

        # Event queues
        self.pending_events: list[dict] = []   # L3 rendering commands
        self.physics_events: list[dict] = []   # contact sounds

    # ──────────────────────────────────────────────────────────────────────────
    # Read-only views
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def frames(self) -> list:
        return self.store.frames

    @property
    def handle(self):
        return self.store.handle

    @property
    def canvas_width(self) -> float:
        return self.store.canvas_width

    @property
    def canvas_height(self) -> float:
        return self.store.canvas_height

    def is_dragging(self) -> bool:
        return self.drag.is_dragging()

    def is_at_rest(self) -> bool:
        return (self.engine.max_speed(self.frames) <= self.REST_SPEED and
                self.engine.total_overlap(self.frames, self.canvas_width,
                                          self.canvas_height) <= self.REST_OVERLAP)

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self) -> None:
        """Advance one animation frame: scripted input first, then physics."""
        self.physics_events.clear()
        self._tick_script()

        if self.mode is MotionState.DRAGGING:
            self.engine.apply_containment(self.frames)
            self.physics_events.extend(self.engine.events)
        elif self.mode is MotionState.SETTLING:
            self.engine.apply_settling(self.frames, self.canvas_width, self.canvas_height)
            if self.is_at_rest():
                self.engine.stop_all_movement(self.frames)
                self.mode = MotionState.REST
                self.pending_events.append({"type": "settled"})
                self.status_msg = "At rest."

        self.tick_count += 1

    # ──────────────────────────────────────────────────────────────────────────
    # Input (Drag Controller wiring)
    # ──────────────────────────────────────────────────────────────────────────

    def pointer_down(self, x: float, y: float) -> bool:
        if self._script_active:
            self._cancel_script()
        return self.drag.pointer_down(x, y)

    def pointer_move(self, x: float, y: float) -> None:
        self.drag.pointer_move(x, y)

    def pointer_up(self) -> None:
        self.drag.pointer_up()

    def _on_drag_start(self) -> None:
        self.engine.stop_all_movement(self.frames)
        self.engine.reset_contacts()
        self.mode = MotionState.DRAGGING
        self.pending_events.append({"type": "drag_start"})
        self.status_msg = "Dragging..."

    def _on_drag_end(self) -> None:
        if self.config.settle_on_release:
            self.mode = MotionState.SETTLING
            self.status_msg = "Settling..."
        else:
            self.mode = MotionState.REST
            self.status_msg = ""
        self.pending_events.append({"type": "drag_end"})

    # ──────────────────────────────────────────────────────────────────────────
    # Frame store lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def _rebuild_frames(self, canvas_width: float | None = None,
                        canvas_height: float | None = None,
                        config: PhysicsConfig | None = None) -> None:
        """Replace the whole sequence; any drag or motion in progress is dropped.

        The store is rebuilt first so a failing build leaves everything as it was.
        """
        cw = self.canvas_width if canvas_width is None else float(canvas_width)
        ch = self.canvas_height if canvas_height is None else float(canvas_height)
        self.store.rebuild(cw, ch, config or self.config)
        self._cancel_script()
        self.drag.set_dragging(False)
        self.drag.set_target(self.store.handle)
        self.drag.set_canvas(cw, ch)
        self.engine.reset_contacts()
        self.mode = MotionState.REST
        self.pending_events.append({"type": "rebuild_frames", "count": len(self.frames)})

    def resize(self, canvas_width: float, canvas_height: float) -> None:
        """Rebuild for a new canvas size.

        Raises:
            ValueError: a non-finite or non-positive size (frames left untouched).
        """
        cw, ch = float(canvas_width), float(canvas_height)
        if not (math.isfinite(cw) and math.isfinite(ch) and cw > 0 and ch > 0):
            raise ValueError(f"invalid canvas size {canvas_width!r}x{canvas_height!r}")
        logger.info("[CFG] resize -> %.0fx%.0f", cw, ch)
        self._rebuild_frames(cw, ch)

    def reset(self) -> None:
        """Rebuild frames at their centered start positions."""
        self._rebuild_frames()
        self.status_msg = "Reset."

    # ──────────────────────────────────────────────────────────────────────────
    # Configuration surface
    # ──────────────────────────────────────────────────────────────────────────

    def update_config(self, **changes) -> PhysicsConfig:
        """Apply config changes; shape fields rebuild the frames.

        Panel fields must lie inside their CONFIG_PARAMS range. The frames are
        rebuilt before the new config is committed.

        Raises:
            ValueError: unknown field, invalid or out-of-range value
                (config and frames left untouched).
        """
        new_config = self.config.updated(**changes)
        for attr, _label, mn, mx, _step, _rebuild in CONFIG_PARAMS:
            if attr in changes and not mn <= getattr(new_config, attr) <= mx:
                raise ValueError(f"'{attr}' must be within [{mn}, {mx}], "
                                 f"got {getattr(new_config, attr)!r}")
        self._apply_config(new_config, rebuild=bool(STRUCTURAL_FIELDS & set(changes)))
        return new_config

    def _apply_config(self, config: PhysicsConfig, rebuild: bool) -> None:
        if rebuild:
            self._rebuild_frames(config=config)
        self.config = config
        # Same engine: contact history survives a live damping/spring change
        self.engine.config = config
        self.pending_events.append({"type": "refresh_params"})
        logger.info("[CFG] %s", config.as_dict())

    def adjust_param(self, index: int, direction: int, fine: bool = False) -> float:
        """Nudge a CONFIG_PARAMS row by one step (a tenth when fine), clamped.

        Integer fields always move by a whole step.
        """
        attr, _label, mn, mx, step, _rebuild = CONFIG_PARAMS[index]
        current = getattr(self.config, attr)
        s = step / 10.0 if fine and not isinstance(current, int) else step
        new_val = max(mn, min(mx, current + direction * s))
        self.update_config(**{attr: new_val})
        return getattr(self.config, attr)

    def get_params_data(self) -> list:
        """All panel params with current values."""
        result = []
        for attr, label, mn, mx, step, rebuild in CONFIG_PARAMS:
            result.append({
                "attr": attr, "label": label,
                "value": round(float(getattr(self.config, attr)), 6),
                "min": mn, "max": mx, "step": step, "rebuild": rebuild,
            })
        return result

    def reset_to_defaults(self) -> None:
        self._apply_config(PhysicsConfig(), rebuild=True)
        self.status_msg = "Params reset to defaults."

    def toggle_settle(self) -> bool:
        self.update_config(settle_on_release=not self.config.settle_on_release)
        self.status_msg = "Settle on release: " + ("on" if self.config.settle_on_release else "off")
        return self.config.settle_on_release

    # ──────────────────────────────────────────────────────────────────────────
    # Scripted gestures
    # ──────────────────────────────────────────────────────────────────────────

    def play_preset(self, name: str) -> None:
        """Queue a drag preset by key ("1"-"3") or name ("sweep", …)."""
        if name in PRESETS:
            fn, label = PRESETS[name]
        elif name in PRESETS_BY_NAME:
            fn, label = PRESETS_BY_NAME[name], name
        else:
            raise ValueError(f"unknown drag preset '{name}'")
        h = self.handle
        start = (h.x + h.width / 2, h.y + h.height / 2)
        self.play_path(fn(start, self.canvas_width, self.canvas_height), label)

    def play_path(self, path, label: str = "path") -> None:
        """Queue pointer positions, one per tick; the first one grabs the handle."""
        points = np.asarray(path, dtype=float).reshape(-1, 2)
        if len(points) == 0:
            raise ValueError("play_path: empty path")
        if self.is_dragging():
            self.pointer_up()
        self._script_path = deque((float(x), float(y)) for x, y in points)
        self._script_active = True
        self._script_label = label
        self.status_msg = f"Preset: {label}"

    def _tick_script(self) -> None:
        if not self._script_active:
            return
        if not self._script_path:
            self._script_active = False
            self.drag.pointer_up()
            return
        x, y = self._script_path.popleft()
        if self.is_dragging():
            self.drag.pointer_move(x, y)
        elif not self.drag.pointer_down(x, y):
            logger.warning("[CMD] preset '%s' missed the handle at (%.1f, %.1f)",
                           self._script_label, x, y)
            self._cancel_script()

    def _cancel_script(self) -> None:
        self._script_path.clear()
        self._script_active = False

    # ──────────────────────────────────────────────────────────────────────────
    # State export / command panel
    # ──────────────────────────────────────────────────────────────────────────

    def get_state(self) -> dict:
        return {
            "frames": self.store.snapshot(),
            "config": self.config.as_dict(),
            "mode": self.mode.value,
            "is_dragging": self.is_dragging(),
            "canvas": [self.canvas_width, self.canvas_height],
            "tick": self.tick_count,
        }

    def get_state_json(self) -> str:
        """Return current frame state as compact single-line set-command JSON."""
        frames = []
        for f in self.frames:
            frames.append({
                "pos": [round(f.x, 4), round(f.y, 4)],
                "vel": [round(f.vx, 4), round(f.vy, 4)],
            })
        return json.dumps({"cmd": "set", "frames": frames}, separators=(',', ':'))

    def execute_command(self, text: str) -> None:
        """Parse a JSON command string and dispatch to handlers."""
        if not text or not text.strip():
            logger.info("[CMD] execute_command: empty text")
            return
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("[CMD] JSON parse error: %s", exc)
            self.status_msg = f"JSON error: {exc}"
            return
        if not isinstance(data, dict):
            self.status_msg = "Command must be a JSON object."
            return
        cmd = str(data.get("cmd", "")).lower().strip()
        logger.info("[CMD] cmd=%s", cmd)
        if cmd == "set":
            self._cmd_set(data)
        elif cmd == "drag":
            self._cmd_drag(data)
        elif cmd == "reset":
            self.reset()
        else:
            self.status_msg = f"Unknown cmd '{cmd}'. Use set/drag/reset."

    def _cmd_set(self, data: dict) -> None:
        """set: update frame positions/velocities OR config params."""
        params = data.get("params")
        if params is not None:
            try:
                self.update_config(**params)
            except ValueError as exc:
                self.status_msg = f"params: {exc}"
                return
            self.status_msg = f"params: set {sorted(params)}"
            return

        frames_data = data.get("frames")
        if not frames_data:
            self.status_msg = "set: 'frames' or 'params' field required."
            return
        updated = []
        try:
            if isinstance(frames_data, dict):
                items = [(int(k), v) for k, v in frames_data.items()]
            else:
                items = list(enumerate(frames_data))

            for index, fd in items:
                if not 0 <= index < len(self.frames) or not isinstance(fd, dict):
                    continue
                frame = self.frames[index]
                pos = fd.get("pos")
                if pos is not None:
                    frame.x, frame.y = float(pos[0]), float(pos[1])
                vel = fd.get("vel")
                if vel is not None:
                    frame.vx, frame.vy = float(vel[0]), float(vel[1])
                updated.append(index)
        except (ValueError, TypeError, IndexError) as exc:
            logger.warning("[CMD] set: bad frame data: %s", exc)
            self.status_msg = f"set: {exc}"
            return

        if updated and not self.is_dragging():
            self.mode = MotionState.SETTLING if self.config.settle_on_release else MotionState.REST
        self.status_msg = f"set: frames {updated} updated."

    def _cmd_drag(self, data: dict) -> None:
        """drag: replay a preset or an explicit pointer path."""
        try:
            if "preset" in data:
                self.play_preset(str(data["preset"]))
            elif data.get("simulate"):
                result = self.simulate_drag(data.get("path", []))
                self.pending_events.append({"type": "simulation_result", "result": result})
                self.status_msg = (f"simulate: settled={result['settled']} "
                                   f"overlap={result['overlap']:.3f}")
            else:
                self.play_path(data.get("path", []))
        except (ValueError, TypeError) as exc:
            self.status_msg = f"drag: {exc}"

    # ──────────────────────────────────────────────────────────────────────────
    # Headless simulation
    # ──────────────────────────────────────────────────────────────────────────

    def simulate_drag(self, path, *, settle: bool | None = None,
                      settle_ticks: int | None = None) -> dict:
        """Headless drag replay.

        Non-destructive: operates on copies and does NOT change
        ``self.frames`` or any controller state.

        Args:
            path:         Sequence of (x, y) pointer positions, one per tick.
                          The first point must lie inside the handle.
            settle:       Run settling after release. ``None`` follows
                          ``config.settle_on_release``.
            settle_ticks: Settling tick limit (default MAX_SETTLE_TICKS).

        Returns:
            ``dict`` with keys ``frames`` (final frame dicts), ``drag_ticks``,
            ``settle_ticks``, ``contacts`` (contact events seen), ``overlap``
            (remaining total overlap) and ``settled``.
        """
        points = np.asarray(path, dtype=float).reshape(-1, 2)
        if len(points) == 0:
            raise ValueError("simulate_drag: empty path")

        cw, ch = self.canvas_width, self.canvas_height
        frames = self.store.copy_frames()
        engine = FramePhysics(self.config)
        drag = DragController(frames[-1], cw, ch)
        if not drag.pointer_down(*points[0]):
            raise ValueError("simulate_drag: path must start inside the handle")
        engine.stop_all_movement(frames)

        contacts = 0
        for x, y in points[1:]:
            drag.pointer_move(x, y)
            engine.apply_containment(frames)
            contacts += len(engine.events)
        drag.pointer_up()

        do_settle = self.config.settle_on_release if settle is None else settle
        limit = self.MAX_SETTLE_TICKS if settle_ticks is None else settle_ticks
        used = 0
        if do_settle and limit > 0:
            used = engine.simulate_settling(frames, cw, ch, max_ticks=limit,
                                            overlap_tol=self.REST_OVERLAP,
                                            speed_tol=self.REST_SPEED)

        overlap = engine.total_overlap(frames, cw, ch)
        return {
            "frames": [f.as_dict() for f in frames],
            "drag_ticks": len(points) - 1,
            "settle_ticks": used,
            "contacts": contacts,
            "overlap": overlap,
            "settled": overlap <= self.REST_OVERLAP and engine.max_speed(frames) <= self.REST_SPEED,
        }
