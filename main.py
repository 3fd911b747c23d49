"""
FramePusher Desktop Visualizer (3-Tier Architecture)
Layer 3: Ursina rendering / input handling.
Layer 2: controller.py (FramePusherController)
Layer 1: physics.py (FramePhysics)

Drag the green square. R resets, S toggles settling on release,
1-3 play drag presets, P shows the params panel.
"""

import colorsys
import logging
import os
import random
import tempfile
import wave
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw
from ursina import (
    Ursina, Entity, Text, Texture, Audio, camera, color, mouse,
    held_keys, destroy, window,
)

from controller import FramePusherController, CONFIG_PARAMS, DEFAULT_INFO_MSG
from drag_presets import PRESETS
from logging_config import setup_logging

logger = logging.getLogger("framepusher.main")

CANVAS_SIZE = 600
VIEW_MARGIN = 100

# ── Layer 2: controller instance ──────────────────────────────────────────────
ctrl = FramePusherController(CANVAS_SIZE, CANVAS_SIZE)

# ──────────────────────────────────────────
# Background dot texture (PIL)
# ──────────────────────────────────────────

DOT_SPACING = 20
DOT_RADIUS = 4


def _make_dot_background(width, height, spacing=DOT_SPACING, radius=DOT_RADIUS, seed=None):
    """White canvas with a grid of dots, each a random bright hue."""
    img = Image.new("RGB", (int(width), int(height)), (255, 255, 255))
    draw = ImageDraw.Draw(img)
    rng = random.Random(seed)
    for x in range(0, int(width), spacing):
        for y in range(0, int(height), spacing):
            r, g, b = colorsys.hls_to_rgb(rng.random(), 0.7, 1.0)
            draw.ellipse((x - radius, y - radius, x + radius, y + radius),
                         fill=(int(r * 255), int(g * 255), int(b * 255)))
    return img


# ──────────────────────────────────────────
# Synthesized tick sound (numpy + wave)
# ──────────────────────────────────────────

_sound_dir = tempfile.mkdtemp(prefix="framepusher_snd_")


def _synth_wav(filename, samples):
    """Write mono 16-bit 44100Hz WAV and return Path object."""
    path = os.path.join(_sound_dir, filename)
    data = np.clip(samples, -1.0, 1.0)
    data_int = (data * 32767).astype(np.int16)
    with wave.open(path, "w") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(44100)
        wf.writeframes(data_int.tobytes())
    return Path(path)


def _synth_tick():
    sr = 44100; dur = 0.04
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    env = np.exp(-t * 150)
    sig = env * np.sin(2 * np.pi * 1200 * t)
    return _synth_wav("tick.wav", sig * 0.7)


# ──────────────────────────────────────────
# Ursina App
# ──────────────────────────────────────────

app = Ursina(borderless=False, title="FramePusher", size=(1000, 800))

camera.orthographic = True
camera.fov = CANVAS_SIZE + VIEW_MARGIN
camera.position = (0, 0, -10)
window.color = color.light_gray

background = None
frame_entities: list[Entity] = []
HANDLE_COLOR = color.rgb(67, 160, 71)
HANDLE_DRAG_COLOR = color.rgb(102, 187, 106)
BORDER_COLOR = color.white

# ── Sound effects ─────────────────────────────────────────────────────────────
tick_path = _synth_tick()
snd_tick = None
_sounds_loaded = False
_sound_enabled = True

# ── UI ────────────────────────────────────────────────────────────────────────
info_text = Text(text=DEFAULT_INFO_MSG, position=(-0.62, 0.48), scale=1.0, color=color.black)
status_text = Text(text="", position=(-0.62, 0.44), scale=0.9, color=color.dark_gray)


# ──────────────────────────────────────────
# Canvas <-> world mapping
# ──────────────────────────────────────────

def _to_world(x, y, w, h):
    """Canvas top-left rect -> world-space center (y up, origin at canvas center)."""
    return (x + w / 2 - ctrl.canvas_width / 2,
            ctrl.canvas_height / 2 - y - h / 2)


def _mouse_canvas_pos():
    return (mouse.x * camera.fov + ctrl.canvas_width / 2,
            ctrl.canvas_height / 2 - mouse.y * camera.fov)


# ──────────────────────────────────────────
# Frame entities (L3 owns these)
# ──────────────────────────────────────────

def _build_background():
    global background
    if background is not None:
        destroy(background)
    img = _make_dot_background(ctrl.canvas_width, ctrl.canvas_height)
    background = Entity(model="quad", texture=Texture(img),
                        scale=(ctrl.canvas_width, ctrl.canvas_height), z=1)


def _build_frame_entities():
    """Destroy and recreate one entity per frame. Called on every rebuild."""
    global frame_entities
    for ent in frame_entities:
        destroy(ent)
    frame_entities = []

    t = ctrl.config.frame_thickness
    last = len(ctrl.frames) - 1
    for i, f in enumerate(ctrl.frames):
        root = Entity(z=-0.01 * (i + 1))
        if i == last:
            Entity(parent=root, model="quad", color=HANDLE_COLOR, scale=(f.width, f.height))
        else:
            hw, hh = f.width / 2, f.height / 2
            for pos, scl in (((0, hh - t / 2), (f.width, t)),
                             ((0, -hh + t / 2), (f.width, t)),
                             ((-hw + t / 2, 0), (t, f.height)),
                             ((hw - t / 2, 0), (t, f.height))):
                Entity(parent=root, model="quad", color=BORDER_COLOR, position=pos, scale=scl)
        frame_entities.append(root)
    _sync_frame_entities()


def _sync_frame_entities():
    for ent, f in zip(frame_entities, ctrl.frames):
        ent.x, ent.y = _to_world(f.x, f.y, f.width, f.height)
    if frame_entities:
        handle_quad = frame_entities[-1].children[0]
        handle_quad.color = HANDLE_DRAG_COLOR if ctrl.is_dragging() else HANDLE_COLOR


# ──────────────────────────────────────────
# Params Editor
# ──────────────────────────────────────────

class ParamsEditor:
    """Right-side panel listing the config params for live editing."""

    PANEL_X = 0.45
    PANEL_W = 0.30
    ROW_H   = 0.054
    ROW_Y0  = 0.30

    def __init__(self):
        self.selected = 0
        self.visible  = True
        self._ents     = []
        self._val_txts = []
        self._row_bgs  = []
        self._build()

    def _build(self):
        n = len(CONFIG_PARAMS)
        panel_h  = n * self.ROW_H + 0.10
        panel_cy = self.ROW_Y0 - (n - 1) * self.ROW_H / 2 + 0.03
        self._add(Entity(parent=camera.ui, model="quad",
                         color=color.rgba(0, 0, 0, 0.65),
                         scale=(self.PANEL_W, panel_h),
                         position=(self.PANEL_X, panel_cy), z=0.05))
        self._add(Text(text="--- FramePusher Controls ---", parent=camera.ui, scale=0.72,
                       position=(self.PANEL_X - 0.13, self.ROW_Y0 + 0.058),
                       color=color.cyan))
        self._add(Text(text="Click row  ]=up  [=down  Shift=fine",
                       parent=camera.ui, scale=0.56,
                       position=(self.PANEL_X - 0.13, self.ROW_Y0 + 0.030),
                       color=color.gray))
        for i, (attr, label, *_rest) in enumerate(CONFIG_PARAMS):
            y = self.ROW_Y0 - i * self.ROW_H
            row_bg = Entity(parent=camera.ui, model="quad",
                            color=color.rgba(1, 1, 0, 0.22) if i == 0 else color.rgba(1, 1, 1, 0.04),
                            scale=(self.PANEL_W - 0.01, self.ROW_H - 0.007),
                            position=(self.PANEL_X, y), z=0.04)
            self._add(row_bg)
            self._row_bgs.append(row_bg)
            self._add(Text(text=label, parent=camera.ui, scale=0.70,
                           position=(self.PANEL_X - 0.13, y - 0.008),
                           color=color.white))
            vtxt = Text(text=self._fmt(getattr(ctrl.config, attr)), parent=camera.ui, scale=0.70,
                        position=(self.PANEL_X + 0.05, y - 0.008),
                        color=color.yellow)
            self._add(vtxt)
            self._val_txts.append(vtxt)
        bot_y = self.ROW_Y0 - n * self.ROW_H - 0.005
        self._add(Text(text="[Shift+P] Reset all to defaults", parent=camera.ui, scale=0.56,
                       position=(self.PANEL_X - 0.13, bot_y), color=color.gray))

    def _add(self, entity):
        self._ents.append(entity)
        return entity

    @staticmethod
    def _fmt(val):
        if val == 0:
            return "0"
        return f"{val:.4g}"

    def refresh(self):
        defaults = type(ctrl.config)()
        for i, (attr, *_rest) in enumerate(CONFIG_PARAMS):
            val = getattr(ctrl.config, attr)
            self._val_txts[i].text  = self._fmt(val)
            self._val_txts[i].color = (color.yellow if abs(val - getattr(defaults, attr)) < 1e-9
                                       else color.orange)

    def _update_selection(self):
        for i, bg in enumerate(self._row_bgs):
            bg.color = (color.rgba(1, 1, 0, 0.22) if i == self.selected
                        else color.rgba(1, 1, 1, 0.04))

    def try_click(self, mx, my):
        if not self.visible:
            return False
        for i in range(len(CONFIG_PARAMS)):
            row_y = self.ROW_Y0 - i * self.ROW_H
            if (abs(mx - self.PANEL_X) <= self.PANEL_W / 2 and
                    abs(my - row_y) <= self.ROW_H / 2):
                self.selected = i
                self._update_selection()
                return True
        return False

    def adjust(self, direction, fine=False):
        ctrl.adjust_param(self.selected, direction, fine)

    def toggle_visible(self):
        self.visible = not self.visible
        for e in self._ents:
            e.enabled = self.visible


params_editor = None


def _ensure_params_editor():
    global params_editor
    if params_editor is None:
        params_editor = ParamsEditor()
    return params_editor


# ──────────────────────────────────────────
# Sound loading (deferred until app is running)
# ──────────────────────────────────────────

def _load_sounds():
    global snd_tick, _sounds_loaded, _sound_enabled
    if _sounds_loaded:
        return
    _sounds_loaded = True
    try:
        snd_tick = Audio(tick_path, autoplay=False)
    except Exception as exc:
        logger.warning("[SND] tick sound unavailable, audio disabled: %s", exc)
        _sound_enabled = False


def _play_contact_sounds(events):
    if not _sound_enabled or snd_tick is None:
        return
    for evt in events:
        vol = min(1.0, 0.2 + evt["distance"] * 0.05)
        snd_tick.volume = vol
        snd_tick.pitch = 0.9 + 0.02 * evt["frame"]
        snd_tick.play()


# ──────────────────────────────────────────
# Controller event dispatcher (L2 → L3)
# ──────────────────────────────────────────

def _handle_controller_event(ev: dict):
    t = ev["type"]
    if t == "rebuild_frames":
        _build_frame_entities()
    elif t == "refresh_params":
        _ensure_params_editor().refresh()
    elif t == "settled":
        status_text.text = "At rest."


# ──────────────────────────────────────────
# Input handler
# ──────────────────────────────────────────

def input(key):
    ppe = _ensure_params_editor()

    if key == "left mouse down":
        if ppe.try_click(mouse.x, mouse.y):
            return
        ctrl.pointer_down(*_mouse_canvas_pos())
        return
    if key == "left mouse up":
        ctrl.pointer_up()
        return

    if key == "p":
        if held_keys["shift"]:
            ctrl.reset_to_defaults()
        else:
            ppe.toggle_visible()
        return
    if ppe.visible and key in ("]", "["):
        ppe.adjust(+1 if key == "]" else -1, fine=bool(held_keys["shift"]))
        return

    if key == "r":
        ctrl.reset()
    elif key == "s":
        ctrl.toggle_settle()
    elif key in PRESETS:
        ctrl.play_preset(key)


# ──────────────────────────────────────────
# Update loop
# ──────────────────────────────────────────

def update():
    _load_sounds()

    # 1. Input
    if ctrl.is_dragging():
        ctrl.pointer_move(*_mouse_canvas_pos())

    # 2. Physics
    ctrl.step()

    # 3. Render
    for ev in ctrl.pending_events:
        _handle_controller_event(ev)
    ctrl.pending_events.clear()
    _play_contact_sounds(ctrl.physics_events)
    _sync_frame_entities()

    if ctrl.info_msg and info_text.text != ctrl.info_msg:
        info_text.text = ctrl.info_msg
    if status_text.text != ctrl.status_msg:
        status_text.text = ctrl.status_msg


# ──────────────────────────────────────────
# Run
# ──────────────────────────────────────────

if __name__ == "__main__":
    setup_logging()
    _build_background()
    _build_frame_entities()
    _ensure_params_editor()
    app.run()
