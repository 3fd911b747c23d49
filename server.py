"""
FramePusher Web Server: Layer 3 (FastAPI + WebSocket)

Serves the canvas frontend and runs the tick loop, streaming frame
geometry to browser clients over WebSocket.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controller import FramePusherController, CONFIG_PARAMS
from drag_presets import PRESETS
from logging_config import setup_logging

logger = logging.getLogger("framepusher.server")

STATIC_DIR = Path(__file__).parent / "static"

# ── Controller ──────────────────────────────────────────────────────────────

ctrl = FramePusherController()


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

# ── Client / loop state ─────────────────────────────────────────────────────

clients: list[WebSocket] = []
paused_clients: set = set()          # sockets whose page is hidden
drag_owner: dict = {"ws": None}       # socket that grabbed the handle
loop_state = {"running": True}

# ── Async tick driver ───────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS


async def game_loop():
    """Tick loop: one controller step per frame at ~60 fps, then broadcast."""
    while True:
        now = time.perf_counter()

        if loop_state["running"]:
            ctrl.step()

            if clients:
                frame_msg = _build_frame_message()
                dead: list[WebSocket] = []
                for ws in clients:
                    try:
                        await ws.send_text(frame_msg)
                    except Exception:
                        dead.append(ws)
                for ws in dead:
                    if ws in clients:
                        clients.remove(ws)

        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _build_frame_message() -> str:
    """Serialize current state into a JSON frame message, draining event queues."""
    frames_data = [
        [round(f.x, 3), round(f.y, 3), round(f.width, 3), round(f.height, 3)]
        for f in ctrl.frames
    ]

    events = []
    for ev in ctrl.pending_events:
        if ev.get("type") == "simulation_result":
            events.append({"type": "simulation_result",
                           "settled": ev["result"]["settled"],
                           "overlap": round(ev["result"]["overlap"], 4)})
        else:
            events.append(ev)
    ctrl.pending_events.clear()

    sounds = []
    for ev in ctrl.physics_events:
        sounds.append({
            "type": ev.get("type", ""),
            "frame": ev.get("frame", 0),
            "distance": round(float(ev.get("distance", 0.0)), 3),
        })

    frame = {
        "type": "frame",
        "canvas": [ctrl.canvas_width, ctrl.canvas_height],
        "thickness": ctrl.config.frame_thickness,
        "frames": frames_data,
        "dragging": ctrl.is_dragging(),
        "mode": ctrl.mode.value,
        "events": events,
        "sounds": sounds,
        "status": ctrl.status_msg,
        "info": ctrl.info_msg,
    }
    return json.dumps(frame, separators=(',', ':'))


def _build_init_message() -> str:
    return json.dumps({
        "type": "init",
        "canvas": [ctrl.canvas_width, ctrl.canvas_height],
        "frame_thickness": ctrl.config.frame_thickness,
        "target_fps": TARGET_FPS,
        "state": ctrl.get_state(),
    })


# ── Key press handlers ──────────────────────────────────────────────────────

def _handle_key_down(key: str):
    """Handle a key press event from the client."""
    if key == "r":
        ctrl.reset()
    elif key == "s":
        ctrl.toggle_settle()
    elif key in PRESETS:
        ctrl.play_preset(key)


# ── WebSocket endpoint ──────────────────────────────────────────────────────

def _refresh_running() -> None:
    """Tick unless every connected client has paused (hidden page)."""
    loop_state["running"] = not clients or any(c not in paused_clients for c in clients)


def _owns_drag(ws) -> bool:
    return drag_owner["ws"] is ws and ctrl.is_dragging()


def _release_client(ws) -> None:
    """Forget a disconnected socket; ends the drag only if this socket holds it."""
    if ws in clients:
        clients.remove(ws)
    paused_clients.discard(ws)
    if _owns_drag(ws):
        ctrl.pointer_up()
    if drag_owner["ws"] is ws:
        drag_owner["ws"] = None
    _refresh_running()


async def _handle_message(ws: WebSocket, msg: dict) -> None:
    cmd = msg.get("cmd", "")
    if cmd == "pointer_down":
        other = drag_owner["ws"]
        if ctrl.is_dragging() and other is not None and other is not ws:
            return
        if ctrl.pointer_down(float(msg.get("x", 0.0)), float(msg.get("y", 0.0))):
            drag_owner["ws"] = ws
    elif cmd == "pointer_move":
        if _owns_drag(ws):
            ctrl.pointer_move(float(msg.get("x", 0.0)), float(msg.get("y", 0.0)))
    elif cmd in ("pointer_up", "pointer_leave"):
        if _owns_drag(ws):
            ctrl.pointer_up()
            drag_owner["ws"] = None
    elif cmd == "key_down":
        _handle_key_down(msg.get("key", ""))
    elif cmd == "resize":
        ctrl.resize(float(msg.get("width", ctrl.canvas_width)),
                    float(msg.get("height", ctrl.canvas_height)))
    elif cmd == "pause":
        paused_clients.add(ws)
        _refresh_running()
        logger.info("[WS] client paused, tick loop running=%s", loop_state["running"])
    elif cmd == "resume":
        paused_clients.discard(ws)
        _refresh_running()
        logger.info("[WS] client resumed, tick loop running=%s", loop_state["running"])
    elif cmd == "execute":
        ctrl.execute_command(msg.get("text", ""))
    elif cmd == "get_state":
        await ws.send_text(json.dumps({"type": "state", "data": ctrl.get_state()}))
    elif cmd == "get_params":
        await ws.send_text(json.dumps({"type": "params", "data": ctrl.get_params_data()}))
    elif cmd == "adjust_param":
        idx = int(msg.get("index", 0))
        direction = int(msg.get("direction", 0))
        fine = bool(msg.get("fine", False))
        if 0 <= idx < len(CONFIG_PARAMS):
            new_val = ctrl.adjust_param(idx, direction, fine)
            await ws.send_text(json.dumps({
                "type": "param_update",
                "index": idx,
                "value": round(float(new_val), 6),
            }))
    elif cmd == "reset_params":
        ctrl.reset_to_defaults()
        await ws.send_text(json.dumps({"type": "params", "data": ctrl.get_params_data()}))


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    await ws.send_text(_build_init_message())
    clients.append(ws)
    _refresh_running()
    logger.info("[WS] client connected (%d total)", len(clients))

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue
            try:
                await _handle_message(ws, msg)
            except (ValueError, TypeError) as exc:
                logger.warning("[WS] rejected %r: %s", msg.get("cmd"), exc)
    except WebSocketDisconnect:
        pass
    finally:
        _release_client(ws)
        logger.info("[WS] client disconnected (%d left)", len(clients))


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
