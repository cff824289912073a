"""
Pitch Flight Web Server — Layer 3 (FastAPI + WebSocket)

Serves the Three.js frontend and runs the frame loop,
streaming ball poses to browser clients over WebSocket.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controller import PitchController
from kinematics import BALL_RADIUS
import kinematics as _kin
from pitch_data import load_pitch_data, pitch_color

STATIC_DIR = Path(__file__).resolve().parent / "static"

# ── Controller ──────────────────────────────────────────────────────────────

ctrl = PitchController(load_pitch_data())


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

# ── Client state ────────────────────────────────────────────────────────────

clients: list[WebSocket] = []

# ── Scene constants sent to the renderer (feet) ─────────────────────────────

STRIKE_ZONE_WIDTH = 1.42
STRIKE_ZONE_HEIGHT = 2.0
STRIKE_ZONE_CENTER_Y = 2.5
CAMERA_POSITION = (0.0, 2.5, -65.0)
CAMERA_TARGET = (0.0, 2.5, 0.0)

# ── Kinematic params (live editor) ──────────────────────────────────────────

KINEMATIC_PARAMS = [
    ("RELEASE_DEPTH",         "Release Depth",   -10.0,  0.0,  0.05),
    ("RELEASE_HEIGHT_OFFSET", "Mound Offset",      0.0,  2.0,  0.05),
    ("PLATE_DEPTH",           "Plate Depth",     -70.0, -40.0, 0.5),
    ("SPIN_OFFSET_STEP",      "Spin Phase Step",   0.0,  1.0,  0.01),
]

PARAM_DEFAULTS = {attr: getattr(_kin, attr) for attr, *_ in KINEMATIC_PARAMS}

# ── Async frame loop ────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS


async def game_loop():
    """Main frame loop running at ~60 fps. Never stops on its own."""
    while True:
        now = time.perf_counter()

        # 1. Simulation step (no-op while paused)
        ctrl.step()

        # 2. Render handoff: build frame message and broadcast
        frame_msg = _build_frame_message()
        if clients:
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)

        # Sleep to maintain target FPS
        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _build_frame_message() -> str:
    """Serialize current state into a JSON frame message."""
    balls_data = []
    for key, pose in ctrl.render_state().items():
        balls_data.append({
            "type": key,
            "pos":  [round(v, 5) for v in pose["pos"]],
            "quat": [round(v, 5) for v in pose["quat"]],
        })

    # Drain pending events
    events = []
    for ev in ctrl.pending_events:
        if ev.get("type") == "spawn_ball":
            events.append({**ev, "color": pitch_color(ev["key"])})
        else:
            events.append(ev)
    ctrl.pending_events.clear()

    frame = {
        "type": "frame",
        "balls": balls_data,
        "events": events,
        "playing": ctrl.playing,
        "status": ctrl.status_msg,
        "plate_depth": _kin.PLATE_DEPTH,
    }
    return json.dumps(frame, separators=(',', ':'))


def _build_init_message() -> str:
    return json.dumps({
        "type": "init",
        "pitches": [{"type": key, "color": pitch_color(key)} for key in ctrl.pitch_data],
        "active": ctrl.registry.keys(),
        "playing": ctrl.playing,
        "ball_radius": BALL_RADIUS,
        "plate_depth": _kin.PLATE_DEPTH,
        "zone": {
            "width": STRIKE_ZONE_WIDTH,
            "height": STRIKE_ZONE_HEIGHT,
            "center": [0.0, STRIKE_ZONE_CENTER_Y, _kin.PLATE_DEPTH],
        },
        "camera": {"position": CAMERA_POSITION, "target": CAMERA_TARGET},
    })


# ── Physics params helpers ──────────────────────────────────────────────────

def _get_params_data() -> list:
    """Return all kinematic params with current values."""
    result = []
    for attr, label, mn, mx, step in KINEMATIC_PARAMS:
        result.append({
            "attr": attr, "label": label,
            "value": round(getattr(_kin, attr), 6),
            "min": mn, "max": mx, "step": step,
        })
    return result


def _adjust_param(idx: int, direction: int, fine: bool) -> float | None:
    if not 0 <= idx < len(KINEMATIC_PARAMS):
        return None
    attr, label, mn, mx, step = KINEMATIC_PARAMS[idx]
    s = step / 10.0 if fine else step
    cur = getattr(_kin, attr)
    new_val = max(mn, min(mx, cur + direction * s))
    setattr(_kin, attr, new_val)
    # PLATE_DEPTH is read per frame; the rest only when a trajectory is built
    if attr != "PLATE_DEPTH":
        ctrl.rebuild_active()
    return new_val


def _reset_params() -> None:
    for attr, dflt in PARAM_DEFAULTS.items():
        setattr(_kin, attr, dflt)
    ctrl.rebuild_active()


# ── HTTP routes ─────────────────────────────────────────────────────────────

@app.get("/api/pitches")
async def list_pitches():
    return {key: {**asdict(p), "color": pitch_color(key)}
            for key, p in ctrl.pitch_data.items()}


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)
    print(f"[WS] client connected ({len(clients)} total)")

    await ws.send_text(_build_init_message())

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue

            cmd = msg.get("cmd", "")
            if cmd == "select":
                ctrl.select(str(msg.get("type", "")))
            elif cmd == "deselect":
                ctrl.deselect(str(msg.get("type", "")))
            elif cmd == "toggle":
                ctrl.toggle_play()
            elif cmd == "get_state":
                await ws.send_text(json.dumps({
                    "type": "state_json",
                    "data": ctrl.get_state_json(),
                }))
            elif cmd == "get_flight":
                await ws.send_text(json.dumps({
                    "type": "flight",
                    "data": ctrl.flight_summary(str(msg.get("type", ""))),
                }))
            elif cmd == "get_params":
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
            elif cmd == "adjust_param":
                try:
                    idx = int(msg.get("index", 0))
                    direction = int(msg.get("direction", 0))
                except (TypeError, ValueError, OverflowError):
                    continue
                new_val = _adjust_param(idx, direction, bool(msg.get("fine", False)))
                if new_val is not None:
                    await ws.send_text(json.dumps({
                        "type": "param_update",
                        "index": idx,
                        "value": round(new_val, 6),
                        "plate_depth": _kin.PLATE_DEPTH,
                    }))
            elif cmd == "reset_params":
                _reset_params()
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        print(f"[WS] client disconnected ({len(clients)} left)")


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
