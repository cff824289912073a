"""
Pitch Flight Visualizer -- desktop viewer
Layer 3: Ursina rendering / input handling.
Layer 2: controller.py (PitchController)
Layer 1: kinematics.py (Trajectory, compute_pose)

Click a pitch button (or press 1-9) to toggle that pitch, Space to pause/play.
"""

import os
import tempfile
from ursina import (
    Ursina, Entity, Text, Button, camera, color, window,
    Vec3, Texture, destroy,
)
from PIL import Image, ImageDraw
from panda3d.core import Quat

from controller import PitchController
from kinematics import BALL_RADIUS
import kinematics as _kin
from pitch_data import load_pitch_data, pitch_color, hex_to_rgb

# ── Layer 2: controller instance ──────────────────────────────────────────────
ctrl = PitchController(load_pitch_data())

# ──────────────────────────────────────────
# Two-tone ball texture (PIL)
# ──────────────────────────────────────────

_tex_dir = tempfile.mkdtemp(prefix="pitchviz_tex_")
_tex_cache = {}


def _make_two_tone_texture(tint_rgb, size=256):
    """Half white, half tinted on the UV map -> spin is visible on the sphere."""
    img = Image.new("RGB", (size, size), (245, 245, 245))
    draw = ImageDraw.Draw(img)
    draw.rectangle([size // 2, 0, size - 1, size - 1], fill=tint_rgb)
    return img


def _get_texture(key):
    """Return or create the texture for a pitch type."""
    if key in _tex_cache:
        return _tex_cache[key]
    img = _make_two_tone_texture(hex_to_rgb(pitch_color(key)))
    tex_path = os.path.join(_tex_dir, f"tex_{key}.png")
    img.save(tex_path)
    tex = Texture(tex_path)
    _tex_cache[key] = tex
    return tex


# ──────────────────────────────────────────
# Frame conversion (Three.js display space -> Ursina)
# ──────────────────────────────────────────
# Ursina is left-handed, so the lateral axis is mirrored. Panda3D stores
# nodes z-up, so the quaternion vector part is (x, y, z) -> (-x, z, y).

def _to_vec3(pos):
    return Vec3(-pos[0], pos[1], pos[2])


def _to_quat(q):
    x, y, z, w = q
    return Quat(w, -x, z, y)


# ──────────────────────────────────────────
# Ursina App
# ──────────────────────────────────────────

app = Ursina(borderless=False, title="Pitch Flight Visualizer", size=(1280, 800))
window.color = color.hsv(0, 0, 0.13)

# ── Field ─────────────────────────────────
ground = Entity(
    model="plane",
    color=color.hsv(143, 0.58, 0.28),
    scale=(200, 1, 200),
    position=(0, 0, 0),
)

ZONE_W, ZONE_H, ZONE_Y = 1.42, 2.0, 2.5

strike_zone = Entity(
    model="quad",
    color=color.hsv(180, 1, 1, 0.25),
    scale=(ZONE_W, ZONE_H),
    position=(0, ZONE_Y, _kin.PLATE_DEPTH),
    double_sided=True,
)

plate = Entity(
    model="cube",
    color=color.white,
    scale=(1.7, 0.02, 1.0),
    position=(0, 0.011, _kin.PLATE_DEPTH + 0.5),
)

# ── Ball entities (L3 owns these) ─────────────────────────────────────────────
ball_entities: dict[str, Entity] = {}

# ── UI ────────────────────────────────────────────────────────────────────────
status_text = Text(
    text="",
    position=(-0.85, 0.42),
    scale=1.0,
    color=color.light_gray,
)

pitch_buttons: dict[str, Button] = {}

play_button = Button(
    text="Pause",
    scale=(0.1, 0.04),
    position=(-0.8, 0.36),
    color=color.dark_gray,
)

# ── Camera ────────────────────────────────────────────────────────────────────
camera.position = (0, 2.5, -65)
camera.look_at(Vec3(0, 2.5, 0))
camera.fov = 60


# ──────────────────────────────────────────
# Helper functions (L3 only)
# ──────────────────────────────────────────

_drawn_plate_depth = _kin.PLATE_DEPTH


def _sync_plate_depth():
    """Follow live edits of PLATE_DEPTH."""
    global _drawn_plate_depth
    if _drawn_plate_depth != _kin.PLATE_DEPTH:
        _drawn_plate_depth = _kin.PLATE_DEPTH
        strike_zone.z = _drawn_plate_depth
        plate.z = _drawn_plate_depth + 0.5


def _spawn_ball(key, pos):
    """Create an Ursina entity for a trajectory."""
    if key in ball_entities:
        return ball_entities[key]
    ent = Entity(
        model="sphere",
        texture=_get_texture(key),
        scale=BALL_RADIUS * 2,
        position=_to_vec3(pos),
    )
    ball_entities[key] = ent
    return ent


def _remove_ball(key):
    ent = ball_entities.pop(key, None)
    if ent is not None:
        destroy(ent)


def _refresh_buttons():
    for key, btn in pitch_buttons.items():
        btn.color = color.hex(pitch_color(key)) if key in ctrl.registry else color.dark_gray
    play_button.text = "Pause" if ctrl.playing else "Play"


def _toggle_pitch(key):
    if key in ctrl.registry:
        ctrl.deselect(key)
    else:
        ctrl.select(key)
    _refresh_buttons()


def _toggle_play():
    ctrl.toggle_play()
    _refresh_buttons()


def _build_pitch_buttons():
    for i, key in enumerate(ctrl.pitch_data):
        btn = Button(
            text=key,
            scale=(0.06, 0.04),
            position=(-0.8 + i * 0.07, 0.3),
            color=color.dark_gray,
        )
        btn.on_click = lambda k=key: _toggle_pitch(k)
        pitch_buttons[key] = btn
    play_button.on_click = _toggle_play


def _handle_controller_event(ev: dict):
    t = ev["type"]
    if t == "spawn_ball":
        _spawn_ball(ev["key"], ev["pos"])
    elif t == "remove_ball":
        _remove_ball(ev["key"])
    elif t == "play_state":
        _refresh_buttons()


_build_pitch_buttons()


# ──────────────────────────────────────────
# Input handler
# ──────────────────────────────────────────

def input(key):
    if key == "space":
        _toggle_play()
    elif key.isdigit() and key != "0":
        keys = list(ctrl.pitch_data)
        idx = int(key) - 1
        if idx < len(keys):
            _toggle_pitch(keys[idx])


# ──────────────────────────────────────────
# Update loop
# ──────────────────────────────────────────

def update():
    # ── Simulation step → controller ──────────────────────────────────────────
    ctrl.step()

    # ── Process pending events (L2 → L3 rendering commands) ──────────────────
    for ev in ctrl.pending_events:
        _handle_controller_event(ev)
    ctrl.pending_events.clear()

    _sync_plate_depth()

    if ctrl.status_msg and status_text.text != ctrl.status_msg:
        status_text.text = ctrl.status_msg

    # ── Ball entity position/rotation sync ────────────────────────────────────
    for key, pose in ctrl.render_state().items():
        ent = ball_entities.get(key)
        if ent is None:
            continue
        ent.position = _to_vec3(pose["pos"])
        ent.setQuat(_to_quat(pose["quat"]))


# ──────────────────────────────────────────
# Run
# ──────────────────────────────────────────

if __name__ == "__main__":
    app.run()
