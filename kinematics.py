"""
Pitch Flight Visualizer — Kinematics Model
Constant-acceleration flight + spin orientation for recorded pitches.
"""

import math
import numpy as np
from scipy.spatial.transform import Rotation
from dataclasses import dataclass, field
from typing import Optional, Tuple

# ──────────────────────────────────────────────
# Constants (feet / seconds, display space)
# ──────────────────────────────────────────────
BALL_RADIUS: float = 0.145          # ft (rendered radius, exaggerated for visibility)
TWO_PI: float = 2.0 * math.pi

DEFAULT_SPIN_AXIS: Tuple[float, float, float] = (1.0, 0.0, 0.0)

# ── Runtime-editable behavior constants ───────────────────────────────────────
# server.py mutates these live via:
#   import kinematics as _kin;  _kin.PLATE_DEPTH = -55.0
# PLATE_DEPTH is read on every check. The other three are read when a
# Trajectory is built, so active balls must be rebuilt to pick them up
# (PitchController.rebuild_active).
RELEASE_DEPTH: float = -2.03        # display z of the release point
RELEASE_HEIGHT_OFFSET: float = 0.65 # added to recorded release height (mound)
PLATE_DEPTH: float = -60.5          # display z of the plate plane
SPIN_OFFSET_STEP: float = 0.25      # radians per hash unit for the spin phase


# ──────────────────────────────────────────────
# Spin helpers (quaternions are [x, y, z, w], Three.js order)
# ──────────────────────────────────────────────
def spin_rotation(axis: np.ndarray, angle: float) -> Rotation:
    """Rotation of `angle` radians about unit `axis`."""
    return Rotation.from_rotvec(np.asarray(axis, dtype=float) * angle)


def rpm_to_rad_per_sec(rpm: float) -> float:
    return rpm * TWO_PI / 60.0


def spin_axis_vector(axis_deg: Optional[float]) -> np.ndarray:
    """Spin axis angle (degrees, in the plate plane) → unit display vector."""
    theta = math.radians(axis_deg or 0.0)
    return np.array([math.cos(theta), math.sin(theta), 0.0])


def spin_phase_offset(key: str) -> float:
    """Deterministic initial spin phase for a pitch category.

    Polynomial hash over every character, scaled by SPIN_OFFSET_STEP and
    wrapped into [0, 2π). Keys sharing a first letter (FF, FT, FC …) still
    start at different phases.
    """
    h = 0
    for ch in key:
        h = h * 31 + ord(ch)
    return (h * SPIN_OFFSET_STEP) % TWO_PI


# ──────────────────────────────────────────────
# Data model
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class PitchParameters:
    """Recorded release parameters for one pitch type (source axes).

    Source frame: x lateral (catcher's view), y toward the plate,
    z vertical. Units are feet, ft/s, ft/s² and rpm.
    """
    pitch_type: str
    release_pos_x: float
    release_pos_z: float
    vx0: float
    vy0: float
    vz0: float
    ax: float
    ay: float
    az: float
    release_spin_rate: float = 0.0
    spin_axis: float = 0.0


def _frozen(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(eq=False)
class Trajectory:
    """One ball in flight, in display space (x right-handed lateral, y up, z depth)."""
    category_key: str
    release_position: np.ndarray
    initial_velocity: np.ndarray
    acceleration: np.ndarray
    spin_rate: float = 0.0                    # rad/s
    spin_axis: np.ndarray = field(default_factory=lambda: np.array(DEFAULT_SPIN_AXIS))
    spin_offset: float = 0.0                  # rad
    origin_time: float = 0.0
    restarts: int = 0

    def __post_init__(self):
        self.release_position = _frozen(self.release_position)
        self.initial_velocity = _frozen(self.initial_velocity)
        self.acceleration = _frozen(self.acceleration)

        axis = np.array(self.spin_axis, dtype=float)
        norm = np.linalg.norm(axis)
        if norm < 1e-12:
            axis = np.array(DEFAULT_SPIN_AXIS)
        else:
            axis = axis / norm
        self.spin_axis = _frozen(axis)

        self.base_rotation = spin_rotation(self.spin_axis, self.spin_offset)
        self.base_quat = _frozen(self.base_rotation.as_quat())
        self.current_position = self.release_position.copy()
        self.current_orientation = self.base_quat.copy()

    @classmethod
    def from_pitch(cls, key: str, pitch: PitchParameters,
                   origin_time: float = 0.0) -> "Trajectory":
        """Build a display-space trajectory from recorded release parameters.

        Lateral axis is mirrored; source vertical feeds display y and source
        depth feeds display z. Release depth is fixed at RELEASE_DEPTH.
        """
        return cls(
            category_key=key,
            release_position=[-pitch.release_pos_x,
                              pitch.release_pos_z + RELEASE_HEIGHT_OFFSET,
                              RELEASE_DEPTH],
            initial_velocity=[-pitch.vx0, pitch.vz0, pitch.vy0],
            acceleration=[-pitch.ax, pitch.az, pitch.ay],
            spin_rate=rpm_to_rad_per_sec(pitch.release_spin_rate or 0.0),
            spin_axis=spin_axis_vector(pitch.spin_axis),
            spin_offset=spin_phase_offset(key),
            origin_time=origin_time,
        )

    def reset_to_release(self, origin_time: float) -> None:
        """Put the ball back on the release point with a fresh time origin."""
        self.origin_time = origin_time
        self.current_position = self.release_position.copy()
        self.current_orientation = self.base_quat.copy()


# ──────────────────────────────────────────────
# Pose computation (pure)
# ──────────────────────────────────────────────
def position_at(traj: Trajectory, t: float) -> np.ndarray:
    """p(t) = p0 + v0·t + ½·a·t², all three axes."""
    return traj.release_position + traj.initial_velocity * t + 0.5 * traj.acceleration * t * t


def depth_at(traj: Trajectory, t: float) -> float:
    """Depth component only; enough for the plate check."""
    return float(traj.release_position[2]
                 + traj.initial_velocity[2] * t
                 + 0.5 * traj.acceleration[2] * t * t)


def orientation_at(traj: Trajectory, t: float) -> np.ndarray:
    """base ∘ rotation(spin_axis, spin_rate·t)."""
    spin_step = spin_rotation(traj.spin_axis, traj.spin_rate * t)
    return (traj.base_rotation * spin_step).as_quat()


def compute_pose(traj: Trajectory, t: float) -> Tuple[np.ndarray, np.ndarray]:
    """Position and orientation `t` seconds after the trajectory's origin."""
    return position_at(traj, t), orientation_at(traj, t)


def reached_plate(traj: Trajectory, t: float) -> bool:
    return depth_at(traj, t) <= PLATE_DEPTH


# ──────────────────────────────────────────────
# Flight analysis
# ──────────────────────────────────────────────
def flight_time(traj: Trajectory) -> float:
    """Seconds from release until the depth equation reaches PLATE_DEPTH.

    Smallest non-negative root of ½·a·t² + v·t + (z0 - plate) = 0.
    Returns inf when the ball never gets there.
    """
    a = 0.5 * float(traj.acceleration[2])
    b = float(traj.initial_velocity[2])
    c = float(traj.release_position[2]) - PLATE_DEPTH
    if c <= 0.0:
        return 0.0

    if abs(a) < 1e-12:
        if b >= 0.0:
            return math.inf
        return -c / b

    disc = b * b - 4.0 * a * c
    if disc < 0.0:
        return math.inf
    sq = math.sqrt(disc)
    roots = [r for r in ((-b - sq) / (2.0 * a), (-b + sq) / (2.0 * a)) if r >= 0.0]
    return min(roots) if roots else math.inf


def sample_flight(traj: Trajectory, dt: float = 0.01,
                  max_time: float = 5.0) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Sample one flight from release to the plate plane.

    Args:
        traj: Trajectory to sample (not modified).
        dt: Sample spacing in seconds.
        max_time: Upper bound when the ball never reaches the plate.

    Returns:
        (times, positions, orientations) with shapes (N,), (N, 3), (N, 4).
        The last sample sits exactly on the plate crossing when one exists.
    """
    if dt <= 0.0:
        raise ValueError(f"dt must be positive, got {dt}")

    t_end = min(flight_time(traj), max_time)
    times = np.arange(0.0, t_end, dt)
    if times.size == 0 or times[-1] < t_end:
        times = np.append(times, t_end)

    positions = np.array([position_at(traj, t) for t in times])
    orientations = np.array([orientation_at(traj, t) for t in times])
    return times, positions, orientations
