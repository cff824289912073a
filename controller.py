"""
PitchController — Layer 2 (Simulation State)

Owns the simulated clock, the set of active trajectories and the play/pause
state machine. Communicates with Layer 3 (server.py / main.py renderers) via:
  - pending_events  : rendering commands (spawn_ball, remove_ball, play_state)
  - render_state()  : {pitch_type: {"pos": [...], "quat": [...]}} every frame

Layer 3 calls:
  ctrl.step()                 — advance every trajectory once per frame
  ctrl.select(key) / ctrl.deselect(key)
  ctrl.toggle_play()
  ctrl.pending_events         — list of dicts to consume and act on
"""

import csv
import json
import time

from kinematics import (
    PitchParameters, Trajectory, compute_pose, reached_plate,
    flight_time, sample_flight,
)


# ──────────────────────────────────────────────────────────────────────────────
# Simulated clock
# ──────────────────────────────────────────────────────────────────────────────

class SimClock:
    """Elapsed simulated time that does not advance while stopped.

    ``time_fn`` is the wall-clock source (seconds, monotonic). Tests pass a
    fake one to control time exactly.
    """

    def __init__(self, time_fn=time.perf_counter, running: bool = True):
        self._time_fn = time_fn
        self._accumulated = 0.0
        self._started_at = time_fn() if running else None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def elapsed(self) -> float:
        if self._started_at is None:
            return self._accumulated
        return self._accumulated + (self._time_fn() - self._started_at)

    def stop(self) -> None:
        if self._started_at is None:
            return
        self._accumulated = self.elapsed()
        self._started_at = None

    def start(self) -> None:
        if self._started_at is not None:
            return
        self._started_at = self._time_fn()


# ──────────────────────────────────────────────────────────────────────────────
# Active trajectory set
# ──────────────────────────────────────────────────────────────────────────────

class TrajectoryRegistry:
    """Active trajectories keyed by pitch type. Iteration order is not meaningful."""

    def __init__(self):
        self._by_key: dict[str, Trajectory] = {}

    def add(self, key: str, pitch: PitchParameters, now: float) -> Trajectory | None:
        """Create and insert a trajectory; no-op (returns None) if `key` is active."""
        if key in self._by_key:
            return None
        traj = Trajectory.from_pitch(key, pitch, origin_time=now)
        self._by_key[key] = traj
        return traj

    def remove(self, key: str) -> Trajectory | None:
        return self._by_key.pop(key, None)

    def for_each(self, visitor) -> None:
        for traj in self._by_key.values():
            visitor(traj)

    def get(self, key: str) -> Trajectory | None:
        return self._by_key.get(key)

    def keys(self) -> list[str]:
        return list(self._by_key)

    def __contains__(self, key) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self._by_key)


# ──────────────────────────────────────────────────────────────────────────────
# Controller
# ──────────────────────────────────────────────────────────────────────────────

class PitchController:
    """Layer 2: trajectory registry + clock + per-frame advance."""

    # ── Class-level constants ─────────────────────────────────────────────────
    FLIGHT_SAMPLE_DT = 0.005
    CSV_HEADER = ["t", "x", "y", "z", "qx", "qy", "qz", "qw"]

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, pitch_data: dict | None = None, clock: SimClock | None = None):
        self.pitch_data: dict[str, PitchParameters] = dict(pitch_data or {})
        self.registry = TrajectoryRegistry()
        self.clock = clock if clock is not None else SimClock()

        self.playing = True
        if not self.clock.running:
            self.clock.start()

        # Status message (L3 reads this to update its text entity)
        self.status_msg = ""

        # Event queue (L3 rendering commands)
        self.pending_events: list[dict] = []

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self) -> None:
        """Advance every active trajectory to the current simulated time.

        Called every frame by L3. While paused nothing moves, so the last
        computed poses stay on screen.
        """
        if not self.playing:
            return
        now = self.clock.elapsed()
        self.registry.for_each(lambda traj: self._advance(traj, now))

    def _advance(self, traj: Trajectory, now: float) -> None:
        t = now - traj.origin_time
        if reached_plate(traj, t):
            # Restart from the release point; the pose is refreshed next frame.
            traj.origin_time = now
            traj.restarts += 1
            return
        traj.current_position, traj.current_orientation = compute_pose(traj, t)

    def render_state(self) -> dict:
        """Current pose of every active ball, keyed by pitch type."""
        state = {}
        for key in self.registry.keys():
            traj = self.registry.get(key)
            state[key] = {
                "pos":  [float(v) for v in traj.current_position],
                "quat": [float(v) for v in traj.current_orientation],
            }
        return state

    def elapsed_since_origin(self, key: str) -> float | None:
        traj = self.registry.get(key)
        if traj is None:
            return None
        return self.clock.elapsed() - traj.origin_time

    # ──────────────────────────────────────────────────────────────────────────
    # Selection events
    # ──────────────────────────────────────────────────────────────────────────

    def select(self, key: str) -> bool:
        """Start flying `key`. Returns True if a new ball was created."""
        pitch = self.pitch_data.get(key)
        if pitch is None:
            self.status_msg = f"Unknown pitch type '{key}'."
            print(f"[CTRL] select: unknown pitch type {key!r}")
            return False

        traj = self.registry.add(key, pitch, self.clock.elapsed())
        if traj is None:
            return False

        self.pending_events.append({"type": "spawn_ball", "key": key,
                                    "pos": [float(v) for v in traj.current_position]})
        self.status_msg = f"{key} added ({len(self.registry)} active)."
        return True

    def deselect(self, key: str) -> bool:
        """Stop flying `key`. Returns True if a ball was removed."""
        if self.registry.remove(key) is None:
            return False
        self.pending_events.append({"type": "remove_ball", "key": key})
        self.status_msg = f"{key} removed ({len(self.registry)} active)."
        return True

    def rebuild_active(self) -> None:
        """Recreate every active trajectory from its pitch record.

        Picks up edits to the build-time kinematic constants (release depth,
        mound offset, spin phase step). Each ball restarts from its new
        release point; the renderer keeps its entity since keys are unchanged.
        """
        now = self.clock.elapsed()
        for key in self.registry.keys():
            self.registry.remove(key)
            self.registry.add(key, self.pitch_data[key], now)

    def set_selection(self, keys) -> None:
        """Make the active set equal to `keys` (unknown keys are skipped)."""
        wanted = set(keys)
        for key in self.registry.keys():
            if key not in wanted:
                self.deselect(key)
        for key in keys:
            if key not in self.registry:
                self.select(key)

    # ──────────────────────────────────────────────────────────────────────────
    # Play / pause
    # ──────────────────────────────────────────────────────────────────────────

    def toggle_play(self) -> bool:
        """Flip Playing ⇄ Paused. Returns the new playing flag.

        Resuming restarts every ball from its release point on the resumed
        clock; pausing only freezes the clock.
        """
        self.playing = not self.playing
        if self.playing:
            self.clock.start()
            now = self.clock.elapsed()
            self.registry.for_each(lambda traj: traj.reset_to_release(now))
            self.status_msg = "Playing."
        else:
            self.clock.stop()
            self.status_msg = "Paused."
        self.pending_events.append({"type": "play_state", "playing": self.playing})
        return self.playing

    # ──────────────────────────────────────────────────────────────────────────
    # State export
    # ──────────────────────────────────────────────────────────────────────────

    def get_state_json(self) -> str:
        """Return the active set as compact single-line JSON."""
        balls = {}
        for key, pose in self.render_state().items():
            traj = self.registry.get(key)
            balls[key] = {
                "pos":  [round(v, 4) for v in pose["pos"]],
                "quat": [round(v, 4) for v in pose["quat"]],
                "t":    round(self.clock.elapsed() - traj.origin_time, 4),
                "restarts": traj.restarts,
            }
        return json.dumps({"playing": self.playing, "balls": balls}, separators=(',', ':'))

    def flight_summary(self, key: str) -> dict | None:
        """Flight time and plate crossing point for a loaded pitch type."""
        pitch = self.pitch_data.get(key)
        if pitch is None:
            return None
        traj = Trajectory.from_pitch(key, pitch)
        times, positions, _ = sample_flight(traj, self.FLIGHT_SAMPLE_DT)
        t_flight = flight_time(traj)
        arrives = t_flight != float("inf")
        return {
            "type": key,
            "flight_time": round(t_flight, 4) if arrives else None,
            "plate_pos": [round(float(v), 4) for v in positions[-1]] if arrives else None,
            "samples": int(times.size),
        }

    def export_flight_csv(self, key: str, path: str) -> bool:
        """Write one sampled flight of `key` to a CSV file."""
        pitch = self.pitch_data.get(key)
        if pitch is None:
            self.status_msg = f"Unknown pitch type '{key}'."
            return False

        traj = Trajectory.from_pitch(key, pitch)
        times, positions, orientations = sample_flight(traj, self.FLIGHT_SAMPLE_DT)
        try:
            with open(path, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow(self.CSV_HEADER)
                for t, p, q in zip(times, positions, orientations):
                    writer.writerow([f"{t:.4f}"] + [f"{v:.6f}" for v in p]
                                    + [f"{v:.6f}" for v in q])
        except OSError as e:
            print(f"[REC] Write failed: {e}")
            self.status_msg = f"Save failed: {e}"
            return False
        print(f"[REC] Saved {len(times)} samples → {path}")
        self.status_msg = f"Saved {key} flight → {path}"
        return True

    # ──────────────────────────────────────────────────────────────────────────
    # Text commands
    # ──────────────────────────────────────────────────────────────────────────

    def execute_command(self, text: str) -> None:
        """Parse a JSON command string and dispatch to handlers.

        {"cmd": "select"|"deselect", "type": "FF"}
        {"cmd": "toggle"}
        {"cmd": "save", "type": "FF", "file": "ff.csv"}
        """
        if not text:
            return
        try:
            data = json.loads(text.replace('\r', ''))
        except json.JSONDecodeError as exc:
            print(f"[CTRL] JSON parse error: {exc}")
            self.status_msg = f"JSON error: {exc}"
            return
        if not isinstance(data, dict):
            self.status_msg = "Command must be a JSON object."
            return

        cmd = str(data.get("cmd", "")).lower().strip()
        key = str(data.get("type", ""))
        if cmd == "select":
            self.select(key)
        elif cmd == "deselect":
            self.deselect(key)
        elif cmd == "toggle":
            self.toggle_play()
        elif cmd == "save":
            self.export_flight_csv(key, data.get("file") or f"flight_{key}.csv")
        else:
            self.status_msg = f"Unknown cmd '{cmd}'. Use select/deselect/toggle/save."
