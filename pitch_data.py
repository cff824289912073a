"""
Pitch data loader — reads pitch_data.json into PitchParameters records.

The document maps a pitch-type code to its averaged release parameters:

    {"FF": {"release_pos_x": -1.8, "release_pos_z": 5.9,
            "vx0": 6.2, "vy0": -137.0, "vz0": -6.5,
            "ax": -10.5, "ay": 30.0, "az": -14.0,
            "release_spin_rate": 2350, "spin_axis": 210}, ...}

A malformed document is refused as a whole; nothing partial reaches the
controller.
"""

import json
import math
import os
from pathlib import Path

from kinematics import PitchParameters

DEFAULT_DATA_PATH = Path(__file__).resolve().parent / "pitch_data.json"

REQUIRED_FIELDS = ("release_pos_x", "release_pos_z",
                   "vx0", "vy0", "vz0", "ax", "ay", "az")
OPTIONAL_FIELDS = ("release_spin_rate", "spin_axis")

# Display colours per pitch type (hemisphere tint on the ball)
PITCH_COLORS = {
    "FF": "#FF0000",   # four-seam fastball
    "FT": "#8B0000",   # two-seam fastball
    "SI": "#FFA500",   # sinker
    "FC": "#808080",   # cutter
    "SL": "#0000FF",   # slider
    "ST": "#008080",   # sweeper
    "CU": "#800080",   # curveball
    "KC": "#4B0082",   # knuckle curve
    "CH": "#008000",   # changeup
    "FS": "#4682B4",   # splitter
    "FO": "#B22222",   # forkball
    "CS": "#9370DB",   # slow curve
    "KN": "#FFFF00",   # knuckleball
    "EP": "#A0522D",   # eephus
    "SV": "#20B2AA",   # slurve
}
DEFAULT_PITCH_COLOR = "#AAAAAA"


class PitchDataError(ValueError):
    """Raised when a pitch data document cannot be turned into parameters."""


def pitch_color(pitch_type: str) -> str:
    return PITCH_COLORS.get(pitch_type, DEFAULT_PITCH_COLOR)


def hex_to_rgb(hex_color: str) -> tuple:
    """'#RRGGBB' → (r, g, b) ints."""
    h = hex_color.lstrip("#")
    return tuple(int(h[i:i + 2], 16) for i in (0, 2, 4))


def _number(pitch_type: str, name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PitchDataError(f"{pitch_type}.{name}: expected a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise PitchDataError(f"{pitch_type}.{name}: not finite ({value})")
    return value


def parse_pitch(pitch_type: str, record) -> PitchParameters:
    """Validate one record and build its PitchParameters.

    Kinematic fields are required. Spin rate / axis may be absent or null
    and then default to 0 (no spin).
    """
    if not isinstance(record, dict):
        raise PitchDataError(f"{pitch_type}: record must be an object, got {type(record).__name__}")

    values = {}
    for name in REQUIRED_FIELDS:
        if name not in record:
            raise PitchDataError(f"{pitch_type}: missing field '{name}'")
        values[name] = _number(pitch_type, name, record[name])

    for name in OPTIONAL_FIELDS:
        raw = record.get(name)
        values[name] = 0.0 if raw is None else _number(pitch_type, name, raw)

    return PitchParameters(pitch_type=pitch_type, **values)


def parse_pitch_data(data) -> dict:
    """Turn a decoded JSON document into {pitch_type: PitchParameters}."""
    if not isinstance(data, dict):
        raise PitchDataError(f"top level must be an object, got {type(data).__name__}")
    pitches = {}
    for pitch_type, record in data.items():
        if not pitch_type:
            raise PitchDataError("empty pitch type key")
        pitches[pitch_type] = parse_pitch(pitch_type, record)
    return pitches


def load_pitch_data(path=None) -> dict:
    """
    Load and validate a pitch data file.

    Args:
        path: JSON file. Defaults to $PITCH_DATA_PATH, then DEFAULT_DATA_PATH.

    Returns:
        dict mapping pitch type → PitchParameters, in file order.

    Raises:
        PitchDataError: on invalid JSON or an invalid record.
        OSError: when the file cannot be read.
    """
    if path is None:
        path = os.environ.get("PITCH_DATA_PATH") or DEFAULT_DATA_PATH
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise PitchDataError(f"{path.name}: invalid JSON ({exc})") from exc
    pitches = parse_pitch_data(data)
    print(f"[DATA] Loaded {len(pitches)} pitch type(s) from {path}")
    return pitches
