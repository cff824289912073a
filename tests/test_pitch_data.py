"""
Tests for the pitch data loader and the Statcast CSV builder.
"""

import sys
import os
import json
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

from pitch_data import (
    DEFAULT_DATA_PATH, DEFAULT_PITCH_COLOR, PitchDataError,
    hex_to_rgb, load_pitch_data, parse_pitch, parse_pitch_data, pitch_color,
)
from build_pitch_data import aggregate_rows, main as build_main


GOOD_RECORD = {
    "release_pos_x": -1.8, "release_pos_z": 5.9,
    "vx0": 6.2, "vy0": -137.0, "vz0": -6.5,
    "ax": -10.5, "ay": 30.0, "az": -14.0,
    "release_spin_rate": 2350, "spin_axis": 210,
}


class TestParsePitch:

    def test_good_record(self):
        p = parse_pitch("FF", GOOD_RECORD)
        assert p.pitch_type == "FF"
        assert p.vy0 == -137.0
        assert p.release_spin_rate == 2350.0
        assert isinstance(p.spin_axis, float)

    @pytest.mark.parametrize("field", ["release_spin_rate", "spin_axis"])
    def test_spin_fields_optional(self, field):
        record = {k: v for k, v in GOOD_RECORD.items() if k != field}
        assert getattr(parse_pitch("FF", record), field) == 0.0

    def test_null_spin_is_zero(self):
        record = dict(GOOD_RECORD, release_spin_rate=None, spin_axis=None)
        p = parse_pitch("KN", record)
        assert p.release_spin_rate == 0.0
        assert p.spin_axis == 0.0

    @pytest.mark.parametrize("field", ["release_pos_x", "release_pos_z", "vx0", "vy0",
                                       "vz0", "ax", "ay", "az"])
    def test_missing_kinematic_field_rejected(self, field):
        record = {k: v for k, v in GOOD_RECORD.items() if k != field}
        with pytest.raises(PitchDataError, match=field):
            parse_pitch("FF", record)

    @pytest.mark.parametrize("bad", ["fast", None, True, float("nan"), [1.0]])
    def test_non_numeric_rejected(self, bad):
        with pytest.raises(PitchDataError):
            parse_pitch("FF", dict(GOOD_RECORD, vy0=bad))

    def test_record_must_be_object(self):
        with pytest.raises(PitchDataError):
            parse_pitch("FF", [1, 2, 3])


class TestParseDocument:

    def test_top_level_must_be_object(self):
        with pytest.raises(PitchDataError):
            parse_pitch_data([GOOD_RECORD])

    def test_one_bad_record_refuses_all(self):
        doc = {"FF": GOOD_RECORD, "SL": {"vx0": 1.0}}
        with pytest.raises(PitchDataError):
            parse_pitch_data(doc)

    def test_keeps_file_order(self):
        doc = {"SL": GOOD_RECORD, "FF": GOOD_RECORD, "CU": GOOD_RECORD}
        assert list(parse_pitch_data(doc)) == ["SL", "FF", "CU"]


class TestLoadFile:

    def test_bundled_data_loads(self):
        pitches = load_pitch_data(DEFAULT_DATA_PATH)
        assert "FF" in pitches
        assert all(p.vy0 < 0 for p in pitches.values())

    def test_env_override(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"CH": GOOD_RECORD}))
        monkeypatch.setenv("PITCH_DATA_PATH", str(path))
        assert list(load_pitch_data()) == ["CH"]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{ nope")
        with pytest.raises(PitchDataError):
            load_pitch_data(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_pitch_data(tmp_path / "absent.json")


class TestColors:

    def test_known_and_default(self):
        assert pitch_color("FF") == "#FF0000"
        assert pitch_color("XX") == DEFAULT_PITCH_COLOR

    def test_hex_to_rgb(self):
        assert hex_to_rgb("#20B2AA") == (32, 178, 170)


class TestBuildPitchData:

    ROWS = [
        {"pitch_type": "FF", "release_pos_x": "-1.0", "release_pos_z": "6.0",
         "vx0": "5", "vy0": "-130", "vz0": "-6", "ax": "-10", "ay": "30", "az": "-15",
         "release_spin_rate": "2300", "spin_axis": "200"},
        {"pitch_type": "FF", "release_pos_x": "-2.0", "release_pos_z": "5.0",
         "vx0": "7", "vy0": "-140", "vz0": "-8", "ax": "-12", "ay": "32", "az": "-13",
         "release_spin_rate": "", "spin_axis": "220"},
        {"pitch_type": "SL", "release_pos_x": "-1.5", "release_pos_z": "5.5",
         "vx0": "2", "vy0": "", "vz0": "-3", "ax": "5", "ay": "24", "az": "-30",
         "release_spin_rate": "2500", "spin_axis": "150"},
        {"pitch_type": "", "vy0": "-120"},
    ]

    def test_means_per_type(self):
        doc = aggregate_rows(self.ROWS)
        assert list(doc) == ["FF"]          # SL row lacks vy0, blank type skipped
        ff = doc["FF"]
        assert ff["release_pos_x"] == -1.5
        assert ff["vy0"] == -135.0
        assert ff["release_spin_rate"] == 2300.0   # blank value ignored
        assert ff["spin_axis"] == 210.0

    def test_min_count(self):
        assert aggregate_rows(self.ROWS, min_count=3) == {}

    def test_cli_writes_loadable_file(self, tmp_path):
        csv_path = tmp_path / "savant.csv"
        header = list(self.ROWS[0])
        lines = [",".join(header)]
        for row in self.ROWS[:2]:
            lines.append(",".join(row[h] for h in header))
        csv_path.write_text("\n".join(lines) + "\n")
        out = tmp_path / "pitch_data.json"

        assert build_main([str(csv_path), "-o", str(out), "--min-count", "1"]) == 0
        assert list(load_pitch_data(out)) == ["FF"]
