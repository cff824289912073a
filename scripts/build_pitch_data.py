"""Build pitch_data.json from a Statcast CSV export (one row per pitch).

Averages the release parameters of every pitch type and writes the
{pitch_type: {...}} document the visualizer loads.

    python scripts/build_pitch_data.py savant_export.csv -o pitch_data.json
"""

import argparse
import csv
import json
import os
import sys

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from pitch_data import REQUIRED_FIELDS, OPTIONAL_FIELDS, parse_pitch_data

FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS


def _to_float(raw):
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def aggregate_rows(rows, min_count: int = 1) -> dict:
    """Mean of every field per pitch type.

    Rows missing a required field are skipped; optional fields average over
    the rows that have them and become null when none do.
    """
    samples: dict[str, dict[str, list]] = {}
    for row in rows:
        pitch_type = (row.get("pitch_type") or "").strip()
        if not pitch_type:
            continue
        values = {name: _to_float(row.get(name)) for name in FIELDS}
        if any(values[name] is None for name in REQUIRED_FIELDS):
            continue
        bucket = samples.setdefault(pitch_type, {name: [] for name in FIELDS})
        for name, v in values.items():
            if v is not None:
                bucket[name].append(v)

    doc = {}
    for pitch_type, bucket in sorted(samples.items()):
        if len(bucket["vy0"]) < min_count:
            continue
        doc[pitch_type] = {
            name: (round(float(np.mean(vals)), 3) if vals else None)
            for name, vals in bucket.items()
        }
    return doc


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("csv_path")
    parser.add_argument("-o", "--output", default="pitch_data.json")
    parser.add_argument("--min-count", type=int, default=5,
                        help="drop pitch types with fewer pitches")
    args = parser.parse_args(argv)

    with open(args.csv_path, newline="", encoding="utf-8") as f:
        doc = aggregate_rows(csv.DictReader(f), args.min_count)

    parse_pitch_data(doc)   # refuse to write what the loader would reject
    with open(args.output, "w", encoding="utf-8") as f:
        json.dump(doc, f, indent=2)
    print(f"[DATA] Wrote {len(doc)} pitch type(s) → {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
