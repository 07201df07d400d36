from __future__ import annotations

import argparse
import json
import random
import zipfile
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from border_crossings.geocode import coord_key
from border_crossings.takeout import RECORDS_MEMBER


@dataclass(frozen=True, slots=True)
class Place:
    country: str
    state: str
    lat: float
    lon: float


SOURCES = ["WIFI", "GPS", "CELL", "UNKNOWN", None]


def generate_locations(
    *,
    rows: int,
    seed: int,
    start: datetime,
    places: list[Place],
) -> tuple[list[dict[str, Any]], dict[str, Place]]:
    """Generate fake Records.json entries hopping between places.

    Returns:
        (locations, place_by_cache_key)
    """

    rng = random.Random(seed)
    cur = start
    place = places[0]
    out: list[dict[str, Any]] = []
    seen: dict[str, Place] = {}

    for _ in range(rows):
        # Occasionally fly to another place
        if rng.random() < 0.02:
            place = rng.choice(places)

        lat = place.lat + rng.uniform(-0.001, 0.001)
        lon = place.lon + rng.uniform(-0.001, 0.001)

        # Usually 5-60 minutes, sometimes the phone is off for 1-3 days
        if rng.random() < 0.01:
            cur = cur + timedelta(days=rng.uniform(1, 3))
        else:
            cur = cur + timedelta(minutes=rng.uniform(5, 60))

        entry: dict[str, Any] = {
            "latitudeE7": int(round(lat * 1e7)),
            "longitudeE7": int(round(lon * 1e7)),
            "accuracy": rng.choice([5, 10, 20, 50, 800]),
            "timestamp": cur.strftime("%Y-%m-%dT%H:%M:%S.") + f"{cur.microsecond // 1000:03d}Z",
        }
        source = rng.choice(SOURCES)
        if source is not None:
            entry["source"] = source
        out.append(entry)
        seen[coord_key(lat, lon, 2)] = place

    return out, seen


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a fake Takeout Records.json for demo/testing (privacy-safe).")
    p.add_argument("--out", type=str, default="sample_data/takeout.zip", help="Output .zip or .json path")
    p.add_argument("--rows", type=int, default=2000, help="Number of records")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument("--start", type=str, default="2023-01-01 08:00:00", help="Start time (UTC)")
    p.add_argument(
        "--cache-out",
        type=str,
        default="sample_data/region_cache.json",
        help="Also write a region cache so the demo runs without network",
    )
    args = p.parse_args()

    start = datetime.fromisoformat(args.start).replace(tzinfo=UTC)
    places = [
        Place("Canada", "Ontario", 43.6532, -79.3832),
        Place("Canada", "British Columbia", 49.2827, -123.1207),
        Place("Japan", "Tokyo", 35.6762, 139.6503),
        Place("United States", "New York", 40.7128, -74.0060),
        Place("United States", "California", 37.7749, -122.4194),
    ]

    locations, place_by_key = generate_locations(rows=args.rows, seed=args.seed, start=start, places=places)
    payload = json.dumps({"locations": locations}, indent=2)

    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if out_path.suffix == ".zip":
        with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(RECORDS_MEMBER, payload)
    else:
        out_path.write_text(payload, encoding="utf-8")

    if args.cache_out:
        cache = {
            k: {"address": {"country": pl.country, "state": pl.state}, "display_name": f"{pl.state}, {pl.country}"}
            for k, pl in place_by_key.items()
        }
        cache_path = Path(args.cache_out)
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_text(json.dumps(cache, ensure_ascii=False, indent=2), encoding="utf-8")

    print(f"Generated: {out_path} (rows={len(locations)}, seed={args.seed})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
