"""Stay reporting: text blocks, CSV export and per-region totals."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import timedelta
from email.utils import format_datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from border_crossings.models import Region, Stay, region_sort_key
from border_crossings.timeutils import format_duration, to_local


def _duration_line(stay: Stay) -> str:
    if stay.duration is None:
        return "    | Duration Unknown"
    days = stay.duration // timedelta(days=1)
    return f"    | Duration: {days} Days ({format_duration(stay.duration)})"


def render_stay(stay: Stay, tz_name: str) -> str:
    """Render one stay as a text block.

    Example::

        Mon, 03 Jan 2022 09:12:00 +0800
            |
            | Canada
            | Ontario
            | Duration: 12 Days (12d 03:04:05)
            |
    """

    lines = [format_datetime(to_local(stay.start, tz_name)), "    |"]
    lines.extend(f"    | {name}" for name in stay.region.display_levels())
    lines.append(_duration_line(stay))
    lines.append("    |")
    return "\n".join(lines) + "\n"


def render_stays(stays: Iterable[Stay], tz_name: str) -> str:
    return "\n".join(render_stay(s, tz_name) for s in stays)


def stays_to_dicts(stays: Iterable[Stay], tz_name: str) -> list[dict[str, Any]]:
    """JSON-ready representation (open stays have null end/duration)."""

    out: list[dict[str, Any]] = []
    for s in stays:
        end = s.end
        out.append(
            {
                "start_time": to_local(s.start, tz_name).isoformat(sep=" "),
                "end_time": to_local(end, tz_name).isoformat(sep=" ") if end is not None else None,
                "duration_seconds": s.duration.total_seconds() if s.duration is not None else None,
                "last_seen": to_local(s.last_seen, tz_name).isoformat(sep=" "),
                "known": s.region.known,
                "levels": list(s.region.display_levels()),
            }
        )
    return out


def write_stays_csv(stays: Sequence[Stay], out_path: str | Path, tz_name: str) -> None:
    """Write stays to CSV (one row per stay, region levels as country/subregion columns)."""

    p = Path(out_path)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "stay_id",
                "start_time",
                "end_time",
                "duration_seconds",
                "duration_hhmmss",
                "country",
                "subregion",
                "last_seen",
            ],
        )
        w.writeheader()
        for i, s in enumerate(stays, start=1):
            levels = s.region.display_levels()
            end = s.end
            w.writerow(
                {
                    "stay_id": i,
                    "start_time": to_local(s.start, tz_name).isoformat(sep=" "),
                    "end_time": to_local(end, tz_name).isoformat(sep=" ") if end is not None else "",
                    "duration_seconds": f"{s.duration.total_seconds():.3f}" if s.duration is not None else "",
                    "duration_hhmmss": format_duration(s.duration) if s.duration is not None else "",
                    "country": levels[0],
                    "subregion": " / ".join(levels[1:]),
                    "last_seen": to_local(s.last_seen, tz_name).isoformat(sep=" "),
                }
            )


@dataclass(frozen=True, slots=True)
class RegionTotal:
    """Total time attributed to one region."""

    region: Region
    stays: int
    total: timedelta

    @property
    def total_hhmmss(self) -> str:
        return format_duration(self.total)


def summarize_regions(stays: Iterable[Stay]) -> list[RegionTotal]:
    """Sum time per region, sorted by region order.

    The open final stay contributes its observed span (start -> last record).
    """

    totals: dict[Region, list[Any]] = {}
    for s in stays:
        acc = totals.setdefault(s.region, [0, timedelta(0)])
        acc[0] += 1
        acc[1] += s.observed
    return [
        RegionTotal(region=r, stays=n, total=t)
        for r, (n, t) in sorted(totals.items(), key=lambda kv: region_sort_key(kv[0]))
    ]
