"""Crossing detection: collapse region-tagged records into stays."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Iterator

from border_crossings.models import (
    UNKNOWN_REGION,
    UNRESOLVED,
    LocationRecord,
    Region,
    Resolution,
    Resolved,
    Source,
    Stay,
)
from border_crossings.sources import filter_sources


@dataclass(frozen=True, slots=True)
class CrossingOptions:
    """Policies controlling how records become stays."""

    # Records with these sources never reach the detector.
    exclude_sources: frozenset[Source] = field(default_factory=frozenset)
    # Compare and report the country level only.
    ignore_subregions: bool = False
    # Unresolved records inherit the previous region instead of forming an unknown stay.
    ignore_missing_data: bool = False
    # Silence longer than this is treated as missing data. None disables.
    max_gap: timedelta | None = None


def effective_region(resolution: Resolution, options: CrossingOptions) -> Region:
    """Region used for change comparison and display.

    Unresolved records map to UNKNOWN_REGION here; bridging them under
    ``ignore_missing_data`` needs the running state and happens in iter_stays.
    """

    if isinstance(resolution, Resolved):
        if options.ignore_subregions:
            return resolution.region.country()
        return resolution.region
    return UNKNOWN_REGION


def iter_stays(records: Iterable[LocationRecord], options: CrossingOptions | None = None) -> Iterator[Stay]:
    """Detect stays in a single pass.

    Args:
        records: Records sorted by timestamp. Equal timestamps keep input order.
        options: Detection policies; excluded sources are dropped first.

    Yields:
        Stays in start order. The last one is open (``duration is None``).

    Notes:
        Leading unresolved records under ``ignore_missing_data`` have nothing to inherit;
        the first stay is backdated to the first record and takes the first resolved region.
        If nothing resolves at all, one unknown stay covers the input.
    """

    opts = options or CrossingOptions()
    records = filter_sources(records, opts.exclude_sources)
    current: Region | None = None
    stay_start: datetime | None = None
    last_seen: datetime | None = None
    # first timestamp of a leading unresolved run waiting for a region
    pending_start: datetime | None = None

    for rec in records:
        unresolved = not isinstance(rec.resolution, Resolved)
        if unresolved and opts.ignore_missing_data:
            if current is None:
                if pending_start is None:
                    pending_start = rec.timestamp
            last_seen = rec.timestamp
            continue

        region = effective_region(rec.resolution, opts)
        if current is None:
            current = region
            stay_start = pending_start if pending_start is not None else rec.timestamp
            pending_start = None
        elif region != current:
            yield Stay(
                start=stay_start,
                region=current,
                duration=rec.timestamp - stay_start,
                last_seen=last_seen,
            )
            current = region
            stay_start = rec.timestamp
        last_seen = rec.timestamp

    if current is not None:
        yield Stay(start=stay_start, region=current, duration=None, last_seen=last_seen)
    elif pending_start is not None:
        yield Stay(start=pending_start, region=UNKNOWN_REGION, duration=None, last_seen=last_seen)


def process(records: Iterable[LocationRecord], options: CrossingOptions | None = None) -> list[Stay]:
    """Run crossing detection and return all stays."""

    return list(iter_stays(records, options))


def mark_gaps(records: Iterable[LocationRecord], max_gap: timedelta | None) -> Iterator[LocationRecord]:
    """Insert an unresolved marker wherever consecutive records are more than max_gap apart.

    The marker sits at ``previous.timestamp + max_gap`` so the silence after that point
    becomes missing data for the detector.
    """

    if max_gap is None or max_gap <= timedelta(0):
        yield from records
        return

    prev: LocationRecord | None = None
    for rec in records:
        if prev is not None and rec.timestamp - prev.timestamp > max_gap:
            yield LocationRecord(timestamp=prev.timestamp + max_gap, source=Source.NONE, resolution=UNRESOLVED)
        yield rec
        prev = rec


def count_crossings(stays: Iterable[Stay]) -> int:
    """Number of region changes, i.e. stays minus one."""

    n = sum(1 for _ in stays)
    return max(0, n - 1)
