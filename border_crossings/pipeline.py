"""End-to-end glue: raw Takeout records -> stays."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Iterator, TypeVar

from border_crossings.crossings import CrossingOptions, count_crossings, iter_stays, mark_gaps
from border_crossings.geocode import NominatimRegionResolver, resolve_records
from border_crossings.models import LocationRecord, RawRecord, Stay
from border_crossings.sources import filter_sources

logger = logging.getLogger(__name__)

T = TypeVar("T", RawRecord, LocationRecord)


def clip_records(
    records: Iterable[T],
    start: datetime | None = None,
    end: datetime | None = None,
) -> Iterator[T]:
    """Keep records whose timestamp falls in the inclusive range [start, end]."""

    for rec in records:
        if start is not None and rec.timestamp < start:
            continue
        if end is not None and rec.timestamp > end:
            continue
        yield rec


def build_itinerary(
    records: Iterable[RawRecord],
    resolver: NominatimRegionResolver,
    options: CrossingOptions,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Stay]:
    """Run the whole chain on time-sorted raw records.

    Order: source filter -> range clip -> region resolution -> gap marking -> detection.
    """

    kept = filter_sources(records, options.exclude_sources)
    kept = clip_records(kept, start, end)
    resolved = resolve_records(kept, resolver)
    stays = list(iter_stays(mark_gaps(resolved, options.max_gap), options))
    logger.info(
        "识别到 %s 段停留（跨越 %s 次），geocode: cache=%s requests=%s failed=%s",
        len(stays),
        count_crossings(stays),
        resolver.stats.cache_hits,
        resolver.stats.requests,
        resolver.stats.failures,
    )
    return stays
