from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Callable, Sequence

import pytest

from border_crossings.models import UNRESOLVED, LocationRecord, Region, Resolved, Source

T0 = datetime(2023, 1, 1, tzinfo=UTC)


def _record(hours: float, levels: Sequence[str] | None, source: Source = Source.GPS) -> LocationRecord:
    resolution = Resolved(Region.of(*levels)) if levels else UNRESOLVED
    return LocationRecord(timestamp=T0 + timedelta(hours=hours), source=source, resolution=resolution)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def make_records() -> Callable[..., list[LocationRecord]]:
    """Build records one hour apart from level tuples; None means unresolved.

    Items may also be (levels, source) pairs.
    """

    def factory(*items, step_hours: float = 1.0) -> list[LocationRecord]:
        out = []
        for i, item in enumerate(items):
            if isinstance(item, tuple) and len(item) == 2 and isinstance(item[1], Source):
                levels, source = item
            else:
                levels, source = item, Source.GPS
            out.append(_record(i * step_hours, levels, source))
        return out

    return factory
