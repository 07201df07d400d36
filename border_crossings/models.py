"""Data models for location records, regions and stays."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Final, Union


class Source(str, Enum):
    """Provenance tag of a raw location fix."""

    WIFI = "wifi"
    GPS = "gps"
    CELL = "cell"
    UNKNOWN = "unknown"
    # the Takeout entry had no source field at all
    NONE = "none"


@dataclass(frozen=True, slots=True)
class Region:
    """An administrative area, levels ordered broad to narrow.

    Attributes:
        levels: Level names, e.g. ("Canada", "Ontario").
        known: False only for the distinguished unknown region.
    """

    levels: tuple[str, ...]
    known: bool = True

    def __post_init__(self) -> None:
        if self.known and not self.levels:
            raise ValueError("已知区域至少需要一个层级名称")
        if not self.known and self.levels:
            raise ValueError("未知区域不能带层级名称")

    @classmethod
    def of(cls, *levels: str) -> Region:
        """Build a known region from level names, dropping empty ones."""

        return cls(levels=tuple(name for name in levels if name))

    @property
    def depth(self) -> int:
        return len(self.levels)

    def country(self) -> Region:
        """Collapse to the broadest level. Unknown stays unknown."""

        if not self.known or self.depth == 1:
            return self
        return Region(levels=self.levels[:1])

    def display_levels(self) -> tuple[str, ...]:
        """Names to print, broad to narrow."""

        if not self.known:
            return ("Missing Data",)
        return self.levels

    def __str__(self) -> str:
        return " / ".join(self.display_levels())


UNKNOWN_REGION: Final[Region] = Region(levels=(), known=False)


def region_sort_key(region: Region) -> tuple[int, int, tuple[str, ...]]:
    """Total order for display: known first, then depth, then names level by level."""

    return (0 if region.known else 1, region.depth, region.levels)


def compare_regions(a: Region, b: Region) -> int:
    """Three-way comparison consistent with region_sort_key."""

    ka = region_sort_key(a)
    kb = region_sort_key(b)
    return (ka > kb) - (ka < kb)


@dataclass(frozen=True, slots=True)
class Resolved:
    """A record whose coordinates mapped to a named region."""

    region: Region


@dataclass(frozen=True, slots=True)
class Unresolved:
    """A record with no usable region (ocean, lookup failure, synthetic gap)."""


UNRESOLVED: Final[Unresolved] = Unresolved()

Resolution = Union[Resolved, Unresolved]


@dataclass(frozen=True, slots=True)
class RawRecord:
    """A single Takeout location sample before region resolution.

    Attributes:
        timestamp: Timezone-aware UTC datetime.
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        source: Provenance tag.
        accuracy_m: Reported accuracy radius in meters, if any.
    """

    timestamp: datetime
    latitude: float
    longitude: float
    source: Source
    accuracy_m: int | None = None


@dataclass(frozen=True, slots=True)
class LocationRecord:
    """A time-ordered sample tagged with its resolved region."""

    timestamp: datetime
    source: Source
    resolution: Resolution


@dataclass(frozen=True, slots=True)
class Stay:
    """A maximal interval during which the effective region did not change.

    Note:
        ``duration`` is None for the final stay: nothing after it says when it ended.
        ``last_seen`` is the last record inside the stay, so the observed part of an
        open stay is still available as ``observed``.
    """

    start: datetime
    region: Region
    duration: timedelta | None
    last_seen: datetime

    @property
    def is_open(self) -> bool:
        return self.duration is None

    @property
    def end(self) -> datetime | None:
        if self.duration is None:
            return None
        return self.start + self.duration

    @property
    def observed(self) -> timedelta:
        """Closed duration, or the span actually covered by records for an open stay."""

        if self.duration is not None:
            return self.duration
        return self.last_seen - self.start


DEFAULT_TZ: Final[str] = "Asia/Shanghai"
