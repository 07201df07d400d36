"""Source filtering by provenance tag."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Iterator, Protocol, TypeVar

from border_crossings.models import Source


class _HasSource(Protocol):
    @property
    def source(self) -> Source: ...


R = TypeVar("R", bound=_HasSource)


def parse_sources(values: Iterable[str]) -> frozenset[Source]:
    """Parse source names (case-insensitive), e.g. ["wifi", "CELL"].

    Raises:
        ValueError: If a name is not a known source.
    """

    out: set[Source] = set()
    for value in values:
        name = value.strip().lower()
        try:
            out.add(Source(name))
        except ValueError as exc:
            choices = ", ".join(s.value for s in Source)
            raise ValueError(f"未知数据来源：{value!r}。可选：{choices}") from exc
    return frozenset(out)


def filter_sources(records: Iterable[R], exclude: Iterable[Source]) -> Iterator[R]:
    """Yield records whose source is not excluded, preserving order."""

    excluded = frozenset(exclude)
    if not excluded:
        yield from records
        return
    for rec in records:
        if rec.source not in excluded:
            yield rec


def count_sources(records: Iterable[_HasSource]) -> dict[Source, int]:
    """Count records per source (every source present, zero if unseen)."""

    counts = Counter(rec.source for rec in records)
    return {s: counts.get(s, 0) for s in Source}
