"""Region resolution via reverse geocoding (lat/lon -> country / subregion).

This module intentionally uses only Python standard library to keep the project lightweight.

Important:
    - Public reverse-geocoding services are rate-limited.
    - For Nominatim (OpenStreetMap), please respect their usage policy and set a reasonable
      request interval and a descriptive User-Agent.
    - A location history has tens of thousands of points but only a handful of regions,
      so lookups are cached by rounded coordinates.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Final, Iterable, Iterator, Mapping

from border_crossings.models import UNRESOLVED, LocationRecord, RawRecord, Region, Resolution, Resolved

logger = logging.getLogger(__name__)

# Nominatim address keys that name the first level below the country, in preference order.
SUBREGION_KEYS: Final[tuple[str, ...]] = ("state", "province", "region", "state_district", "territory")


def coord_key(lat: float, lon: float, precision: int) -> str:
    """Build a stable cache key by rounding coordinates.

    Notes:
        This is used as the cache key: "lat,lon" with fixed decimals.
        Precision=2 (~1km) is plenty for country/state resolution.
    """

    return f"{round(lat, precision):.{precision}f},{round(lon, precision):.{precision}f}"


class JsonDiskCache:
    """A tiny JSON cache persisted on disk (key -> result dict)."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        # Write-ahead journal for crash-safe incremental persistence.
        # Example: region_cache.json -> region_cache.journal.jsonl
        self._journal_path = self._path.with_name(f"{self._path.stem}.journal.jsonl")
        self._data: dict[str, dict[str, Any]] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        self.load()
        return len(self._data)

    def load(self) -> None:
        """Load cache from disk (no-op if file not exists)."""

        if self._loaded:
            return
        self._data = {}
        if self._path.exists():
            text = self._path.read_text(encoding="utf-8").strip()
            if text:
                try:
                    self._data = json.loads(text)
                except json.JSONDecodeError:
                    # 缓存文件损坏：保留一份备份，从空缓存重新开始
                    backup = self._path.with_suffix(self._path.suffix + ".broken")
                    backup.write_text(text, encoding="utf-8")
                    logger.warning("缓存文件损坏，已备份到 %s", backup)
                    self._data = {}

        # Replay journal so results from a crashed run are not lost.
        self._replay_journal()
        self._loaded = True

    def get(self, key: str) -> dict[str, Any] | None:
        self.load()
        return self._data.get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        self.load()
        self._data[key] = value
        self._append_journal(key, value)

    def flush(self) -> None:
        """Persist cache to disk (atomic-ish) and clear the journal."""

        self.load()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)
        self._clear_journal()

    def _append_journal(self, key: str, value: dict[str, Any]) -> None:
        self._journal_path.parent.mkdir(parents=True, exist_ok=True)
        record = {"k": key, "v": value}
        with self._journal_path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    def _replay_journal(self) -> None:
        """Replay journal entries into memory (best-effort)."""

        if not self._journal_path.exists():
            return
        try:
            with self._journal_path.open("r", encoding="utf-8") as f:
                for line in f:
                    s = line.strip()
                    if not s:
                        continue
                    try:
                        rec = json.loads(s)
                    except json.JSONDecodeError:
                        # ignore broken tail lines
                        continue
                    k = rec.get("k")
                    v = rec.get("v")
                    if isinstance(k, str) and isinstance(v, dict):
                        self._data[k] = v
        except OSError:
            logger.warning("无法读取缓存日志 %s，忽略", self._journal_path)

    def _clear_journal(self) -> None:
        try:
            if self._journal_path.exists():
                self._journal_path.unlink()
        except OSError:
            return


@dataclass(frozen=True, slots=True)
class NominatimConfig:
    """Configuration for Nominatim reverse API."""

    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    accept_language: str = "zh-CN"
    # 5 = state level
    zoom: int = 5
    timeout_seconds: float = 20.0
    min_interval_seconds: float = 1.0
    user_agent: str = "border-crossings/0.1.0 (reverse-geocode; please set your own UA)"


Fetch = Callable[[float, float, NominatimConfig], dict[str, Any] | None]


def nominatim_reverse_raw(lat: float, lon: float, cfg: NominatimConfig) -> dict[str, Any] | None:
    """Call Nominatim reverse API and return raw JSON dict.

    This is a pure function (no cache, no throttling state).

    Returns:
        Parsed JSON dict on success (possibly an ``{"error": ...}`` payload for open sea),
        otherwise None.
    """

    params = {
        "format": "jsonv2",
        "lat": f"{lat:.8f}",
        "lon": f"{lon:.8f}",
        "zoom": str(cfg.zoom),
        "addressdetails": "1",
        "accept-language": cfg.accept_language,
    }
    url = f"{cfg.base_url}?{urllib.parse.urlencode(params)}"
    req = urllib.request.Request(
        url,
        headers={
            "User-Agent": cfg.user_agent,
            "Accept": "application/json",
        },
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=cfg.timeout_seconds) as resp:  # noqa: S310
            body = resp.read().decode("utf-8", errors="replace")
        raw: dict[str, Any] = json.loads(body)
    except (OSError, ValueError) as exc:
        logger.warning("逆地理编码请求失败 (%.5f, %.5f)：%s", lat, lon, exc)
        return None
    return raw


def region_from_nominatim(raw: Mapping[str, Any]) -> Resolution:
    """Build a Resolution from a Nominatim reverse payload.

    The country is the broad level; the first present of SUBREGION_KEYS is the
    subregion. Payloads with an ``error`` key or without a country (open sea) are
    unresolved.
    """

    if raw.get("error"):
        return UNRESOLVED
    address = raw.get("address") or {}
    country = str(address.get("country", "") or "").strip()
    if not country:
        return UNRESOLVED
    sub = ""
    for k in SUBREGION_KEYS:
        sub = str(address.get(k, "") or "").strip()
        if sub:
            break
    return Resolved(Region.of(country, sub))


@dataclass(slots=True)
class ResolverStats:
    """Counters for one resolver run."""

    cache_hits: int = 0
    requests: int = 0
    failures: int = 0
    over_budget: int = 0


class NominatimRegionResolver:
    """Resolve coordinates to regions using OpenStreetMap Nominatim.

    Args:
        config: Request settings.
        cache: Optional on-disk cache shared across runs.
        precision: Rounding precision for cache keys.
        max_requests: Max number of *new* API requests (None means unlimited, 0 cache only).
        fetch: Request function; replaceable for offline use.
    """

    def __init__(
        self,
        config: NominatimConfig | None = None,
        cache: JsonDiskCache | None = None,
        *,
        precision: int = 2,
        max_requests: int | None = None,
        fetch: Fetch = nominatim_reverse_raw,
    ) -> None:
        self._cfg = config or NominatimConfig()
        self._cache = cache
        self._precision = precision
        self._max_requests = max_requests
        self._fetch = fetch
        self._last_request_at = 0.0
        # also memoize failures within a run so a bad cell is not requested twice
        self._session: dict[str, Resolution] = {}
        self.stats = ResolverStats()

    def resolve(self, lat: float, lon: float) -> Resolution:
        """Resolve one coordinate. Never raises for lookup failures."""

        key = coord_key(lat, lon, self._precision)
        hit = self._session.get(key)
        if hit is not None:
            self.stats.cache_hits += 1
            return hit

        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                self.stats.cache_hits += 1
                res = region_from_nominatim(cached)
                self._session[key] = res
                return res

        if self._max_requests is not None and self.stats.requests >= self._max_requests:
            self.stats.over_budget += 1
            return UNRESOLVED

        self._sleep_if_needed()
        self.stats.requests += 1
        raw = self._fetch(lat, lon, self._cfg)
        if raw is None:
            # 请求失败不写缓存，下次运行会重试
            self.stats.failures += 1
            self._session[key] = UNRESOLVED
            return UNRESOLVED

        if self._cache is not None:
            self._cache.set(key, raw)
        res = region_from_nominatim(raw)
        self._session[key] = res
        return res

    def flush(self) -> None:
        if self._cache is not None:
            self._cache.flush()

    def _sleep_if_needed(self) -> None:
        if self._cfg.min_interval_seconds <= 0:
            return
        now = time.time()
        wait = self._cfg.min_interval_seconds - (now - self._last_request_at)
        if wait > 0:
            time.sleep(wait)
        self._last_request_at = time.time()


def resolve_records(records: Iterable[RawRecord], resolver: NominatimRegionResolver) -> Iterator[LocationRecord]:
    """Lazily attach a Resolution to each raw record."""

    for rec in records:
        yield LocationRecord(
            timestamp=rec.timestamp,
            source=rec.source,
            resolution=resolver.resolve(rec.latitude, rec.longitude),
        )
