"""Google Takeout location-history loading (Records.json, plain or zipped)."""

from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Final, Mapping

from border_crossings.models import RawRecord, Source
from border_crossings.timeutils import dt_from_epoch_ms, parse_takeout_timestamp

logger = logging.getLogger(__name__)

RECORDS_MEMBER: Final[str] = "Takeout/Location History (Timeline)/Records.json"

# Takeout tags that carry provenance we understand; everything else is "unknown".
_SOURCE_BY_TAG: Final[dict[str, Source]] = {
    "WIFI": Source.WIFI,
    "GPS": Source.GPS,
    "CELL": Source.CELL,
    "UNKNOWN": Source.UNKNOWN,
}


class TakeoutError(ValueError):
    """The archive or Records.json cannot be read."""


@dataclass(frozen=True, slots=True)
class LoadSummary:
    """Quick summary of Records.json parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    # entries without coordinates (dropped silently)
    rows_without_coords: int = 0


def source_from_tag(tag: str | None) -> Source:
    if tag is None:
        return Source.NONE
    return _SOURCE_BY_TAG.get(str(tag).upper(), Source.UNKNOWN)


def _read_zip_member(path: Path) -> str:
    try:
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
            member = RECORDS_MEMBER if RECORDS_MEMBER in names else None
            if member is None:
                # 其他语言导出的 Takeout 目录名不同，退而求其次找任意 Records.json
                candidates = [n for n in names if n.endswith("Records.json")]
                if not candidates:
                    raise TakeoutError(f"压缩包中找不到 Records.json：{path}")
                member = candidates[0]
            data = archive.read(member)
    except zipfile.BadZipFile as exc:
        raise TakeoutError(f"无法打开压缩包：{path}（{exc}）") from exc
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise TakeoutError(f"Records.json 不是 UTF-8 编码：{exc}") from exc


def read_records_json(path: str | Path) -> dict[str, Any]:
    """Read and decode the Records.json document.

    Args:
        path: A ``.json`` file or a Takeout ``.zip`` archive.

    Returns:
        The decoded JSON document.

    Raises:
        TakeoutError: Unknown extension, missing member, invalid JSON or no ``locations`` list.
    """

    p = Path(path)
    suffix = p.suffix.lower()
    try:
        if suffix == ".zip":
            text = _read_zip_member(p)
        elif suffix == ".json":
            text = p.read_text(encoding="utf-8")
        else:
            raise TakeoutError(f"不支持的文件类型 {suffix or '(无扩展名)'!r}，只支持 .zip / .json")
    except OSError as exc:
        raise TakeoutError(f"无法读取文件：{p}（{exc}）") from exc

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TakeoutError(f"JSON 解析失败：{exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get("locations"), list):
        raise TakeoutError("Records.json 缺少 locations 数组")
    return document


def _parse_timestamp(entry: Mapping[str, Any]) -> datetime:
    if "timestamp" in entry:
        return parse_takeout_timestamp(str(entry["timestamp"]))
    if "timestampMs" in entry:
        # 旧版导出只有毫秒字符串
        return dt_from_epoch_ms(int(entry["timestampMs"]))
    raise KeyError("timestamp")


def parse_entry(entry: Mapping[str, Any]) -> RawRecord | None:
    """Parse one ``locations`` entry.

    Returns:
        RawRecord, or None when the entry has no coordinates.

    Raises:
        KeyError/ValueError/TypeError: On a malformed entry.
    """

    lat_e7 = entry.get("latitudeE7")
    lon_e7 = entry.get("longitudeE7")
    if lat_e7 is None or lon_e7 is None:
        return None
    accuracy = entry.get("accuracy")
    return RawRecord(
        timestamp=_parse_timestamp(entry),
        latitude=int(lat_e7) / 1e7,
        longitude=int(lon_e7) / 1e7,
        source=source_from_tag(entry.get("source")),
        accuracy_m=int(accuracy) if accuracy is not None else None,
    )


def load_raw_records(path: str | Path) -> tuple[list[RawRecord], LoadSummary]:
    """Load all records into memory, sorted by timestamp.

    Args:
        path: ``.json`` or ``.zip``.

    Returns:
        (records, summary)
    """

    document = read_records_json(path)
    entries = document["locations"]
    parsed: list[RawRecord] = []
    skipped = 0
    no_coords = 0
    for entry in entries:
        try:
            rec = parse_entry(entry)
        except (KeyError, ValueError, TypeError, AttributeError):
            skipped += 1
            continue
        if rec is None:
            no_coords += 1
            continue
        parsed.append(rec)

    # 稳定排序：相同时间戳保持文件中的顺序
    parsed.sort(key=lambda r: r.timestamp)

    summary = LoadSummary(
        rows_total=len(entries),
        rows_parsed=len(parsed),
        rows_skipped=skipped,
        rows_without_coords=no_coords,
    )
    if summary.rows_skipped > 0:
        logger.warning("Records.json 中有 %s 条记录解析失败已跳过", summary.rows_skipped)
    if summary.rows_without_coords > 0:
        logger.info("Records.json 中有 %s 条记录没有经纬度，已忽略", summary.rows_without_coords)
    return parsed, summary
