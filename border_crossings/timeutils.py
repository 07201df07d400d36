"""Time parsing and formatting utilities."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, tzinfo

from zoneinfo import ZoneInfo


def tzinfo_from_name(tz_name: str) -> tzinfo:
    """Create tzinfo from an IANA timezone name.

    Args:
        tz_name: Timezone name like "Asia/Shanghai".

    Returns:
        tzinfo instance.

    Raises:
        ValueError: If timezone name is invalid on this system.
    """

    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # ZoneInfo raises KeyError / ZoneInfoNotFoundError (platform dependent)
        raise ValueError(f"无效时区：{tz_name!r}。例如可用：Asia/Shanghai") from exc


def dt_from_epoch_ms(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to a UTC datetime."""

    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=UTC)


def parse_takeout_timestamp(text: str) -> datetime:
    """Parse a Takeout ISO 8601 timestamp such as "2022-01-12T17:18:24.190Z".

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        ValueError: If the text is not ISO 8601.
    """

    s = text.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_dt(text: str, tz_name: str) -> datetime:
    """Parse user-provided datetime text to a timezone-aware datetime.

    Supported formats:
      - "YYYY-MM-DD"
      - "YYYY-MM-DD HH:MM:SS"
      - "YYYY-MM-DDTHH:MM:SS"
      - with optional timezone offset, e.g. "+08:00"

    If timezone is missing, it will be assumed to be tz_name.

    Raises:
        ValueError: If cannot parse.
    """

    s = text.strip().replace("T", " ")
    tz = tzinfo_from_name(tz_name)
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as exc:
        raise ValueError(f"无法解析时间：{text!r}。建议格式：2025-12-18 09:30:00") from exc

    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def to_local(dt: datetime, tz_name: str) -> datetime:
    return dt.astimezone(tzinfo_from_name(tz_name))


def format_duration(td: timedelta) -> str:
    """Format a duration as "HH:MM:SS", or "<d>d HH:MM:SS" from one day up."""

    s = int(round(max(0.0, td.total_seconds())))
    days, rem = divmod(s, 86400)
    h = rem // 3600
    m = (rem % 3600) // 60
    sec = rem % 60
    if days:
        return f"{days}d {h:02d}:{m:02d}:{sec:02d}"
    return f"{h:02d}:{m:02d}:{sec:02d}"
