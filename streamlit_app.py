from __future__ import annotations

from datetime import date, datetime, time, timedelta
from pathlib import Path

import streamlit as st

from border_crossings.crossings import CrossingOptions, count_crossings
from border_crossings.geocode import JsonDiskCache, NominatimConfig, NominatimRegionResolver
from border_crossings.models import DEFAULT_TZ, RawRecord, Source
from border_crossings.pipeline import build_itinerary
from border_crossings.report import stays_to_dicts, summarize_regions
from border_crossings.takeout import TakeoutError, load_raw_records
from border_crossings.timeutils import format_duration, tzinfo_from_name


def _range_to_datetimes(start_d: date, end_d: date, tz_name: str) -> tuple[datetime, datetime]:
    """Convert a date range to the inclusive bounds clip_records expects.

    The end is the last microsecond of ``end_d``, so a record at the next midnight is left out.
    """

    tz = tzinfo_from_name(tz_name)
    start_dt = datetime.combine(start_d, time.min).replace(tzinfo=tz)
    end_dt = datetime.combine(end_d + timedelta(days=1), time.min).replace(tzinfo=tz)
    return start_dt, end_dt - timedelta(microseconds=1)


@st.cache_data(show_spinner=False)
def _load_records(path: str, mtime: float) -> tuple[list[RawRecord], int, int]:
    _ = mtime  # part of cache key so updated files reload automatically
    records, summary = load_raw_records(path)
    return records, summary.rows_total, summary.rows_skipped


def main() -> None:
    st.set_page_config(page_title="足迹：跨境/跨省停留统计", layout="wide")
    st.title("足迹：按区域整理停留行程")

    with st.sidebar:
        st.subheader("数据与时区")
        tz_name = st.text_input("时区（IANA）", value=DEFAULT_TZ)
        takeout_path = st.text_input("Takeout .zip / Records.json 路径", value="takeout.zip")
        cache_path = st.text_input("区域缓存文件", value="region_cache.json")

        st.subheader("规则")
        excluded = st.multiselect("排除数据来源", options=[s.value for s in Source], default=[])
        ignore_subregions = st.checkbox("只看国家（忽略省/州）", value=False)
        ignore_missing_data = st.checkbox("缺失数据视为仍在原区域", value=False)
        max_gap_hours = st.number_input("超过多少小时无记录视为缺失（0=不启用）", value=24.0, step=1.0)

        with st.expander("逆地理编码（通常不用改）", expanded=False):
            cache_only = st.checkbox("只用缓存，不发起新请求", value=True)
            lang = st.text_input("区域名称语言", value="zh-CN")
            min_interval = st.number_input("请求最小间隔（秒）", value=1.0, step=0.5)

        st.subheader("时间范围（可选）")
        use_range = st.checkbox("限定日期范围", value=False)
        today = datetime.now(tzinfo_from_name(tz_name)).date()
        start_d = st.date_input("开始日期", value=today.replace(month=1, day=1), disabled=not use_range)
        end_d = st.date_input("结束日期", value=today, disabled=not use_range)

    p = Path(takeout_path)
    if not p.exists():
        st.error(f"找不到文件：{takeout_path!r}")
        return
    if use_range and start_d > end_d:
        st.error("开始日期不能晚于结束日期。")
        return

    try:
        records, rows_total, rows_skipped = _load_records(takeout_path, p.stat().st_mtime)
    except TakeoutError as exc:
        st.exception(exc)
        return

    options = CrossingOptions(
        exclude_sources=frozenset(Source(v) for v in excluded),
        ignore_subregions=ignore_subregions,
        ignore_missing_data=ignore_missing_data,
        max_gap=timedelta(hours=float(max_gap_hours)) if max_gap_hours > 0 else None,
    )
    resolver = NominatimRegionResolver(
        NominatimConfig(accept_language=lang, min_interval_seconds=float(min_interval)),
        cache=JsonDiskCache(cache_path),
        max_requests=0 if cache_only else None,
    )
    start_dt, end_dt = _range_to_datetimes(start_d, end_d, tz_name) if use_range else (None, None)

    with st.spinner("正在识别区域并整理停留……"):
        stays = build_itinerary(records, resolver, options, start=start_dt, end=end_dt)
        resolver.flush()

    st.subheader("汇总")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("记录数", f"{len(records)}/{rows_total}")
    c2.metric("停留段数", str(len(stays)))
    c3.metric("跨越次数", str(count_crossings(stays)))
    c4.metric("缓存未命中（按缺失处理）", str(resolver.stats.over_budget + resolver.stats.failures))
    if rows_skipped:
        st.warning(f"有 {rows_skipped} 条记录解析失败已跳过")

    st.subheader("各区域停留合计")
    totals = [
        {
            "region": str(t.region),
            "stays": t.stays,
            "total": t.total_hhmmss,
            "days": round(t.total.total_seconds() / 86400.0, 2),
        }
        for t in summarize_regions(stays)
    ]
    st.dataframe(totals, use_container_width=True)

    st.subheader("停留明细（按时间）")
    rows = stays_to_dicts(stays, tz_name)
    for row, stay in zip(rows, stays):
        row["levels"] = " / ".join(row["levels"])
        row["duration"] = format_duration(stay.duration) if stay.duration is not None else "进行中"
    st.dataframe(rows, use_container_width=True, height=520)

    st.caption("说明：最后一段停留没有结束时间，时长显示为“进行中”；区域合计中按最后一条记录计算。")


if __name__ == "__main__":
    main()
