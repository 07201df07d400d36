"""Command-line interface for border_crossings.

Run:
    python -m border_crossings border-crossings --path takeout.zip
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta

from border_crossings.crossings import CrossingOptions, count_crossings
from border_crossings.geocode import JsonDiskCache, NominatimConfig, NominatimRegionResolver
from border_crossings.models import DEFAULT_TZ
from border_crossings.pipeline import build_itinerary
from border_crossings.report import render_stays, stays_to_dicts, summarize_regions, write_stays_csv
from border_crossings.sources import count_sources, parse_sources
from border_crossings.takeout import TakeoutError, load_raw_records
from border_crossings.timeutils import parse_dt, tzinfo_from_name


def _options_from_args(args: argparse.Namespace) -> CrossingOptions:
    max_gap = timedelta(hours=args.max_gap_hours) if args.max_gap_hours > 0 else None
    return CrossingOptions(
        exclude_sources=parse_sources(args.exclude_source or []),
        ignore_subregions=args.ignore_subregions,
        ignore_missing_data=args.ignore_missing_data,
        max_gap=max_gap,
    )


def _resolver_from_args(args: argparse.Namespace) -> NominatimRegionResolver:
    cfg = NominatimConfig(
        accept_language=args.geocode_lang,
        zoom=args.geocode_zoom,
        min_interval_seconds=args.geocode_min_interval,
        timeout_seconds=args.geocode_timeout_seconds,
        user_agent=args.geocode_user_agent,
    )
    max_requests: int | None = args.geocode_max_requests
    if max_requests is not None and max_requests < 0:
        max_requests = None
    cache = JsonDiskCache(args.geocode_cache) if args.geocode_cache else None
    return NominatimRegionResolver(
        cfg,
        cache=cache,
        precision=args.geocode_precision,
        max_requests=max_requests,
    )


def _cmd_border_crossings(args: argparse.Namespace) -> int:
    tzinfo_from_name(args.tz)
    options = _options_from_args(args)
    start = parse_dt(args.range_start, args.tz) if args.range_start else None
    end = parse_dt(args.range_end, args.tz) if args.range_end else None

    records, summary = load_raw_records(args.path)
    print(
        f"读取记录：total={summary.rows_total}, parsed={summary.rows_parsed}, "
        f"skipped={summary.rows_skipped}, no_coords={summary.rows_without_coords}",
        file=sys.stderr,
        flush=True,
    )
    per_source = ", ".join(f"{s.value}={n}" for s, n in count_sources(records).items())
    print(f"数据来源：{per_source}", file=sys.stderr, flush=True)

    resolver = _resolver_from_args(args)
    try:
        stays = build_itinerary(records, resolver, options, start=start, end=end)
    except KeyboardInterrupt:
        # 优雅中断：已请求到的结果仍然写入缓存
        print("\n收到中断信号：停止继续请求，已保存缓存。", file=sys.stderr, flush=True)
        resolver.flush()
        return 130
    resolver.flush()

    st = resolver.stats
    print(
        f"逆地理编码：缓存命中={st.cache_hits}，新请求={st.requests}，失败={st.failures}，超出上限={st.over_budget}",
        file=sys.stderr,
        flush=True,
    )
    if st.over_budget:
        print(
            f"注意：已达到 geocode-max-requests 上限，{st.over_budget} 个坐标按缺失数据处理。"
            "你可以增大上限或降低 geocode-precision。",
            file=sys.stderr,
        )

    if not stays:
        print("没有可用的记录（可能全部被 exclude-source / 时间范围过滤掉了）。")
        return 0

    if args.json:
        print(json.dumps(stays_to_dicts(stays, args.tz), ensure_ascii=False, indent=2))
    else:
        print(render_stays(stays, args.tz))

    if args.summary:
        print("### 各区域停留合计")
        for total in summarize_regions(stays):
            print(f"{total.region}: stays={total.stays}, total={total.total_hhmmss}")
        print(f"跨越次数={count_crossings(stays)}")

    if args.csv_out:
        write_stays_csv(stays, args.csv_out, args.tz)
        print(f"已导出：{args.csv_out}", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="border_crossings")
    p.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_bc = sub.add_parser("border-crossings", help="列出每一次跨越已识别区域边界的时间点")
    p_bc.add_argument(
        "-p",
        "--path",
        type=str,
        required=True,
        help="Takeout 导出的 .zip 或 Records.json 路径",
    )
    p_bc.add_argument(
        "-e",
        "--exclude-source",
        action="append",
        metavar="SOURCE",
        help="排除某种数据来源（wifi/gps/cell/unknown/none）；可重复指定",
    )
    p_bc.add_argument(
        "-s",
        "--ignore-subregions",
        action="store_true",
        help="只比较国家层级，忽略省/州等次级区域之间的跨越",
    )
    p_bc.add_argument(
        "-m",
        "--ignore-missing-data",
        action="store_true",
        help="缺失数据不单独成段，视为仍停留在之前的区域",
    )
    p_bc.add_argument(
        "--max-gap-hours",
        type=float,
        default=24.0,
        help="相邻两条记录间隔超过该小时数时，之后的时间按缺失数据处理（0 表示不启用）",
    )
    p_bc.add_argument("--tz", type=str, default=DEFAULT_TZ, help="显示用时区（IANA），默认 Asia/Shanghai")
    p_bc.add_argument("--range-start", type=str, default=None, help="仅使用该时间之后的记录（例如 2023-01-01）")
    p_bc.add_argument("--range-end", type=str, default=None, help="仅使用该时间之前的记录（例如 2023-12-31 23:59:59）")
    p_bc.add_argument(
        "--geocode-cache",
        type=str,
        default="region_cache.json",
        help="逆地理编码缓存文件（空字符串表示不使用缓存）",
    )
    p_bc.add_argument("--geocode-lang", type=str, default="zh-CN", help="区域名称语言（如 zh-CN/en）")
    p_bc.add_argument("--geocode-zoom", type=int, default=5, help="逆地理编码缩放等级（5 约为省/州级）")
    p_bc.add_argument(
        "--geocode-precision",
        type=int,
        default=2,
        help="缓存用坐标小数位数（2 约 1km；越小请求越少但边界附近越粗）",
    )
    p_bc.add_argument(
        "--geocode-min-interval",
        type=float,
        default=1.0,
        help="请求最小间隔（秒），公共服务建议>=1.0",
    )
    p_bc.add_argument("--geocode-timeout-seconds", type=float, default=20.0, help="单次请求超时（秒）")
    p_bc.add_argument(
        "--geocode-max-requests",
        type=int,
        default=-1,
        help="最多发起多少次新的逆地理编码请求。设为 0 表示只用缓存；设为 -1 表示不限制。",
    )
    p_bc.add_argument(
        "--geocode-user-agent",
        type=str,
        default="border-crossings/0.1.0 (reverse-geocode; set your own UA)",
        help="HTTP User-Agent（建议填你自己的标识，避免被服务方屏蔽）",
    )
    p_bc.add_argument("--csv-out", type=str, default=None, help="额外导出 stays.csv")
    p_bc.add_argument("--json", action="store_true", help="以 JSON 输出（便于后处理）")
    p_bc.add_argument("--summary", action="store_true", help="额外输出各区域停留合计")
    p_bc.set_defaults(func=_cmd_border_crossings)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    try:
        return int(args.func(args))
    except (TakeoutError, ValueError) as exc:
        print(f"错误：{exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
