import json

import pytest

from border_crossings.cli import build_parser, main

LOCATIONS = [
    # Toronto, Tokyo, Toronto, New York; one record per day
    (436532000, -793832000, "GPS", "2023-01-01T00:00:00Z"),
    (436532000, -793832000, "WIFI", "2023-01-01T12:00:00Z"),
    (356762000, 1396503000, "GPS", "2023-01-02T00:00:00Z"),
    (436532000, -793832000, "CELL", "2023-01-03T00:00:00Z"),
    (407128000, -740060000, "GPS", "2023-01-04T00:00:00Z"),
]

CACHE = {
    "43.65,-79.38": {"address": {"country": "Canada", "state": "Ontario"}},
    "35.68,139.65": {"address": {"country": "Japan", "state": "Tokyo"}},
    "40.71,-74.01": {"address": {"country": "United States", "state": "New York"}},
}


@pytest.fixture
def takeout(tmp_path):
    records = tmp_path / "Records.json"
    records.write_text(
        json.dumps(
            {
                "locations": [
                    {"latitudeE7": lat, "longitudeE7": lon, "source": src, "timestamp": ts}
                    for lat, lon, src, ts in LOCATIONS
                ]
            }
        ),
        encoding="utf-8",
    )
    cache = tmp_path / "region_cache.json"
    cache.write_text(json.dumps(CACHE), encoding="utf-8")
    return records, cache


def _run(takeout, *extra):
    records, cache = takeout
    return main(
        [
            "border-crossings",
            "--path",
            str(records),
            "--geocode-cache",
            str(cache),
            "--geocode-max-requests",
            "0",
            "--tz",
            "UTC",
            *extra,
        ]
    )


def test_border_crossings_text_output(takeout, capsys):
    assert _run(takeout) == 0
    out = capsys.readouterr().out
    blocks = [b for b in out.strip().split("\n\n") if b.strip()]
    assert len(blocks) == 4
    assert blocks[0].startswith("Sun, 01 Jan 2023 00:00:00 +0000")
    assert "    | Canada\n    | Ontario" in blocks[0]
    assert "Duration: 1 Days" in blocks[0]
    assert "    | Japan" in blocks[1]
    assert "    | United States\n    | New York" in blocks[3]
    assert "Duration Unknown" in blocks[3]


def test_border_crossings_json_and_csv(takeout, tmp_path, capsys):
    out_csv = tmp_path / "stays.csv"
    assert _run(takeout, "--json", "--csv-out", str(out_csv), "-s") == 0
    payload = json.loads(capsys.readouterr().out)
    assert [row["levels"] for row in payload] == [["Canada"], ["Japan"], ["Canada"], ["United States"]]
    assert out_csv.exists()


def test_exclude_source_and_summary(takeout, capsys):
    assert _run(takeout, "-e", "gps", "--summary", "--max-gap-hours", "0") == 0
    out = capsys.readouterr().out
    # only WIFI (Toronto) and CELL (Toronto) remain
    assert out.count("Duration") == 1
    assert "跨越次数=0" in out


def test_cache_miss_becomes_missing_data(takeout, tmp_path, capsys):
    records, _ = takeout
    empty_cache = tmp_path / "empty.json"
    code = main(
        [
            "border-crossings",
            "-p",
            str(records),
            "--geocode-cache",
            str(empty_cache),
            "--geocode-max-requests",
            "0",
            "--tz",
            "UTC",
        ]
    )
    assert code == 0
    captured = capsys.readouterr()
    assert "Missing Data" in captured.out
    assert "超出上限=5" in captured.err


def test_bad_path_exits_with_error(tmp_path, capsys):
    bad = tmp_path / "records.txt"
    bad.write_text("x", encoding="utf-8")
    assert main(["border-crossings", "-p", str(bad), "--geocode-max-requests", "0"]) == 2
    assert "错误" in capsys.readouterr().err


def test_invalid_timezone_exits_with_error(takeout, capsys):
    assert _run(takeout, "--tz", "Mars/Olympus") == 2


def test_unknown_source_exits_with_error(takeout, capsys):
    assert _run(takeout, "-e", "bluetooth") == 2
    assert "未知数据来源" in capsys.readouterr().err


def test_exclude_source_is_case_insensitive(takeout, capsys):
    assert _run(takeout, "-e", "GPS", "--max-gap-hours", "0") == 0
    assert capsys.readouterr().out.count("Duration") == 1


def test_source_counts_reported_on_stderr(takeout, capsys):
    assert _run(takeout) == 0
    err = capsys.readouterr().err
    assert "数据来源：wifi=1, gps=3, cell=1, unknown=0, none=0" in err


def test_parser_defaults():
    args = build_parser().parse_args(["border-crossings", "-p", "x.zip"])
    assert args.exclude_source is None
    assert args.ignore_subregions is False
    assert args.ignore_missing_data is False
    assert args.max_gap_hours == 24.0
