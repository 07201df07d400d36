import csv
from datetime import timedelta

from border_crossings.crossings import CrossingOptions, process
from border_crossings.models import UNKNOWN_REGION, Region
from border_crossings.report import (
    render_stay,
    render_stays,
    stays_to_dicts,
    summarize_regions,
    write_stays_csv,
)
from border_crossings.timeutils import format_duration


def test_render_closed_stay_lists_levels_and_days(make_records):
    records = make_records(("Canada", "Ontario"), ("Japan",), step_hours=24 * 12 + 3)
    stay = process(records)[0]
    text = render_stay(stay, "UTC")
    assert text == (
        "Sun, 01 Jan 2023 00:00:00 +0000\n"
        "    |\n"
        "    | Canada\n"
        "    | Ontario\n"
        "    | Duration: 12 Days (12d 03:00:00)\n"
        "    |\n"
    )


def test_render_open_and_unknown_stays(make_records):
    stays = process(make_records(("Japan",), None))
    text = render_stays(stays, "Asia/Tokyo")
    assert "Sun, 01 Jan 2023 09:00:00 +0900" in text
    assert "    | Missing Data" in text
    assert text.rstrip().endswith("| Duration Unknown\n    |")


def test_format_duration():
    assert format_duration(timedelta(seconds=59)) == "00:00:59"
    assert format_duration(timedelta(hours=25, minutes=1)) == "1d 01:01:00"
    assert format_duration(timedelta(seconds=-5)) == "00:00:00"


def test_stays_to_dicts(make_records):
    stays = process(make_records(("USA", "Texas"), ("Canada",)))
    rows = stays_to_dicts(stays, "UTC")
    assert rows[0]["levels"] == ["USA", "Texas"]
    assert rows[0]["duration_seconds"] == 3600.0
    assert rows[1]["end_time"] is None
    assert rows[1]["duration_seconds"] is None


def test_write_stays_csv(tmp_path, make_records):
    stays = process(make_records(("USA", "Texas"), None, ("Canada",)))
    out = tmp_path / "stays.csv"
    write_stays_csv(stays, out, "UTC")
    with out.open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert [r["country"] for r in rows] == ["USA", "Missing Data", "Canada"]
    assert rows[0]["subregion"] == "Texas"
    assert rows[0]["duration_hhmmss"] == "01:00:00"
    assert rows[2]["end_time"] == ""
    assert rows[0]["stay_id"] == "1"


def test_summarize_regions_sorted_and_summed(make_records):
    records = make_records(("Japan",), ("Canada",), ("Japan",), None, ("Japan",), ("Japan",))
    totals = summarize_regions(process(records))
    assert [t.region for t in totals] == [Region.of("Canada"), Region.of("Japan"), UNKNOWN_REGION]
    japan = totals[1]
    assert japan.stays == 3
    # 1h + 1h + open stay observed 1h
    assert japan.total == timedelta(hours=3)
    assert japan.total_hhmmss == "03:00:00"


def test_summarize_regions_country_only(make_records):
    records = make_records(("USA", "Texas"), ("USA", "Ohio"), ("Canada", "Ontario"))
    totals = summarize_regions(process(records, CrossingOptions(ignore_subregions=True)))
    assert [str(t.region) for t in totals] == ["Canada", "USA"]
