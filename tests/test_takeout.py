import json
import zipfile
from datetime import UTC, datetime

import pytest

from border_crossings.models import Source
from border_crossings.takeout import (
    RECORDS_MEMBER,
    TakeoutError,
    load_raw_records,
    parse_entry,
    read_records_json,
    source_from_tag,
)

DOC = {
    "locations": [
        {
            "latitudeE7": 356762000,
            "longitudeE7": 1396503000,
            "accuracy": 20,
            "source": "WIFI",
            "timestamp": "2023-01-02T10:00:00.000Z",
        },
        {
            "latitudeE7": 436532000,
            "longitudeE7": -793832000,
            "source": "GPS",
            "timestamp": "2023-01-01T10:00:00Z",
        },
        {"timestamp": "2023-01-03T10:00:00Z", "activity": []},
        {"latitudeE7": 1, "longitudeE7": 2, "timestamp": "not a date"},
        {"latitudeE7": 407128000, "longitudeE7": -740060000, "timestampMs": "1672617600000"},
    ]
}


@pytest.fixture
def records_json(tmp_path):
    p = tmp_path / "Records.json"
    p.write_text(json.dumps(DOC), encoding="utf-8")
    return p


def test_load_raw_records_from_json_sorted_with_summary(records_json):
    records, summary = load_raw_records(records_json)
    assert summary.rows_total == 5
    assert summary.rows_parsed == 3
    assert summary.rows_skipped == 1
    assert summary.rows_without_coords == 1
    assert [r.timestamp for r in records] == sorted(r.timestamp for r in records)
    first = records[0]
    assert first.timestamp == datetime(2023, 1, 1, 10, 0, tzinfo=UTC)
    assert first.latitude == pytest.approx(43.6532)
    assert first.longitude == pytest.approx(-79.3832)
    assert first.source == Source.GPS


def test_legacy_timestamp_ms_and_missing_source():
    rec = parse_entry({"latitudeE7": 407128000, "longitudeE7": -740060000, "timestampMs": "1672617600000"})
    assert rec is not None
    assert rec.timestamp == datetime(2023, 1, 2, 0, 0, tzinfo=UTC)
    assert rec.source == Source.NONE
    assert rec.accuracy_m is None


def test_parse_entry_without_coordinates_is_none():
    assert parse_entry({"timestamp": "2023-01-01T00:00:00Z"}) is None


def test_parse_entry_requires_timestamp():
    with pytest.raises(KeyError):
        parse_entry({"latitudeE7": 1, "longitudeE7": 2})


def test_source_mapping():
    assert source_from_tag("WIFI") == Source.WIFI
    assert source_from_tag("GPS") == Source.GPS
    assert source_from_tag("CELL") == Source.CELL
    assert source_from_tag("UNKNOWN") == Source.UNKNOWN
    assert source_from_tag("VISIT_ARRIVAL") == Source.UNKNOWN
    assert source_from_tag("MANUAL") == Source.UNKNOWN
    assert source_from_tag(None) == Source.NONE


def test_read_from_takeout_zip(tmp_path):
    p = tmp_path / "takeout.zip"
    with zipfile.ZipFile(p, "w") as zf:
        zf.writestr(RECORDS_MEMBER, json.dumps(DOC))
        zf.writestr("Takeout/archive_browser.html", "<html></html>")
    records, summary = load_raw_records(p)
    assert summary.rows_parsed == 3


def test_zip_falls_back_to_any_records_json(tmp_path):
    p = tmp_path / "takeout.zip"
    with zipfile.ZipFile(p, "w") as zf:
        zf.writestr("Takeout/Standortverlauf (Zeitachse)/Records.json", json.dumps(DOC))
    assert read_records_json(p)["locations"] == DOC["locations"]


def test_zip_without_records_json(tmp_path):
    p = tmp_path / "takeout.zip"
    with zipfile.ZipFile(p, "w") as zf:
        zf.writestr("Takeout/other.json", "{}")
    with pytest.raises(TakeoutError):
        read_records_json(p)


def test_corrupt_zip(tmp_path):
    p = tmp_path / "takeout.zip"
    p.write_bytes(b"not a zip")
    with pytest.raises(TakeoutError):
        read_records_json(p)


def test_unknown_extension(tmp_path):
    p = tmp_path / "records.csv"
    p.write_text("a,b", encoding="utf-8")
    with pytest.raises(TakeoutError):
        read_records_json(p)


def test_invalid_json_and_missing_locations(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(TakeoutError):
        read_records_json(bad)

    empty = tmp_path / "empty.json"
    empty.write_text('{"timelineObjects": []}', encoding="utf-8")
    with pytest.raises(TakeoutError):
        read_records_json(empty)


def test_missing_file(tmp_path):
    with pytest.raises(TakeoutError):
        read_records_json(tmp_path / "nope.json")


def test_empty_locations(tmp_path):
    p = tmp_path / "Records.json"
    p.write_text('{"locations": []}', encoding="utf-8")
    records, summary = load_raw_records(p)
    assert records == []
    assert summary.rows_total == 0
