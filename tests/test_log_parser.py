from __future__ import annotations

from proxywatch.core.models import LogRecord
from proxywatch.services.log_parser import LogBuffer, parse_log_line


def test_parse_splits_timestamp_and_message():
    rec = parse_log_line("[2024-05-01 12:00:05] Created proxy for /a/b.mp4")

    assert rec.timestamp == "2024-05-01 12:00:05"
    assert rec.message == "Created proxy for /a/b.mp4"
    assert rec.raw == "[2024-05-01 12:00:05] Created proxy for /a/b.mp4"


def test_parse_keeps_later_delimiters_in_message():
    rec = parse_log_line("[12:00:01] Copied [cam] to [archive] done")

    assert rec.timestamp == "12:00:01"
    assert rec.message == "Copied [cam] to [archive] done"


def test_parse_without_delimiter_degrades_to_timestamp_only():
    rec = parse_log_line("no-brackets-here")

    assert rec.timestamp == "no-brackets-here"
    assert rec.message == ""


def test_parse_without_delimiter_strips_leading_bracket():
    rec = parse_log_line("[12:00:01]")

    assert rec.timestamp == "12:00:01]"
    assert rec.message == ""


def test_parse_empty_and_deterministic():
    assert parse_log_line("") == LogRecord(timestamp="", message="", raw="")
    line = "[t] x"
    assert parse_log_line(line) == parse_log_line(line)


def test_admit_prepends_newest_first():
    buf = LogBuffer()
    first = buf.admit("[1] one")
    second = buf.admit("[2] two")

    assert buf.records == (second, first)
    assert buf.latest == second
    assert [r.message for r in buf] == ["two", "one"]


def test_admit_rejects_duplicates_anywhere_in_history():
    buf = LogBuffer()
    assert buf.admit("[1] one") is not None
    assert buf.admit("[1] one") is None
    assert len(buf) == 1

    buf.admit("[2] two")
    buf.admit("[3] three")
    assert buf.admit("[1] one") is None
    assert len(buf) == 3
    assert "[1] one" in buf


def test_dedup_compares_raw_text_not_parsed_record():
    buf = LogBuffer()
    buf.admit("[1] one")
    # Same parsed record, different raw text
    assert buf.admit("1] one") is not None
    assert len(buf) == 2


def test_clear_resets_history():
    buf = LogBuffer()
    buf.admit("[1] one")
    buf.clear()

    assert len(buf) == 0
    assert buf.latest is None
    assert buf.admit("[1] one") is not None
