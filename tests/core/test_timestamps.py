"""Tests for RFC 3339 timestamp helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from certkeeper.core.timestamps import (
    format_rfc3339,
    parse_rfc3339,
    truncate_to_seconds,
    utcnow,
)


def test_utcnow_is_aware():
    assert utcnow().tzinfo is not None


def test_format_is_second_precision_zulu():
    value = datetime(2026, 1, 2, 3, 4, 5, 999999, tzinfo=UTC)
    assert format_rfc3339(value) == "2026-01-02T03:04:05Z"


def test_format_converts_offsets_to_utc():
    value = datetime(2026, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
    assert format_rfc3339(value) == "2026-01-02T03:04:05Z"


def test_parse_zulu():
    assert parse_rfc3339("2026-01-02T03:04:05Z") == datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)


def test_parse_empty_and_none():
    assert parse_rfc3339(None) is None
    assert parse_rfc3339("") is None


def test_parse_naive_datetime_assumed_utc():
    parsed = parse_rfc3339(datetime(2026, 1, 2, 3, 4, 5))
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() == timedelta(0)


def test_truncate_to_seconds():
    value = datetime(2026, 1, 2, 3, 4, 5, 123456, tzinfo=UTC)
    assert truncate_to_seconds(value).microsecond == 0
