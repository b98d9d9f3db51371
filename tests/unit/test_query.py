"""
Unit tests for historical query parameter parsing.
"""

from datetime import datetime, timedelta, timezone

import pytest

from delpro_exporter.errors import InvalidQueryParameterError
from delpro_exporter.history.query import (
    parse_historical_query,
    parse_oid_range,
    parse_time_range,
    parse_timestamp,
)

LOOKBACK = timedelta(days=30)
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Test RFC3339 and date parsing."""

    def test_date_start_is_midnight_in_database_timezone(self, zurich):
        parsed = parse_timestamp("2024-01-01", zurich, end_of_day=False)

        assert parsed == datetime(2024, 1, 1, 0, 0, tzinfo=zurich)
        assert parsed.astimezone(timezone.utc) == datetime(2023, 12, 31, 23, 0, tzinfo=timezone.utc)

    def test_date_end_is_last_instant_of_day(self, zurich):
        parsed = parse_timestamp("2024-01-01", zurich, end_of_day=True)

        assert parsed == datetime(2024, 1, 1, 23, 59, 59, 999999, tzinfo=zurich)

    def test_rfc3339_with_z(self, zurich):
        assert parse_timestamp("2024-01-01T00:00:00Z", zurich, end_of_day=False) == datetime(
            2024, 1, 1, tzinfo=timezone.utc
        )

    def test_rfc3339_with_offset(self, zurich):
        parsed = parse_timestamp("2024-06-01T08:30:00+02:00", zurich, end_of_day=False)

        assert parsed.astimezone(timezone.utc) == datetime(2024, 6, 1, 6, 30, tzinfo=timezone.utc)

    def test_nanosecond_fraction_is_truncated(self, zurich):
        parsed = parse_timestamp("2024-01-01T00:00:00.123456789Z", zurich, end_of_day=False)

        assert parsed == datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value,microsecond", [
        ("2024-01-01T00:00:00.5Z", 500000),
        ("2024-01-01T00:00:00.12+01:00", 120000),
        ("2024-01-01T00:00:00.1234567Z", 123456),
    ])
    def test_any_fraction_precision(self, zurich, value, microsecond):
        assert parse_timestamp(value, zurich, end_of_day=False).microsecond == microsecond

    @pytest.mark.parametrize("value", [
        "yesterday",
        "2024-13-01",
        "2024-01-01T00:00:00",
        "2024-01-01 00:00:00+00:00",
    ])
    def test_rejects_invalid_values(self, zurich, value):
        with pytest.raises(ValueError):
            parse_timestamp(value, zurich, end_of_day=False)


class TestParseTimeRange:
    """Test window resolution."""

    def test_defaults_to_lookback_window(self, zurich):
        start, end = parse_time_range({}, zurich, LOOKBACK, now=NOW)

        assert end == NOW
        assert start == NOW - LOOKBACK

    def test_explicit_dates(self, zurich):
        start, end = parse_time_range({"start": "2024-01-01", "end": "2024-01-31"}, zurich, LOOKBACK, now=NOW)

        assert start == datetime(2024, 1, 1, tzinfo=zurich)
        assert end == datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=zurich)

    def test_same_day_is_a_full_day(self, zurich):
        start, end = parse_time_range({"start": "2024-01-01", "end": "2024-01-01"}, zurich, LOOKBACK, now=NOW)

        assert end - start == timedelta(days=1, microseconds=-1)

    def test_invalid_start(self, zurich):
        with pytest.raises(InvalidQueryParameterError, match="invalid start time format"):
            parse_time_range({"start": "garbage"}, zurich, LOOKBACK, now=NOW)

    def test_invalid_end(self, zurich):
        with pytest.raises(InvalidQueryParameterError, match="invalid end time format"):
            parse_time_range({"end": "garbage"}, zurich, LOOKBACK, now=NOW)

    def test_start_after_end(self, zurich):
        with pytest.raises(InvalidQueryParameterError, match="before end"):
            parse_time_range({"start": "2024-02-01", "end": "2024-01-01"}, zurich, LOOKBACK, now=NOW)

    def test_start_in_future_without_end(self, zurich):
        with pytest.raises(InvalidQueryParameterError):
            parse_time_range({"start": "2024-04-01"}, zurich, LOOKBACK, now=NOW)


class TestParseOIDRange:
    """Test OID range resolution."""

    def test_start_only_is_unbounded(self):
        assert parse_oid_range({"start_oid": "100"}) == (100, 0)

    def test_start_and_end(self):
        assert parse_oid_range({"start_oid": "5", "end_oid": "10"}) == (5, 10)

    def test_end_without_start_is_rejected(self):
        with pytest.raises(InvalidQueryParameterError, match="start_oid is required"):
            parse_oid_range({"end_oid": "10"})

    def test_start_greater_than_end(self):
        with pytest.raises(InvalidQueryParameterError, match="less than or equal"):
            parse_oid_range({"start_oid": "11", "end_oid": "10"})

    def test_equal_bounds_allowed(self):
        assert parse_oid_range({"start_oid": "10", "end_oid": "10"}) == (10, 10)

    @pytest.mark.parametrize("params", [
        {"start_oid": "abc"},
        {"start_oid": "1", "end_oid": "1.5"},
        {"start_oid": "-1"},
    ])
    def test_rejects_malformed_oids(self, params):
        with pytest.raises(InvalidQueryParameterError):
            parse_oid_range(params)


class TestParseHistoricalQuery:
    """Test the combined query."""

    def test_time_mode(self, zurich):
        query = parse_historical_query({"start": "2024-01-01"}, zurich, LOOKBACK, now_fn=lambda: NOW)

        assert query.by_oid is False
        assert query.start_oid == 0
        assert query.end == NOW

    def test_oid_mode(self, zurich):
        query = parse_historical_query(
            {"start_oid": "5", "end_oid": "10"}, zurich, LOOKBACK, now_fn=lambda: NOW
        )

        assert query.by_oid is True
        assert (query.start_oid, query.end_oid) == (5, 10)
        assert query.start == NOW - LOOKBACK
