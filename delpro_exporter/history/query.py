"""
Historical Query Parameters

Resolves the time window and optional OID range of a historical export from
raw query-string values.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from delpro_exporter.errors import InvalidQueryParameterError

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
END_OF_DAY = time(23, 59, 59, 999999)
# Seconds fraction of an RFC3339 timestamp, any precision
FRACTION_PATTERN = re.compile(r"(?<=:\d\d)\.(\d+)")


@dataclass(frozen=True)
class HistoricalQuery:
    """Resolved historical export window."""

    start: datetime
    end: datetime
    start_oid: int = 0
    end_oid: int = 0
    by_oid: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str, db_timezone: ZoneInfo, end_of_day: bool) -> datetime:
    """
    Parse an RFC3339 timestamp or a YYYY-MM-DD date.

    Dates are anchored in the database timezone: at midnight for a window
    start, at the last microsecond of the day for a window end.

    Raises:
        ValueError: If the value matches neither format
    """
    try:
        day = datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        day = None

    if day is not None:
        return _anchor_date(day, db_timezone, end_of_day)

    # fromisoformat only accepts a trailing "Z" from Python 3.11 on
    normalized = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    # fromisoformat takes 3 or 6 fraction digits before Python 3.11, RFC3339 allows any
    normalized = FRACTION_PATTERN.sub(_microsecond_fraction, normalized)
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None or "T" not in normalized.upper():
        raise ValueError(f"not an RFC3339 timestamp: {value}")
    return parsed


def _microsecond_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def _anchor_date(day: date, db_timezone: ZoneInfo, end_of_day: bool) -> datetime:
    return datetime.combine(day, END_OF_DAY if end_of_day else time(0), tzinfo=db_timezone)


def parse_time_range(
    params: Mapping[str, str],
    db_timezone: ZoneInfo,
    lookback: timedelta,
    now: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """
    Resolve `start`/`end` into a time window.

    Args:
        params: Query-string values
        db_timezone: Timezone used for date-only values
        lookback: Default window length when `start` is absent
        now: Current time (defaults to UTC now)

    Returns:
        (start, end), both timezone-aware

    Raises:
        InvalidQueryParameterError: On malformed values or start >= end
    """
    now = now or _utcnow()
    start = now - lookback
    end = now

    start_str = params.get("start")
    if start_str:
        try:
            start = parse_timestamp(start_str, db_timezone, end_of_day=False)
        except ValueError:
            raise InvalidQueryParameterError(
                "invalid start time format, use RFC3339 (2006-01-02T15:04:05Z) or date format (2006-01-02)"
            )

    end_str = params.get("end")
    if end_str:
        try:
            end = parse_timestamp(end_str, db_timezone, end_of_day=True)
        except ValueError:
            raise InvalidQueryParameterError(
                "invalid end time format, use RFC3339 (2006-01-02T15:04:05Z) or date format (2006-01-02)"
            )

    if start >= end:
        raise InvalidQueryParameterError("start time must be before end time")

    return start, end


def _parse_oid(params: Mapping[str, str], name: str) -> int:
    raw = params.get(name)
    if raw is None or raw == "":
        return 0

    try:
        oid = int(raw)
    except ValueError:
        raise InvalidQueryParameterError(f"invalid {name} format, must be a valid integer")

    if oid < 0:
        raise InvalidQueryParameterError(f"{name} must not be negative")
    return oid


def parse_oid_range(params: Mapping[str, str]) -> Tuple[int, int]:
    """
    Resolve `start_oid` (exclusive) and `end_oid` (inclusive, 0 = unbounded).

    Raises:
        InvalidQueryParameterError: On malformed values or start_oid > end_oid
    """
    if "start_oid" not in params:
        raise InvalidQueryParameterError("start_oid is required when end_oid is given")

    start_oid = _parse_oid(params, "start_oid")
    end_oid = _parse_oid(params, "end_oid")

    if end_oid > 0 and start_oid > end_oid:
        raise InvalidQueryParameterError("start_oid must be less than or equal to end_oid")

    return start_oid, end_oid


def parse_historical_query(
    params: Mapping[str, str],
    db_timezone: ZoneInfo,
    lookback: timedelta,
    now_fn: Callable[[], datetime] = _utcnow
) -> HistoricalQuery:
    """
    Build a HistoricalQuery from query-string values.

    The OID range mode is selected by the presence of `start_oid` or
    `end_oid`; the time window still bounds the query in that mode.

    Raises:
        InvalidQueryParameterError: If any parameter is invalid
    """
    by_oid = "start_oid" in params or "end_oid" in params

    start_oid = end_oid = 0
    if by_oid:
        start_oid, end_oid = parse_oid_range(params)

    start, end = parse_time_range(params, db_timezone, lookback, now=now_fn())

    return HistoricalQuery(start=start, end=end, start_oid=start_oid, end_oid=end_oid, by_oid=by_oid)
