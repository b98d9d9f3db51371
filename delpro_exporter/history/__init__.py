"""
Historical Replay Module

Usage:
    from delpro_exporter.history import HistoricalReplay, parse_historical_query

    query = parse_historical_query(request_params, ZoneInfo("Europe/Zurich"), timedelta(days=30))
    result = HistoricalReplay().write(stream, records)
    print(result.highest_oid)
"""

from delpro_exporter.history.query import (
    HistoricalQuery,
    parse_historical_query,
    parse_oid_range,
    parse_time_range,
)
from delpro_exporter.history.replay import (
    BRACKET_OFFSET,
    HistoricalReplay,
    ReplayResult,
    partition_records,
)

__all__ = [
    "BRACKET_OFFSET",
    "HistoricalQuery",
    "HistoricalReplay",
    "ReplayResult",
    "parse_historical_query",
    "parse_oid_range",
    "parse_time_range",
    "partition_records",
]
