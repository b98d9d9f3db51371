"""
Database Module for the DelPro Exporter

Usage:
    from delpro_exporter.database import DelProClient

    client = DelProClient(host, port, "DDM", user, password, ZoneInfo("Europe/Zurich"))
    client.connect()
    records = client.get_milking_records(start, end, start_oid=last_oid)
"""

from delpro_exporter.database.client import (
    HISTORICAL_QUERY_TIMEOUT,
    LIVE_QUERY_TIMEOUT,
    DelProClient,
    QueryCancellation,
)

__all__ = [
    "DelProClient",
    "QueryCancellation",
    "LIVE_QUERY_TIMEOUT",
    "HISTORICAL_QUERY_TIMEOUT",
]
