"""
Pytest configuration and shared fixtures.

Provides milking record builders and an in-memory record source standing in
for the DelPro database.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from prometheus_client import CollectorRegistry

from delpro_exporter.checkpoint import OIDCheckpoint
from delpro_exporter.models import MilkingRecord

ZURICH = ZoneInfo("Europe/Zurich")


class FakeRecordSource:
    """
    In-memory record source.

    Applies the OID bounds like the SQL query (exclusive lower, inclusive
    upper, 0 = unbounded). The time window is only applied when
    filter_by_time is set, so cursor tests are independent of the clock.
    """

    def __init__(self, records=None, utilization=None, filter_by_time=False):
        self.records = list(records or [])
        self.utilization = dict(utilization or {})
        self.filter_by_time = filter_by_time
        self.error = None
        self.utilization_error = None
        self.calls = []

    def get_milking_records(self, start, end, start_oid=0, end_oid=0, timeout=30, cancellation=None):
        self.calls.append({
            "start": start,
            "end": end,
            "start_oid": start_oid,
            "end_oid": end_oid,
            "timeout": timeout,
        })
        if self.error is not None:
            raise self.error

        selected = [
            record for record in self.records
            if record.oid > start_oid and (end_oid <= 0 or record.oid <= end_oid)
        ]
        if self.filter_by_time:
            selected = [record for record in selected if start <= record.end_time < end]

        return sorted(selected, key=lambda record: record.oid)

    def get_device_utilization(self, timeout=30):
        if self.utilization_error is not None:
            raise self.utilization_error
        return dict(self.utilization)


def build_record(oid=1, end_time=None, **overrides) -> MilkingRecord:
    """Build a fully populated milking record, overriding any field."""
    end_time = end_time or datetime(2024, 3, 1, 9, 0, tzinfo=ZURICH)
    values = {
        "oid": oid,
        "animal_number": "42",
        "animal_name": "Bella",
        "animal_reg_no": "CH120000000042",
        "breed_name": "Holstein",
        "device_id": "1",
        "destination_name": "Tank",
        "yield_liters": 10.0,
        "begin_time": end_time - timedelta(minutes=8),
        "end_time": end_time,
        "lactation_number": 3,
        "days_in_lactation": 120,
        "conductivity": 65,
        "duration": 480,
        "somatic_cell_count": 90000,
        "incomplete": 0,
        "kickoff": 0,
    }
    values.update(overrides)
    return MilkingRecord(**values)


@pytest.fixture
def make_record():
    """Factory for milking records."""
    return build_record


@pytest.fixture
def fake_source_class():
    """The in-memory record source class."""
    return FakeRecordSource


@pytest.fixture
def registry():
    """A fresh, isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def checkpoint(tmp_path):
    """OID checkpoint stored in a temporary directory."""
    return OIDCheckpoint(tmp_path / "delpro_last_oid.txt")


@pytest.fixture
def zurich():
    return ZURICH
