"""
Historical Replay for DelPro Milking Sessions

Produces a timestamped exposition stream for a past time window, safe to
import into a store that computes rate()/increase() over the counters.

Records are partitioned per animal and each partition is replayed on its own
fresh metric set, so counters start at zero and only accumulate that
animal's own history. Each partition is bracketed with synthetic zero points
before its first and after its last session, marking counter resets for the
downstream store.
"""

import io
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterator, List, Optional, Sequence, TextIO

from prometheus_client import CollectorRegistry

from delpro_exporter.models import MilkingRecord
from delpro_exporter.monitoring import catalog
from delpro_exporter.monitoring.exposition import TimestampedWriter
from delpro_exporter.monitoring.metrics import MilkingMetrics

logger = logging.getLogger(__name__)

BRACKET_OFFSET = timedelta(minutes=10)

# Cumulative series reset to zero around each partition
BRACKET_METRICS = (
    catalog.METRIC_MILK_SESSIONS,
    catalog.METRIC_MILK_YIELD_TOTAL,
    catalog.METRIC_SOMATIC_CELL_TOTAL,
    f"{catalog.METRIC_MILKING_DURATION}_sum",
    f"{catalog.METRIC_MILKING_DURATION}_count",
)


@dataclass
class ReplayResult:
    """Outcome of a historical replay."""

    records: int = 0
    partitions: int = 0
    lines: int = 0
    highest_oid: int = 0


def partition_records(records: Sequence[MilkingRecord]) -> "OrderedDict[str, List[MilkingRecord]]":
    """
    Group records by animal registration number.

    Partitions keep first-seen order and records keep their input order, so
    the output of a replay is deterministic for a given query result.
    """
    partitions: "OrderedDict[str, List[MilkingRecord]]" = OrderedDict()
    for record in records:
        partitions.setdefault(record.animal_reg_no, []).append(record)
    return partitions


def highest_oid(records: Sequence[MilkingRecord]) -> int:
    """Highest OID among records, 0 when there are none."""
    return max((record.oid for record in records), default=0)


class HistoricalReplay:
    """Writes bracketed, per-animal timestamped metrics for a set of records."""

    def __init__(self, bracket_end: bool = True):
        """
        Initialize the replay.

        Args:
            bracket_end: Also write the trailing zero bracket after the last
                session of each animal. Disabling it restores the legacy
                start-only bracketing.
        """
        self.bracket_end = bracket_end

    def write(self, stream: TextIO, records: Sequence[MilkingRecord]) -> ReplayResult:
        """
        Replay records into a text stream.

        Args:
            stream: Destination for exposition lines
            records: Records sorted by OID ascending

        Returns:
            ReplayResult with counts and the highest OID seen
        """
        result = ReplayResult(records=len(records), highest_oid=highest_oid(records))
        for chunk in self.iter_chunks(records, result):
            stream.write(chunk)
        return result

    def iter_chunks(
        self,
        records: Sequence[MilkingRecord],
        result: Optional[ReplayResult] = None
    ) -> Iterator[str]:
        """
        Replay records one animal at a time.

        Only one partition is rendered in memory at once, so a long window
        can be streamed to the client as it is produced.

        Args:
            records: Records sorted by OID ascending
            result: Updated with partition and line counts as chunks are produced

        Yields:
            The exposition text of one partition
        """
        for reg_no, animal_records in partition_records(records).items():
            buffer = io.StringIO()
            writer = TimestampedWriter(buffer)
            self._replay_partition(writer, animal_records)
            logger.debug(f"Replayed {len(animal_records)} sessions for animal {reg_no}")

            if result is not None:
                result.partitions += 1
                result.lines += writer.lines_written
            yield buffer.getvalue()

    def _replay_partition(self, writer: TimestampedWriter, records: List[MilkingRecord]) -> None:
        # Never the live registry: each animal gets its own counters
        metrics = MilkingMetrics(CollectorRegistry())

        first_end = min(record.end_time for record in records)
        last_end = max(record.end_time for record in records)
        label_sets = self._distinct_label_sets(records)

        self._write_bracket(writer, label_sets, first_end - BRACKET_OFFSET)
        metrics.create_metrics_from_records(records, writer=writer)
        if self.bracket_end:
            self._write_bracket(writer, label_sets, last_end + BRACKET_OFFSET)

    @staticmethod
    def _distinct_label_sets(records: List[MilkingRecord]) -> List[Dict[str, str]]:
        label_sets: "OrderedDict[str, Dict[str, str]]" = OrderedDict()
        for record in records:
            label_sets.setdefault(record.label_key(), record.labels())
        return list(label_sets.values())

    @staticmethod
    def _write_bracket(writer: TimestampedWriter, label_sets: List[Dict[str, str]], when) -> None:
        for labels in label_sets:
            for name in BRACKET_METRICS:
                writer.write_sample(name, labels, 0, when)
