"""
Timestamped Exposition Writer

Serializes prometheus_client series as Prometheus text lines carrying an
explicit millisecond timestamp, for bulk import into a time-series store.
Only sample lines are written: `# HELP`/`# TYPE` comments would repeat for
every record and are rejected by strict importers.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, TextIO, Tuple

from prometheus_client.metrics import MetricWrapperBase
from prometheus_client.utils import floatToGoString

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# (metric, label values by name) as produced by MilkingMetrics
TouchedSeries = Tuple[MetricWrapperBase, Dict[str, str]]


def to_millis(when: datetime) -> int:
    """Epoch milliseconds of a timezone-aware datetime."""
    return (when - EPOCH) // timedelta(milliseconds=1)


def format_sample(name: str, labels: Dict[str, str], value: float, timestamp_ms: int) -> str:
    """Render one exposition line. Label values must already be sanitized."""
    if labels:
        label_str = ",".join(f'{key}="{val}"' for key, val in labels.items())
        series = f"{name}{{{label_str}}}"
    else:
        series = name
    return f"{series} {floatToGoString(value)} {timestamp_ms}\n"


class TimestampedWriter:
    """
    Writes series to a text stream, stamping every line with a given time.

    The stream only needs a `write(str)` method (StringIO, an open file or a
    text wrapper around a gzip stream).
    """

    def __init__(self, stream: TextIO):
        """
        Initialize the writer.

        Args:
            stream: Text stream receiving exposition lines
        """
        self.stream = stream
        self.lines_written = 0

    def write_sample(
        self,
        name: str,
        labels: Dict[str, str],
        value: float,
        when: datetime
    ) -> None:
        """Write a single sample line timestamped at `when`."""
        self.stream.write(format_sample(name, labels, value, to_millis(when)))
        self.lines_written += 1

    def write_series(self, touched: Iterable[TouchedSeries], when: datetime) -> int:
        """
        Write the current samples of every touched series.

        Histogram series expand to all their bucket, sum and count samples.
        `_created` samples are skipped since they carry wall-clock times.

        Args:
            touched: Series to write, in output order
            when: Timestamp applied to every line

        Returns:
            Number of lines written
        """
        timestamp_ms = to_millis(when)
        written = 0

        for metric, labels in self._dedupe(touched):
            for family in metric.collect():
                for sample in family.samples:
                    if sample.name.endswith("_created"):
                        continue
                    if not _labels_match(sample.labels, labels):
                        continue
                    self.stream.write(
                        format_sample(sample.name, sample.labels, sample.value, timestamp_ms)
                    )
                    written += 1

        self.lines_written += written
        return written

    @staticmethod
    def _dedupe(touched: Iterable[TouchedSeries]) -> List[TouchedSeries]:
        seen = set()
        unique = []
        for metric, labels in touched:
            key = (id(metric), tuple(labels.items()))
            if key in seen:
                continue
            seen.add(key)
            unique.append((metric, labels))
        return unique


def _labels_match(sample_labels: Dict[str, str], labels: Optional[Dict[str, str]]) -> bool:
    # Histogram buckets carry an extra "le" label on top of the series labels
    if not labels:
        return True
    return all(sample_labels.get(key) == value for key, value in labels.items())
