"""
Prometheus Metrics for DelPro Milking Sessions

Turns milking records into prometheus_client mutations. A MilkingMetrics
instance owns one isolated metric set on the registry it is given: the live
exporter shares one registry for the process lifetime, the historical replay
creates a fresh one per animal.
"""

import logging
from typing import Dict, Iterable, List, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

from delpro_exporter import __version__
from delpro_exporter.models import MilkingRecord, decode_teats, teats_label
from delpro_exporter.monitoring import catalog
from delpro_exporter.monitoring.exposition import TimestampedWriter, TouchedSeries

logger = logging.getLogger(__name__)


class MilkingMetrics:
    """Prometheus metrics for milking sessions, registered on one registry."""

    def __init__(self, registry: CollectorRegistry):
        """
        Initialize milking metrics.

        Args:
            registry: Registry receiving every metric of this set
        """
        self.registry = registry

        # Session counter
        self.sessions_total = Counter(
            catalog.METRIC_MILK_SESSIONS,
            'Total number of milking sessions',
            catalog.SESSION_LABELS,
            registry=registry
        )

        # Yield
        self.last_yield = Gauge(
            catalog.METRIC_LAST_MILK_YIELD,
            'Milk yield of the last session in liters',
            catalog.SESSION_LABELS,
            registry=registry
        )

        self.last_yield_timestamp = Gauge(
            catalog.METRIC_LAST_YIELD_TIMESTAMP,
            'End time of the last session with a yield, in epoch seconds',
            catalog.SESSION_LABELS,
            registry=registry
        )

        self.yield_total = Gauge(
            catalog.METRIC_MILK_YIELD_TOTAL,
            'Cumulative milk yield in liters',
            catalog.SESSION_LABELS,
            registry=registry
        )

        self.conductivity = Gauge(
            catalog.METRIC_CONDUCTIVITY,
            'Average milk conductivity of the last session in mS/cm',
            catalog.SESSION_LABELS,
            registry=registry
        )

        # Duration
        self.duration = Histogram(
            catalog.METRIC_MILKING_DURATION,
            'Milking session duration in seconds',
            catalog.SESSION_LABELS,
            buckets=catalog.DURATION_BUCKETS,
            registry=registry
        )

        self.last_duration = Gauge(
            catalog.METRIC_LAST_MILKING_DURATION,
            'Duration of the last milking session in seconds',
            catalog.SESSION_LABELS,
            registry=registry
        )

        self.last_duration_timestamp = Gauge(
            catalog.METRIC_LAST_DURATION_TIMESTAMP,
            'End time of the last session with a duration, in epoch seconds',
            catalog.SESSION_LABELS,
            registry=registry
        )

        # Somatic cell count
        self.somatic_cell_total = Gauge(
            catalog.METRIC_SOMATIC_CELL_TOTAL,
            'Cumulative somatic cell count',
            catalog.SESSION_LABELS,
            registry=registry
        )

        self.last_somatic_cell = Gauge(
            catalog.METRIC_LAST_SOMATIC_CELL,
            'Somatic cell count of the last session in cells/ml',
            catalog.SESSION_LABELS,
            registry=registry
        )

        self.last_somatic_cell_timestamp = Gauge(
            catalog.METRIC_LAST_SCC_TIMESTAMP,
            'End time of the last session with a somatic cell count, in epoch seconds',
            catalog.SESSION_LABELS,
            registry=registry
        )

        self.days_in_lactation = Gauge(
            catalog.METRIC_DAYS_IN_LACTATION,
            'Days since the start of the current lactation',
            catalog.SESSION_LABELS,
            registry=registry
        )

        # Teat events are counted on gauges so backfilled series can be bracketed
        self.incomplete_teat = Gauge(
            catalog.METRIC_INCOMPLETE,
            'Incomplete milkings per teat',
            catalog.TEAT_LABELS,
            registry=registry
        )

        self.kickoff_teat = Gauge(
            catalog.METRIC_KICKOFF,
            'Kickoff events per teat',
            catalog.TEAT_LABELS,
            registry=registry
        )

        self.incomplete_teats = Gauge(
            catalog.METRIC_INCOMPLETE_TEATS,
            'Incomplete milkings per combination of affected teats',
            catalog.TEATS_LABELS,
            registry=registry
        )

        self.kickoff_teats = Gauge(
            catalog.METRIC_KICKOFF_TEATS,
            'Kickoff events per combination of affected teats',
            catalog.TEATS_LABELS,
            registry=registry
        )

        self.device_utilization = Gauge(
            catalog.METRIC_DEVICE_UTILIZATION,
            'Milking sessions started on the device over the last day',
            catalog.DEVICE_LABELS,
            registry=registry
        )

    def record_session(self, record: MilkingRecord) -> List[TouchedSeries]:
        """
        Apply one milking record to the metric set.

        Not idempotent: applying the same record twice counts it twice.

        Args:
            record: Milking record with sanitized label values

        Returns:
            Series touched by this record, in update order
        """
        labels = record.labels()
        touched: List[TouchedSeries] = []

        def series(metric, extra: Optional[Dict[str, str]] = None):
            series_labels = dict(labels, **extra) if extra else labels
            touched.append((metric, series_labels))
            return metric.labels(**series_labels)

        series(self.sessions_total).inc()

        series(self.last_yield).set(record.yield_liters)
        series(self.last_yield_timestamp).set(record.end_timestamp)
        series(self.yield_total).inc(record.yield_liters)

        if record.conductivity is not None:
            series(self.conductivity).set(record.conductivity)

        if record.duration is not None:
            series(self.duration).observe(record.duration)
            series(self.last_duration).set(record.duration)
            series(self.last_duration_timestamp).set(record.end_timestamp)

        if record.somatic_cell_count is not None:
            series(self.somatic_cell_total).inc(record.somatic_cell_count)
            series(self.last_somatic_cell).set(record.somatic_cell_count)
            series(self.last_somatic_cell_timestamp).set(record.end_timestamp)

        if record.days_in_lactation is not None:
            series(self.days_in_lactation).set(record.days_in_lactation)

        self._record_teats(record.incomplete, self.incomplete_teat, self.incomplete_teats, series)
        self._record_teats(record.kickoff, self.kickoff_teat, self.kickoff_teats, series)

        return touched

    @staticmethod
    def _record_teats(bitfield: Optional[int], per_teat: Gauge, combined: Gauge, series) -> None:
        if bitfield is None:
            return

        teats = decode_teats(bitfield)
        for teat in teats:
            series(per_teat, {"teat": teat}).inc()

        # Concatenated label eases Grafana visualization of teat combinations
        if teats:
            series(combined, {"teats": teats_label(bitfield)}).inc()

    def create_metrics_from_records(
        self,
        records: Iterable[MilkingRecord],
        writer: Optional[TimestampedWriter] = None
    ) -> int:
        """
        Apply records in the given order, optionally emitting each one.

        Records must already be sorted by OID; no sorting happens here.

        Args:
            records: Milking records to apply
            writer: When given, every series touched by a record is written
                immediately, timestamped at that record's end time

        Returns:
            Number of records applied
        """
        count = 0
        for record in records:
            if writer is None:
                logger.debug(f"New record processed: oid={record.oid} animal={record.animal_number}")

            touched = self.record_session(record)

            if writer is not None:
                writer.write_series(touched, record.end_time)

            count += 1

        return count

    def initialize_series(self, record: MilkingRecord) -> None:
        """
        Create the cumulative series of a record's label set at zero.

        Lets increase() see the first real increment after a restart.
        """
        labels = record.labels()
        self.sessions_total.labels(**labels)
        self.yield_total.labels(**labels)
        self.somatic_cell_total.labels(**labels)
        self.duration.labels(**labels)

    def update_device_utilization(self, utilization: Dict[str, int]) -> None:
        """Set the per-device session count of the last day."""
        for device_id, session_count in utilization.items():
            self.device_utilization.labels(milk_device_id=device_id).set(session_count)


class ExporterMetrics:
    """Self-monitoring metrics of the exporter process."""

    def __init__(self, registry: CollectorRegistry):
        """
        Initialize exporter metrics.

        Args:
            registry: Live registry
        """
        self.update_cycles_total = Counter(
            catalog.METRIC_UPDATE_CYCLES,
            'Total number of live update cycles',
            ['status'],
            registry=registry
        )

        self.update_duration_seconds = Histogram(
            catalog.METRIC_UPDATE_DURATION,
            'Duration of live update cycles in seconds',
            buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60],
            registry=registry
        )

        self.last_processed_oid = Gauge(
            catalog.METRIC_LAST_PROCESSED_OID,
            'Highest milking session OID applied to the live metrics',
            registry=registry
        )

        self.historical_requests_total = Counter(
            catalog.METRIC_HISTORICAL_REQUESTS,
            'Total number of historical metrics requests',
            ['status'],
            registry=registry
        )

        self.exporter_info = Info(
            catalog.METRIC_EXPORTER_INFO,
            'DelPro exporter information',
            registry=registry
        )
        self.exporter_info.info({
            'version': __version__,
            'source': 'delpro',
        })

        logger.debug("ExporterMetrics initialized")

    def record_update_cycle(self, status: str, duration_seconds: float) -> None:
        """Record a live update cycle."""
        self.update_cycles_total.labels(status=status).inc()
        self.update_duration_seconds.observe(duration_seconds)

    def record_historical_request(self, status: str) -> None:
        """Record a historical metrics request."""
        self.historical_requests_total.labels(status=status).inc()
