"""
DelPro Exporter Service

Combines the record source, the live metric set, the OID checkpoint and the
historical replay:

- update_metrics(): one live cycle, applying only sessions above the cursor
- stream_historical_metrics(): one historical export, produced per animal
- LiveUpdater: background task running update_metrics() on an interval
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, List, Optional, Protocol

from prometheus_client import CollectorRegistry, generate_latest

from delpro_exporter.checkpoint import OIDCheckpoint
from delpro_exporter.database.client import (
    HISTORICAL_QUERY_TIMEOUT,
    LIVE_QUERY_TIMEOUT,
    QueryCancellation,
)
from delpro_exporter.errors import RecordSourceError
from delpro_exporter.history.query import HistoricalQuery
from delpro_exporter.history.replay import HistoricalReplay, ReplayResult, highest_oid
from delpro_exporter.models import DEFAULT_LOOKBACK_WINDOW, LIVE_MODE_DELAY, MilkingRecord
from delpro_exporter.monitoring.metrics import ExporterMetrics, MilkingMetrics
from delpro_exporter.utils.correlation import CorrelationContext

logger = logging.getLogger(__name__)

# Animals seen this far back get their counters created at zero on startup
COUNTER_INIT_WINDOW = timedelta(hours=24)


class RecordSource(Protocol):
    """Query interface the exporter needs from the DelPro database."""

    def get_milking_records(
        self,
        start: datetime,
        end: datetime,
        start_oid: int = 0,
        end_oid: int = 0,
        timeout: int = LIVE_QUERY_TIMEOUT,
        cancellation: Optional[QueryCancellation] = None
    ) -> List[MilkingRecord]:
        ...

    def get_device_utilization(self, timeout: int = LIVE_QUERY_TIMEOUT) -> dict:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DelProExporter:
    """Drives live and historical metric generation from the record source."""

    def __init__(
        self,
        source: RecordSource,
        registry: CollectorRegistry,
        checkpoint: OIDCheckpoint,
        replay: Optional[HistoricalReplay] = None,
        now_fn: Callable[[], datetime] = _utcnow
    ):
        """
        Initialize the exporter and load the OID cursor.

        Args:
            source: Milking record source
            registry: Live registry served on /metrics
            checkpoint: Persistent store of the last processed OID
            replay: Historical replay (both-ends bracketing by default)
            now_fn: Clock, injectable for tests
        """
        self.source = source
        self.registry = registry
        self.metrics = MilkingMetrics(registry)
        self.exporter_metrics = ExporterMetrics(registry)
        self.checkpoint = checkpoint
        self.replay = replay or HistoricalReplay()
        self._now = now_fn

        self.last_oid = checkpoint.load()
        self.exporter_metrics.last_processed_oid.set(self.last_oid)

    def set_last_oid(self, new_oid: int) -> bool:
        """
        Override the cursor with an operator-supplied OID.

        Only moves the cursor forward; rewinding would apply sessions twice.

        Returns:
            True if the cursor was moved
        """
        if new_oid <= self.last_oid:
            logger.info(f"Specified OID {new_oid} is not larger than current OID {self.last_oid}, ignoring")
            return False

        logger.info(f"Overriding last processed OID from {self.last_oid} to {new_oid}")
        self._advance_cursor(new_oid)
        return True

    def _advance_cursor(self, new_oid: int) -> None:
        self.last_oid = new_oid
        self.exporter_metrics.last_processed_oid.set(new_oid)
        self.checkpoint.save(new_oid)

    def initialize_counters(self) -> int:
        """
        Create zero-valued cumulative series for animals milked in the past day.

        Failures are logged: the exporter still starts, the series then
        appear with their first increment.

        Returns:
            Number of distinct label sets initialized
        """
        logger.info("Initializing counters for animals from past 24h...")
        now = self._now()

        try:
            records = self.source.get_milking_records(now - COUNTER_INIT_WINDOW, now, 0)
        except RecordSourceError as e:
            logger.error(f"Error getting records for counter initialization: {e}")
            return 0

        seen = set()
        for record in records:
            key = record.label_key()
            if key in seen:
                continue
            self.metrics.initialize_series(record)
            seen.add(key)

        logger.info(f"Initialized counters for {len(seen)} unique animals from past 24h")
        return len(seen)

    def update_metrics(self) -> int:
        """
        Run one live update cycle.

        Applies sessions with an OID above the cursor, then advances and
        persists the cursor, then refreshes device utilization.

        Returns:
            Number of records applied

        Raises:
            RecordSourceError: If the milking records query fails
        """
        started = time.monotonic()
        # Lagged so voluntary-session yield data is populated
        end = self._now() - LIVE_MODE_DELAY

        try:
            records = self.source.get_milking_records(
                end - DEFAULT_LOOKBACK_WINDOW,
                end,
                self.last_oid,
                timeout=LIVE_QUERY_TIMEOUT
            )
        except RecordSourceError as e:
            logger.error(f"Error collecting milking metrics: {e}")
            self.exporter_metrics.record_update_cycle("failure", time.monotonic() - started)
            raise

        applied = self.metrics.create_metrics_from_records(records)

        newest = highest_oid(records)
        if newest > self.last_oid:
            self._advance_cursor(newest)
            logger.info(f"Updated last processed OID to: {self.last_oid}", extra={"oid": self.last_oid})

        try:
            utilization = self.source.get_device_utilization(timeout=LIVE_QUERY_TIMEOUT)
        except RecordSourceError as e:
            logger.error(f"Error collecting device utilization: {e}")
        else:
            self.metrics.update_device_utilization(utilization)

        duration = time.monotonic() - started
        self.exporter_metrics.record_update_cycle("success", duration)
        logger.debug(
            f"Live update applied {applied} records in {duration:.3f}s",
            extra={"records": applied, "duration": duration}
        )
        return applied

    def fetch_historical_records(
        self,
        query: HistoricalQuery,
        cancellation: Optional[QueryCancellation] = None
    ) -> List[MilkingRecord]:
        """
        Query the records of a historical export. Never touches the live cursor.

        Raises:
            RecordSourceError: If the query fails, times out or is cancelled
        """
        return self.source.get_milking_records(
            query.start,
            query.end,
            query.start_oid,
            query.end_oid,
            timeout=HISTORICAL_QUERY_TIMEOUT,
            cancellation=cancellation
        )

    def stream_historical_metrics(self, records: List[MilkingRecord]) -> Iterator[str]:
        """
        Replay records as timestamped metrics on isolated per-animal sets.

        Blocking: iterate it from a worker thread when serving requests.

        Yields:
            Exposition text, one animal at a time
        """
        result = ReplayResult(records=len(records), highest_oid=highest_oid(records))
        yield from self.replay.iter_chunks(records, result)
        logger.info(
            f"Collected historical milking metrics for {result.records} records",
            extra={"records": result.records, "oid": result.highest_oid}
        )

    def write_prometheus(self) -> bytes:
        """Current live metrics in the Prometheus text format."""
        return generate_latest(self.registry)


class LiveUpdater:
    """Runs the live update cycle on a fixed interval until stopped."""

    def __init__(self, exporter: DelProExporter, interval_seconds: float = 30):
        self.exporter = exporter
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def start(self) -> None:
        if self._task and not self._task.done():
            logger.warning("Live updater already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="delpro-live-updater")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None

    async def run_once(self) -> None:
        """Run one cycle in a worker thread; failures are logged, not raised."""
        with CorrelationContext():
            try:
                await asyncio.to_thread(self.exporter.update_metrics)
            except RecordSourceError:
                # Already logged by the exporter, next tick retries
                pass
            except Exception:
                logger.exception("Unexpected error during live update")

    async def _run(self) -> None:
        logger.info(f"Starting live updater (interval={self.interval_seconds}s)")
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Live updater stopped")
