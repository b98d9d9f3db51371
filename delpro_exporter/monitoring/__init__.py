"""
Monitoring Module for the DelPro Exporter

This module turns milking records into Prometheus metrics:
- Metric catalog (stable exposed names)
- MilkingMetrics: per-registry metric set and record application
- ExporterMetrics: self-monitoring of the exporter
- TimestampedWriter: timestamped exposition lines for historical replay

Usage:
    from prometheus_client import CollectorRegistry
    from delpro_exporter.monitoring import MilkingMetrics, TimestampedWriter

    metrics = MilkingMetrics(CollectorRegistry())
    metrics.create_metrics_from_records(records)

    # Emit every record with its own end time
    writer = TimestampedWriter(stream)
    metrics.create_metrics_from_records(records, writer=writer)
"""

from delpro_exporter.monitoring.metrics import ExporterMetrics, MilkingMetrics
from delpro_exporter.monitoring.exposition import TimestampedWriter

__all__ = [
    "MilkingMetrics",
    "ExporterMetrics",
    "TimestampedWriter",
]
