"""
DelPro Exporter

Polls a DeLaval DelPro milking database and exposes milking sessions as
Prometheus metrics, either live (incremental, cursor driven) or as a
timestamped historical replay for backfilling a time-series store.
"""

__version__ = "1.0.0"
