"""
DelPro Exporter command-line entry point.

Usage:
    SQL_PASSWORD=... delpro-exporter --db-host delpro.local --db-timezone Europe/Zurich
    SQL_PASSWORD=... delpro-exporter --config delpro.yaml --last-oid 123456
"""

import logging
import sys
from typing import List, Optional

import uvicorn
from prometheus_client import CollectorRegistry, disable_created_metrics

from delpro_exporter import __version__
from delpro_exporter.api.app import create_app
from delpro_exporter.checkpoint import OIDCheckpoint
from delpro_exporter.config import load_settings
from delpro_exporter.database.client import DelProClient
from delpro_exporter.errors import ConfigurationError, DatabaseConnectionError
from delpro_exporter.exporter import DelProExporter, LiveUpdater
from delpro_exporter.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    setup_logging()

    try:
        settings = load_settings(argv)
    except ConfigurationError as e:
        logger.error(f"Error parsing configuration: {e}")
        return 1

    setup_logging(verbose=settings.verbose, json_logs=settings.json_logs)
    logger.info(f"DelPro Exporter - Version: {__version__}")
    logger.debug(f"Settings: {settings!r}")

    client = DelProClient(
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        user=settings.db_user,
        password=settings.db_password,
        db_timezone=settings.db_timezone,
        driver=settings.db_driver,
    )

    try:
        client.connect()
    except DatabaseConnectionError as e:
        logger.error(f"Fatal: {e}")
        return 1

    # No _created samples, matching the historical output
    disable_created_metrics()
    registry = CollectorRegistry()

    exporter = DelProExporter(client, registry, OIDCheckpoint(settings.oid_file))
    if settings.last_oid > 0:
        exporter.set_last_oid(settings.last_oid)
    exporter.initialize_counters()

    updater = LiveUpdater(exporter, interval_seconds=settings.update_interval)
    app = create_app(exporter, settings.db_timezone, settings.historical_lookback, updater)

    logger.info(f"Starting DelPro exporter on {settings.listen_address}")
    uvicorn.run(app, host=settings.listen_host, port=settings.listen_port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
