"""
HTTP API Module

Usage:
    from delpro_exporter.api import create_app

    app = create_app(exporter, ZoneInfo("Europe/Zurich"), timedelta(days=30), updater)
"""

from delpro_exporter.api.app import create_app

__all__ = ["create_app"]
