"""
Unit tests for the command-line entry point.
"""

from unittest.mock import MagicMock, patch

import pytest

from delpro_exporter import cli
from delpro_exporter.errors import DatabaseConnectionError


@pytest.fixture
def environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SQL_PASSWORD", "s3cret")
    for name in ("DELPRO_DB_HOST", "DELPRO_LAST_OID", "DELPRO_LISTEN_ADDRESS", "JSON_LOGGING"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def wiring():
    """Patch out the database, the server and global logging/metric setup."""
    with patch.object(cli, "DelProClient") as client_class, \
            patch.object(cli, "uvicorn") as uvicorn, \
            patch.object(cli, "setup_logging"), \
            patch.object(cli, "disable_created_metrics"):
        client = client_class.return_value
        client.get_milking_records.return_value = []
        client.get_device_utilization.return_value = {}
        yield MagicMock(client_class=client_class, client=client, uvicorn=uvicorn)


class TestMain:
    """Test startup wiring."""

    def test_missing_password(self, environment, wiring, monkeypatch):
        monkeypatch.delenv("SQL_PASSWORD")

        assert cli.main([]) == 1
        wiring.uvicorn.run.assert_not_called()

    def test_database_unreachable(self, environment, wiring):
        wiring.client.connect.side_effect = DatabaseConnectionError("Failed to connect")

        assert cli.main(["--db-host", "barn"]) == 1
        wiring.uvicorn.run.assert_not_called()

    def test_starts_server(self, environment, wiring, tmp_path):
        oid_file = tmp_path / "oid.txt"

        assert cli.main(["--listen-address", "127.0.0.1:9191", "--last-oid", "500", "--oid-file", str(oid_file)]) == 0

        wiring.client.connect.assert_called_once()
        assert wiring.client_class.call_args.kwargs["password"] == "s3cret"
        args, kwargs = wiring.uvicorn.run.call_args
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9191
        assert oid_file.read_text() == "500"
        # Counters were initialized from the past day starting at OID 0
        assert wiring.client.get_milking_records.call_args.args[2] == 0
