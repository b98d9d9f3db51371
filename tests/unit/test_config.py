"""
Unit tests for settings resolution.
"""

from datetime import timedelta

import pytest

from delpro_exporter.config import load_config_file, load_settings
from delpro_exporter.errors import ConfigurationError

ENVIRON = {"SQL_PASSWORD": "s3cret"}


class TestLoadSettings:
    """Test defaults and precedence."""

    def test_defaults(self, zurich):
        settings = load_settings([], environ=dict(ENVIRON))

        assert settings.listen_address == ":9090"
        assert settings.listen_host == "0.0.0.0"
        assert settings.listen_port == 9090
        assert settings.db_host == "localhost"
        assert settings.db_port == "1433"
        assert settings.db_name == "DDM"
        assert settings.db_user == "sa"
        assert settings.db_password == "s3cret"
        assert settings.db_timezone == zurich
        assert settings.last_oid == 0
        assert settings.update_interval == 30.0
        assert settings.historical_lookback == timedelta(days=30)
        assert settings.json_logs is False

    def test_missing_password(self):
        with pytest.raises(ConfigurationError, match="SQL_PASSWORD"):
            load_settings([], environ={})

    def test_environment_overrides_defaults(self):
        environ = dict(ENVIRON, DELPRO_DB_HOST="delpro.farm.local", DELPRO_LAST_OID="1234")

        settings = load_settings([], environ=environ)

        assert settings.db_host == "delpro.farm.local"
        assert settings.last_oid == 1234

    def test_flags_override_environment(self):
        environ = dict(ENVIRON, DELPRO_DB_HOST="from-env")

        settings = load_settings(["--db-host", "from-flag", "--last-oid", "99"], environ=environ)

        assert settings.db_host == "from-flag"
        assert settings.last_oid == 99

    def test_config_file_below_environment(self, tmp_path):
        config = tmp_path / "delpro.yaml"
        config.write_text("db-host: from-file\ndb-name: DDM2\nupdate_interval: 10\n")
        environ = dict(ENVIRON, DELPRO_DB_NAME="from-env")

        settings = load_settings(["--config", str(config)], environ=environ)

        assert settings.db_host == "from-file"
        assert settings.db_name == "from-env"
        assert settings.update_interval == 10.0

    def test_listen_address_with_host(self):
        settings = load_settings(["--listen-address", "127.0.0.1:9191"], environ=dict(ENVIRON))

        assert settings.listen_host == "127.0.0.1"
        assert settings.listen_port == 9191

    @pytest.mark.parametrize("address", [":http", ":0", ":70000", "localhost:"])
    def test_invalid_listen_address(self, address):
        with pytest.raises(ConfigurationError, match="listen address"):
            load_settings(["--listen-address", address], environ=dict(ENVIRON))

    def test_invalid_timezone(self):
        with pytest.raises(ConfigurationError, match="timezone"):
            load_settings(["--db-timezone", "Mars/Olympus"], environ=dict(ENVIRON))

    def test_invalid_integer_from_environment(self):
        with pytest.raises(ConfigurationError, match="last_oid"):
            load_settings([], environ=dict(ENVIRON, DELPRO_LAST_OID="latest"))

    def test_json_logs_from_environment(self):
        settings = load_settings([], environ=dict(ENVIRON, JSON_LOGGING="true"))

        assert settings.json_logs is True

    def test_repr_hides_password(self):
        settings = load_settings([], environ=dict(ENVIRON))

        assert "s3cret" not in repr(settings)


class TestLoadConfigFile:
    """Test YAML config files."""

    def test_unknown_keys_are_ignored(self, tmp_path):
        config = tmp_path / "delpro.yaml"
        config.write_text("db-host: barn\nfavourite-cow: Bella\n")

        assert load_config_file(str(config)) == {"db_host": "barn"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config_file(str(tmp_path / "missing.yaml"))

    def test_not_a_mapping(self, tmp_path):
        config = tmp_path / "delpro.yaml"
        config.write_text("- db-host\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config_file(str(config))
