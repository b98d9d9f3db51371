"""
Exporter Configuration

Settings come from, in increasing priority: built-in defaults, an optional
YAML config file (--config), DELPRO_* environment variables (a .env file is
loaded first), and command-line flags. The database password is only read
from the SQL_PASSWORD environment variable.
"""

import argparse
import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv

from delpro_exporter.database.client import DEFAULT_DRIVER
from delpro_exporter.errors import ConfigurationError
from delpro_exporter.models import DEFAULT_HISTORICAL_LOOKBACK_DAYS

logger = logging.getLogger(__name__)

ENV_PREFIX = "DELPRO_"
PASSWORD_ENV = "SQL_PASSWORD"

DEFAULTS: Dict[str, Any] = {
    "listen_address": ":9090",
    "db_host": "localhost",
    "db_port": "1433",
    "db_name": "DDM",
    "db_user": "sa",
    "db_driver": DEFAULT_DRIVER,
    "db_timezone": "Europe/Zurich",
    "last_oid": 0,
    "oid_file": None,
    "update_interval": 30.0,
    "historical_lookback_days": DEFAULT_HISTORICAL_LOOKBACK_DAYS,
}

# Options whose environment/config values need a type conversion
INT_OPTIONS = {"last_oid", "historical_lookback_days"}
FLOAT_OPTIONS = {"update_interval"}


@dataclass
class Settings:
    """Resolved exporter settings."""

    listen_address: str
    db_host: str
    db_port: str
    db_name: str
    db_user: str
    db_password: str
    db_driver: str
    db_timezone: ZoneInfo
    last_oid: int
    oid_file: Optional[str]
    update_interval: float
    historical_lookback_days: int
    json_logs: bool = False
    verbose: bool = False

    @property
    def historical_lookback(self) -> timedelta:
        return timedelta(days=self.historical_lookback_days)

    @property
    def listen_host(self) -> str:
        host, _, _ = self.listen_address.rpartition(":")
        return host or "0.0.0.0"

    @property
    def listen_port(self) -> int:
        _, _, port = self.listen_address.rpartition(":")
        return int(port)

    def __repr__(self) -> str:
        # Keep the password out of logs and tracebacks
        return (
            f"Settings(listen_address={self.listen_address!r}, db_host={self.db_host!r}, "
            f"db_port={self.db_port!r}, db_name={self.db_name!r}, db_user={self.db_user!r}, "
            f"db_timezone={self.db_timezone.key!r}, last_oid={self.last_oid}, "
            f"oid_file={self.oid_file!r}, update_interval={self.update_interval}, "
            f"historical_lookback_days={self.historical_lookback_days})"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delpro-exporter",
        description="Prometheus exporter for DelPro milking sessions",
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--listen-address", help="Address to listen on for web interface and telemetry")
    parser.add_argument("--db-host", help="Database host")
    parser.add_argument("--db-port", help="Database port")
    parser.add_argument("--db-name", help="Database name")
    parser.add_argument("--db-user", help="Database user")
    parser.add_argument("--db-driver", help="ODBC driver name")
    parser.add_argument("--db-timezone", help="Database timezone for date-only query parameters")
    parser.add_argument("--last-oid", type=int, help="Override last processed OID (if larger than current value)")
    parser.add_argument("--oid-file", help="Last processed OID file (default: working directory)")
    parser.add_argument("--update-interval", type=float, help="Seconds between live metric updates")
    parser.add_argument("--historical-lookback-days", type=int, help="Default historical window in days")
    parser.add_argument("--json-logs", action="store_true", default=None, help="Log as JSON lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Load option values from a YAML mapping.

    Keys may use dashes (as on the command line) or underscores.

    Raises:
        ConfigurationError: If the file cannot be read or is not a mapping
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    values = {}
    for key, value in data.items():
        option = str(key).replace("-", "_")
        if option not in DEFAULTS:
            logger.warning(f"Ignoring unknown config file option: {key}")
            continue
        values[option] = value
    return values


def _env_values(environ: Dict[str, str]) -> Dict[str, Any]:
    values = {}
    for option in DEFAULTS:
        env_name = ENV_PREFIX + option.upper()
        if env_name in environ:
            values[option] = environ[env_name]
    return values


def _convert(option: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        if option in INT_OPTIONS:
            return int(value)
        if option in FLOAT_OPTIONS:
            return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {option}: {value!r}")
    return str(value)


def load_settings(argv: Optional[List[str]] = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Resolve settings from defaults, config file, environment and flags.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])
        environ: Environment mapping (defaults to os.environ after .env load)

    Raises:
        ConfigurationError: On a missing password, invalid timezone or bad value
    """
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)

    args = build_parser().parse_args(argv)

    values: Dict[str, Any] = dict(DEFAULTS)
    if args.config:
        values.update(load_config_file(args.config))
    values.update(_env_values(environ))
    for option in DEFAULTS:
        flag_value = getattr(args, option)
        if flag_value is not None:
            values[option] = flag_value

    values = {option: _convert(option, value) for option, value in values.items()}

    password = environ.get(PASSWORD_ENV, "")
    if not password:
        raise ConfigurationError(f"{PASSWORD_ENV} environment variable is required")

    try:
        db_timezone = ZoneInfo(values["db_timezone"])
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Invalid database timezone {values['db_timezone']!r}: {e}")

    json_logs = args.json_logs
    if json_logs is None:
        json_logs = environ.get("JSON_LOGGING", "false").lower() == "true"

    settings = Settings(
        listen_address=values["listen_address"],
        db_host=values["db_host"],
        db_port=values["db_port"],
        db_name=values["db_name"],
        db_user=values["db_user"],
        db_password=password,
        db_driver=values["db_driver"],
        db_timezone=db_timezone,
        last_oid=values["last_oid"],
        oid_file=values["oid_file"],
        update_interval=values["update_interval"],
        historical_lookback_days=values["historical_lookback_days"],
        json_logs=json_logs,
        verbose=args.verbose,
    )

    try:
        port_ok = 0 < settings.listen_port < 65536
    except ValueError:
        port_ok = False
    if not port_ok:
        raise ConfigurationError(f"Invalid listen address: {settings.listen_address!r}")

    return settings
