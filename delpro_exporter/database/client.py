"""
DelPro Database Client

Reads milking sessions and device utilization from the DelPro SQL Server
database through pyodbc. DelPro stores local wall-clock times, so query
bounds are converted to, and row timestamps interpreted in, the configured
database timezone.
"""

import logging
import socket
import threading
import time
from contextlib import closing
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from delpro_exporter.errors import DatabaseConnectionError, QueryCancelledError, RecordSourceError
from delpro_exporter.models import MilkingRecord, sanitize_label_value, translate_breed

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
LIVE_QUERY_TIMEOUT = 30
HISTORICAL_QUERY_TIMEOUT = 60

MILKING_RECORDS_QUERY = """
    SELECT
        smy.OID,
        CAST(ba.Number AS VARCHAR(10)) AS animal_number,
        COALESCE(ba.Name, 'Unknown') AS animal_name,
        COALESCE(ba.OfficialRegNo, 'Unknown') AS animal_reg_no,
        COALESCE(tli.ItemValue, CAST(ba.Breed AS VARCHAR(10))) AS breed_name,
        CAST(smy.MilkingDevice AS VARCHAR(10)) AS device_id,
        COALESCE(md.Name, 'Unknown') AS destination_name,
        als.LactationNumber AS lactation_number,
        DATEDIFF(day, als.StartDate, smy.EndTime) AS days_in_lactation,
        smy.TotalYield,
        smy.AvgConductivity,
        DATEDIFF(SECOND, smy.BeginTime, smy.EndTime) AS duration_seconds,
        vmy.Occ AS somatic_cell_count,
        vmy.Incomplete AS incomplete,
        vmy.Kickoff AS kickoff,
        smy.BeginTime,
        smy.EndTime
    FROM SessionMilkYield smy
    INNER JOIN BasicAnimal ba ON smy.BasicAnimal = ba.OID
    LEFT JOIN TextLookupItem tli ON ba.Breed = tli.ItemID AND tli.Collection = 6
    LEFT JOIN VoluntarySessionMilkYield vmy ON smy.OID = vmy.OID
    LEFT JOIN MilkDestination md ON smy.Destination = md.OID
    LEFT JOIN AnimalLactationSummary als ON ba.OID = als.Animal AND als.EndDate IS NULL
    WHERE smy.EndTime >= ? AND smy.EndTime < ?
    AND smy.OID > ?
    AND smy.TotalYield IS NOT NULL
    AND ba.Number IS NOT NULL"""

DEVICE_UTILIZATION_QUERY = """
    SELECT
        CAST(MilkingDevice AS VARCHAR(10)) AS device_id,
        COUNT(*) AS session_count
    FROM SessionMilkYield
    WHERE BeginTime >= DATEADD(day, -1, GETDATE())
    AND TotalYield IS NOT NULL
    GROUP BY MilkingDevice"""


class QueryCancellation:
    """
    Cancellation token for a running query.

    The query thread binds its cursor; any other thread may call cancel(),
    which aborts the statement on the server.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cursor = None
        self.cancelled = False

    def bind(self, cursor) -> None:
        with self._lock:
            self._cursor = cursor
            if self.cancelled:
                cursor.cancel()

    def release(self) -> None:
        with self._lock:
            self._cursor = None

    def cancel(self) -> None:
        with self._lock:
            self.cancelled = True
            if self._cursor is not None:
                try:
                    self._cursor.cancel()
                except Exception as e:
                    logger.warning(f"Failed to cancel running query: {e}")


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


class DelProClient:
    """Record source backed by the DelPro SQL Server database."""

    def __init__(
        self,
        host: str,
        port: str,
        database: str,
        user: str,
        password: str,
        db_timezone: ZoneInfo,
        driver: str = DEFAULT_DRIVER,
        connect_retries: int = 3,
        connection_factory: Optional[Callable[[], Any]] = None
    ):
        """
        Initialize the client. No connection is opened until connect().

        Args:
            host: SQL Server host
            port: SQL Server port
            database: Database name
            user: Database user
            password: Database password (never logged)
            db_timezone: Timezone of the DelPro wall-clock timestamps
            driver: ODBC driver name
            connect_retries: Ping attempts before giving up at startup
            connection_factory: Returns a new DB-API connection (tests)
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self._password = password
        self.db_timezone = db_timezone
        self.driver = driver
        self.connect_retries = connect_retries
        self._connection_factory = connection_factory or self._odbc_connect

    def _connection_string(self) -> str:
        return (
            f"DRIVER={{{self.driver}}};SERVER={self.host},{self.port};"
            f"DATABASE={self.database};UID={self.user};PWD={self._password};"
            f"Encrypt=no;TrustServerCertificate=yes"
        )

    def _odbc_connect(self):
        import pyodbc

        return pyodbc.connect(self._connection_string(), timeout=10)

    def connect(self) -> None:
        """
        Verify the database is reachable, retrying with backoff.

        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        logger.info(f"Attempting to connect to database at {self.host}:{self.port}")

        if not self.test_network_connectivity():
            raise DatabaseConnectionError(f"Network connectivity test to {self.host}:{self.port} failed")

        for attempt in range(1, self.connect_retries + 1):
            logger.info(f"Database ping attempt {attempt}/{self.connect_retries}")
            try:
                with closing(self._connection_factory()) as conn:
                    with closing(conn.cursor()) as cursor:
                        cursor.execute("SELECT 1")
                        cursor.fetchone()
                logger.info("Database connection successful")
                return
            except Exception as e:
                logger.warning(f"Database ping failed (attempt {attempt}/{self.connect_retries}): {e}")

            if attempt < self.connect_retries:
                time.sleep(attempt * 2)

        raise DatabaseConnectionError("Failed to connect to database after all retries")

    def test_network_connectivity(self, timeout: float = 10) -> bool:
        """Check basic TCP connectivity to the database server."""
        logger.info(f"Testing network connectivity to {self.host}:{self.port}")
        try:
            with socket.create_connection((self.host, int(self.port)), timeout=timeout):
                pass
        except (OSError, ValueError) as e:
            logger.error(f"Network connectivity test failed: {e}")
            return False

        logger.info("Network connectivity test successful")
        return True

    def _execute(
        self,
        query: str,
        params: Sequence[Any],
        timeout: int,
        cancellation: Optional[QueryCancellation] = None
    ) -> List[Sequence[Any]]:
        if cancellation is not None and cancellation.cancelled:
            raise QueryCancelledError("Query cancelled before execution")

        try:
            with closing(self._connection_factory()) as conn:
                conn.timeout = timeout
                with closing(conn.cursor()) as cursor:
                    if cancellation is not None:
                        cancellation.bind(cursor)
                    try:
                        cursor.execute(query, *params)
                        return cursor.fetchall()
                    finally:
                        if cancellation is not None:
                            cancellation.release()
        except Exception as e:
            if cancellation is not None and cancellation.cancelled:
                raise QueryCancelledError("Query cancelled by caller") from e
            raise RecordSourceError(f"Query failed: {e}") from e

    def get_milking_records(
        self,
        start: datetime,
        end: datetime,
        start_oid: int = 0,
        end_oid: int = 0,
        timeout: int = LIVE_QUERY_TIMEOUT,
        cancellation: Optional[QueryCancellation] = None
    ) -> List[MilkingRecord]:
        """
        Retrieve milking sessions ended in [start, end) with OID in (start_oid, end_oid].

        Args:
            start: Window start (timezone-aware)
            end: Window end, exclusive (timezone-aware)
            start_oid: Exclusive lower OID bound
            end_oid: Inclusive upper OID bound, 0 for none
            timeout: Query timeout in seconds
            cancellation: Optional token to abort the running query

        Returns:
            Records ordered by OID. Rows that fail to decode are skipped.

        Raises:
            RecordSourceError: If the query fails or times out
        """
        query = MILKING_RECORDS_QUERY
        params: List[Any] = [self._to_db_time(start), self._to_db_time(end), start_oid]

        if end_oid > 0:
            query += "\n    AND smy.OID <= ?"
            params.append(end_oid)

        query += "\n    ORDER BY smy.OID"

        rows = self._execute(query, params, timeout, cancellation)

        records = []
        for row in rows:
            try:
                records.append(self._row_to_record(row))
            except (TypeError, ValueError, AttributeError, IndexError) as e:
                logger.warning(f"Error scanning row: {e}")
                continue

        logger.debug(f"Fetched {len(records)} milking records (start_oid={start_oid}, end_oid={end_oid})")
        return records

    def get_device_utilization(self, timeout: int = LIVE_QUERY_TIMEOUT) -> Dict[str, int]:
        """
        Count sessions started during the last day per milking device.

        Raises:
            RecordSourceError: If the query fails or times out
        """
        rows = self._execute(DEVICE_UTILIZATION_QUERY, [], timeout)

        utilization = {}
        for row in rows:
            try:
                utilization[str(row[0])] = int(row[1])
            except (TypeError, ValueError, IndexError) as e:
                logger.warning(f"Error scanning device utilization row: {e}")
                continue

        return utilization

    def _to_db_time(self, value: datetime) -> datetime:
        return value.astimezone(self.db_timezone).replace(tzinfo=None)

    def _from_db_time(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.db_timezone)
        return value

    def _row_to_record(self, row: Sequence[Any]) -> MilkingRecord:
        breed = sanitize_label_value(row[4])

        return MilkingRecord(
            oid=int(row[0]),
            animal_number=sanitize_label_value(row[1]),
            animal_name=sanitize_label_value(row[2]),
            animal_reg_no=sanitize_label_value(row[3]),
            breed_name=translate_breed(breed),
            device_id=sanitize_label_value(row[5]),
            destination_name=sanitize_label_value(row[6]),
            lactation_number=_optional_int(row[7]),
            days_in_lactation=_optional_int(row[8]),
            yield_liters=float(row[9]),
            conductivity=_optional_int(row[10]),
            duration=_optional_int(row[11]),
            somatic_cell_count=_optional_int(row[12]),
            incomplete=_optional_int(row[13]),
            kickoff=_optional_int(row[14]),
            begin_time=self._from_db_time(row[15]),
            end_time=self._from_db_time(row[16]),
        )
