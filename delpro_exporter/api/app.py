"""
HTTP Surface of the DelPro Exporter

Endpoints:
    GET /                    - informational page
    GET /health              - liveness with the current OID cursor
    GET /metrics             - live metrics, no timestamps
    GET /historical-metrics  - timestamped replay of a time window or OID range
"""

import asyncio
import logging
import zlib
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST

from delpro_exporter import __version__
from delpro_exporter.database.client import QueryCancellation
from delpro_exporter.errors import InvalidQueryParameterError, QueryCancelledError, RecordSourceError
from delpro_exporter.exporter import DelProExporter, LiveUpdater
from delpro_exporter.history.query import parse_historical_query
from delpro_exporter.history.replay import highest_oid
from delpro_exporter.utils.correlation import CORRELATION_HEADER, CorrelationContext

logger = logging.getLogger(__name__)

HISTORICAL_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
HIGHEST_OID_HEADER = "X-Highest-OID"
DISCONNECT_POLL_INTERVAL = 0.5
# nginx convention for a request abandoned by its client
CLIENT_CLOSED_REQUEST = 499
# zlib window bits selecting a gzip container
GZIP_WBITS = 16 + zlib.MAX_WBITS

INDEX_HTML = """<html>
<head><title>DelPro Exporter</title></head>
<body>
<h1>DelPro Exporter</h1>
<p><a href="/metrics">Current Metrics</a></p>
<p><a href="/historical-metrics">Historical Metrics with Timestamps</a></p>
</body>
</html>
"""


async def run_cancellable(request: Request, cancellation: QueryCancellation, func, *args):
    """
    Run a blocking query in a worker thread, cancelling it if the client leaves.

    Raises:
        QueryCancelledError: If the client disconnected before completion
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))

    while True:
        done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
        if done:
            return task.result()

        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling historical query")
            cancellation.cancel()
            try:
                await task
            except RecordSourceError:
                pass
            raise QueryCancelledError("Client disconnected")


def encode_body(chunks: Iterator[str], correlation_id: str, compress: bool) -> Iterator[bytes]:
    """
    Encode replay chunks for the response, gzipping them incrementally.

    Kept synchronous: Starlette iterates sync bodies in its threadpool.
    """
    compressor = zlib.compressobj(wbits=GZIP_WBITS) if compress else None

    while True:
        with CorrelationContext(correlation_id):
            chunk = next(chunks, None)
        if chunk is None:
            break

        data = chunk.encode("utf-8")
        if compressor is not None:
            data = compressor.compress(data)
        if data:
            yield data

    if compressor is not None:
        yield compressor.flush()


def create_app(
    exporter: DelProExporter,
    db_timezone: ZoneInfo,
    historical_lookback: timedelta,
    updater: Optional[LiveUpdater] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        exporter: Exporter serving live and historical metrics
        db_timezone: Timezone for date-only query parameters
        historical_lookback: Default historical window length
        updater: Live updater started and stopped with the application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if updater is not None:
            updater.start()
        yield
        if updater is not None:
            await updater.stop()

    app = FastAPI(title="DelPro Exporter", version=__version__, lifespan=lifespan)

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def index() -> HTMLResponse:
        return HTMLResponse(INDEX_HTML)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "last_oid": exporter.last_oid}

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        """Live metrics for Prometheus scraping."""
        return Response(content=exporter.write_prometheus(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/historical-metrics", include_in_schema=False)
    async def historical_metrics(request: Request) -> Response:
        """Timestamped metrics for backfilling a time-series store."""
        with CorrelationContext(request.headers.get(CORRELATION_HEADER)) as correlation_id:
            try:
                query = parse_historical_query(request.query_params, db_timezone, historical_lookback)
            except InvalidQueryParameterError as e:
                logger.info(f"Rejected historical request: {e}", extra={"status_code": 400})
                exporter.exporter_metrics.record_historical_request("bad_request")
                return PlainTextResponse(str(e), status_code=400)

            cancellation = QueryCancellation()
            try:
                records = await run_cancellable(
                    request, cancellation, exporter.fetch_historical_records, query, cancellation
                )
            except QueryCancelledError:
                exporter.exporter_metrics.record_historical_request("cancelled")
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            except RecordSourceError as e:
                logger.error(f"Unable to collect historical milking metrics: {e}", extra={"status_code": 500})
                exporter.exporter_metrics.record_historical_request("failure")
                return PlainTextResponse("Internal server error", status_code=500)

            headers = {CORRELATION_HEADER: correlation_id}
            newest = highest_oid(records)
            if newest > 0:
                headers[HIGHEST_OID_HEADER] = str(newest)

            compress = "gzip" in request.headers.get("accept-encoding", "")
            if compress:
                headers["Content-Encoding"] = "gzip"

            exporter.exporter_metrics.record_historical_request("success")
            body = encode_body(exporter.stream_historical_metrics(records), correlation_id, compress)
            return StreamingResponse(body, media_type=HISTORICAL_CONTENT_TYPE, headers=headers)

    return app
