"""InfluxDB 2.x time-series store.

Queries are rendered to Flux from a validated SeriesQuery. Every string
literal is quoted and escaped; windows and aggregators are restricted by the
query schema, so no caller-supplied text reaches Flux unquoted.
"""

import logging
from datetime import datetime
from typing import Optional

import pandas as pd
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from tariff_engine.core.constants import COL_FIELD, COL_TIMESTAMP, COL_VALUE
from tariff_engine.core.errors import UpstreamQueryError
from tariff_engine.core.schemas import SeriesQuery, TimeRange
from tariff_engine.core.timerange import ensure_utc
from tariff_engine.settings import InfluxSettings

logger = logging.getLogger(__name__)

# Record columns that are not tags
_SYSTEM_COLUMNS = {"result", "table"}


def flux_string(value: str) -> str:
    """Quote a Flux string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{escaped}"'


def flux_time(value: datetime) -> str:
    """Render an absolute Flux time literal (RFC 3339, UTC)."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _any_of(key: str, values: list[str]) -> str:
    clauses = " or ".join(f"r[{flux_string(key)}] == {flux_string(v)}" for v in values)
    return f"|> filter(fn: (r) => {clauses})"


def render_query(query: SeriesQuery, bucket: str) -> str:
    """Render a SeriesQuery to Flux.

    Args:
        query: Validated query
        bucket: Bucket to read when the query names none

    Returns:
        Flux source
    """
    lines = [
        f"from(bucket: {flux_string(query.bucket or bucket)})",
        f"|> range(start: {flux_time(query.time_range.start)}, stop: {flux_time(query.time_range.stop)})",
        f"|> filter(fn: (r) => r._measurement == {flux_string(query.measurement)})",
    ]

    if query.fields:
        lines.append(_any_of("_field", query.fields))

    for key, values in query.tag_filters.items():
        lines.append(_any_of(key, values))

    if query.window is not None:
        lines.append(
            f'|> aggregateWindow(every: {query.window}, fn: {query.aggregator}, createEmpty: false, timeSrc: "_start")'
        )
    elif query.aggregator == "last":
        lines.append("|> last()")

    return "\n  ".join(lines)


def render_tag_values(
    measurement: str,
    tag_key: str,
    time_range: TimeRange,
    bucket: str,
    tag_filters: Optional[dict[str, list[str]]] = None,
) -> str:
    predicate = [f"r._measurement == {flux_string(measurement)}"]
    for key, values in (tag_filters or {}).items():
        clauses = " or ".join(f"r[{flux_string(key)}] == {flux_string(v)}" for v in values)
        predicate.append(f"({clauses})")

    return (
        'import "influxdata/influxdb/schema"\n\n'
        "schema.tagValues(\n"
        f"  bucket: {flux_string(bucket)},\n"
        f"  tag: {flux_string(tag_key)},\n"
        f"  predicate: (r) => {' and '.join(predicate)},\n"
        f"  start: {flux_time(time_range.start)},\n"
        f"  stop: {flux_time(time_range.stop)},\n"
        ")"
    )


class InfluxSource:
    """TimeSeriesSource backed by an InfluxDB 2.x server.

    A client is opened per request so the source holds no connection state.
    """

    def __init__(self, settings: InfluxSettings):
        self.settings = settings

    def _client(self) -> InfluxDBClientAsync:
        return InfluxDBClientAsync(
            url=self.settings.url,
            token=self.settings.token,
            org=self.settings.org,
            timeout=self.settings.timeout_ms,
        )

    async def _tables(self, flux: str):
        logger.debug("Flux query:\n%s", flux)
        try:
            async with self._client() as client:
                return await client.query_api().query(flux)
        except Exception as e:
            logger.error("InfluxDB query failed: %s", e)
            raise UpstreamQueryError(f"Time-series query failed: {e}") from e

    async def query(self, query: SeriesQuery) -> pd.DataFrame:
        tables = await self._tables(render_query(query, self.settings.bucket))

        rows = []
        for table in tables:
            for record in table.records:
                row = {
                    COL_TIMESTAMP: record.get_time(),
                    COL_FIELD: record.get_field(),
                    COL_VALUE: record.get_value(),
                }
                for key, value in record.values.items():
                    if not key.startswith("_") and key not in _SYSTEM_COLUMNS:
                        row[key] = value
                rows.append(row)

        if not rows:
            return pd.DataFrame(columns=[COL_TIMESTAMP, COL_FIELD, COL_VALUE])

        df = pd.DataFrame(rows)
        df[COL_TIMESTAMP] = pd.to_datetime(df[COL_TIMESTAMP], utc=True)
        df[COL_VALUE] = pd.to_numeric(df[COL_VALUE], errors="coerce")
        return df.sort_values(COL_TIMESTAMP, kind="stable").reset_index(drop=True)

    async def tag_values(
        self,
        measurement: str,
        tag_key: str,
        time_range: TimeRange,
        tag_filters: Optional[dict[str, list[str]]] = None,
        bucket: Optional[str] = None,
    ) -> set[str]:
        flux = render_tag_values(measurement, tag_key, time_range, bucket or self.settings.bucket, tag_filters)
        tables = await self._tables(flux)
        return {str(record.get_value()) for table in tables for record in table.records if record.get_value()}
