"""Meter aggregation: downsampling, unit scaling and the net-consumption join.

Each meter is downsampled independently with a mean reducer. Net consumption
is an equality join on timestamp: an interval survives only when both the grid
import and the production series have a sample at exactly that timestamp.
Sources with drifting cadences therefore shrink to their common timestamps.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Union

import pandas as pd

from tariff_engine.core.constants import (
    COL_TIMESTAMP,
    COL_VALUE,
    COST_WINDOW,
    CURRENT_VALUES_LOOKBACK,
    TAG_DEVICE,
    TAG_SOURCE,
)
from tariff_engine.core.schemas import (
    CurrentPower,
    DeviceSourcesSpec,
    MeterSeries,
    MeterSpec,
    MeteringSchema,
    SeriesPoint,
    SeriesQuery,
    TimeRange,
)
from tariff_engine.core.timerange import ensure_utc, pandas_freq, resolve_time_range
from tariff_engine.store.interface import TimeSeriesSource

logger = logging.getLogger(__name__)


def empty_series(name: Optional[str] = None) -> pd.Series:
    return pd.Series([], index=pd.DatetimeIndex([], tz="UTC"), dtype=float, name=name)


def combine_tag_sets(frame: pd.DataFrame, scale: float = 1.0, name: Optional[str] = None) -> pd.Series:
    """Sum all tag-sets of one meter per timestamp and scale to watts.

    Args:
        frame: Store result with timestamp and value columns
        scale: Multiplier to watts (1000 for kW meters)
        name: Name of the returned series

    Returns:
        Series indexed by unique, ordered UTC timestamps
    """
    if frame.empty:
        return empty_series(name)

    values = frame.groupby(COL_TIMESTAMP, sort=True)[COL_VALUE].sum(min_count=1).dropna()
    index = pd.DatetimeIndex(pd.to_datetime(values.index, utc=True))
    return pd.Series(values.to_numpy(dtype=float) * scale, index=index, name=name)


def join_net_consumption(grid_import_w: pd.Series, production_w: pd.Series) -> pd.Series:
    """Net consumption = grid import - production at identical timestamps.

    Grid import timestamps without a production sample are dropped, so the
    result never contains a timestamp absent from the grid import series.
    """
    matched = grid_import_w[grid_import_w.index.isin(production_w.index)]
    net = matched - production_w.reindex(matched.index)
    net.name = "net_consumption"
    return net.astype(float)


def _split_tag_sets(frame: pd.DataFrame, scale: float, fallback_name: str) -> list[MeterSeries]:
    """One MeterSeries per distinct tag-set of a store result."""
    if frame.empty:
        return []

    tag_cols = [col for col in frame.columns if col not in (COL_TIMESTAMP, COL_VALUE)]
    series = []
    for key, group in frame.groupby(tag_cols, dropna=False, sort=True):
        key = key if isinstance(key, tuple) else (key,)
        tags = {col: str(value) for col, value in zip(tag_cols, key) if pd.notna(value)}
        name = "/".join(tags[k] for k in (TAG_SOURCE, TAG_DEVICE) if k in tags) or fallback_name
        points = [
            SeriesPoint(timestamp=ts.to_pydatetime(), value=float(value) * scale)
            for ts, value in zip(pd.to_datetime(group[COL_TIMESTAMP], utc=True), group[COL_VALUE])
        ]
        series.append(MeterSeries(name=name, tags=tags, points=points))
    return series


class MeterAggregator:
    """Combines meter sources into net-consumption and production series."""

    def __init__(self, source: TimeSeriesSource, schema: MeteringSchema):
        self.source = source
        self.schema = schema

    async def meter_series(
        self,
        meter: MeterSpec,
        time_range: TimeRange,
        window: str = COST_WINDOW,
        aggregator: str = "mean",
    ) -> pd.Series:
        """Downsampled power of one meter in W, all tag-sets summed."""
        pandas_freq(window)
        frame = await self.source.query(meter.query(time_range, window, aggregator))
        series = combine_tag_sets(frame, meter.scale_to_watts, meter.name)
        logger.debug("Meter %s: %d samples in %s", meter.name, len(series), window)
        return series

    async def grid_import(self, time_range: TimeRange, window: str = COST_WINDOW) -> pd.Series:
        return await self.meter_series(self.schema.grid_import, time_range, window)

    async def production(self, time_range: TimeRange, window: str = COST_WINDOW) -> pd.Series:
        return await self.meter_series(self.schema.production, time_range, window)

    async def consumption_and_production(
        self, time_range: TimeRange, window: str = COST_WINDOW
    ) -> tuple[pd.Series, pd.Series]:
        """Net consumption and production series, fetched concurrently."""
        grid_import_w, production_w = await asyncio.gather(
            self.grid_import(time_range, window),
            self.production(time_range, window),
        )
        if not self.schema.derive_net:
            return grid_import_w.rename("net_consumption"), production_w

        net = join_net_consumption(grid_import_w, production_w)
        if len(net) < len(grid_import_w):
            logger.debug(
                "Net join dropped %d of %d grid intervals without production sample",
                len(grid_import_w) - len(net),
                len(grid_import_w),
            )
        return net, production_w

    async def net_consumption(self, time_range: TimeRange, window: str = COST_WINDOW) -> pd.Series:
        net, _ = await self.consumption_and_production(time_range, window)
        return net

    async def power_overview(self, time_range: TimeRange, window: str = "1m") -> list[MeterSeries]:
        """Every power source as its own series, grid meter first."""
        pandas_freq(window)
        grid = self.schema.grid_import
        queries = [self.source.query(grid.query(time_range, window, "mean"))]

        devices = self.schema.devices
        if devices is not None:
            queries.append(
                self.source.query(
                    _device_query(devices, time_range, window, "mean"),
                )
            )

        frames = await asyncio.gather(*queries)
        overview = _split_tag_sets(frames[0], grid.scale_to_watts, grid.name)
        if len(frames) > 1:
            overview.extend(_split_tag_sets(frames[1], 1.0, "device"))
        return overview

    async def current_power(self, now: Optional[Union[datetime, pd.Timestamp]] = None) -> CurrentPower:
        """Latest reading of every meter within the last five minutes."""
        reference = ensure_utc(now) if now is not None else pd.Timestamp.now(tz="UTC")
        time_range = resolve_time_range(CURRENT_VALUES_LOOKBACK, "now()", reference)

        grid = self.schema.grid_import
        production = self.schema.production
        queries = [
            self.source.query(grid.query(time_range, None, "last")),
            self.source.query(production.query(time_range, None, "last")),
        ]
        if self.schema.devices is not None:
            queries.append(self.source.query(_device_query(self.schema.devices, time_range, None, "last")))

        frames = await asyncio.gather(*queries)
        grid_w = float(frames[0][COL_VALUE].sum()) * grid.scale_to_watts if not frames[0].empty else 0.0
        production_w = float(frames[1][COL_VALUE].sum()) * production.scale_to_watts if not frames[1].empty else 0.0

        devices: dict[str, dict[str, float]] = {}
        if len(frames) > 2 and not frames[2].empty:
            for _, row in frames[2].iterrows():
                source = str(row.get(TAG_SOURCE, "unknown"))
                device = row.get(TAG_DEVICE)
                device = str(device) if pd.notna(device) else "default"
                devices.setdefault(source, {})[device] = float(row[COL_VALUE])

        net_w = grid_w - production_w if self.schema.derive_net else grid_w
        return CurrentPower(
            timestamp=reference.to_pydatetime(),
            grid_import_w=grid_w,
            production_w=production_w,
            net_consumption_w=net_w,
            devices=devices,
        )

    async def devices(self, source: str, time_range: TimeRange) -> list[str]:
        """Device names reporting under a source tag."""
        spec = self.schema.devices
        measurement = spec.measurement if spec is not None else self.schema.grid_import.measurement
        bucket = spec.bucket if spec is not None else self.schema.grid_import.bucket
        values = await self.source.tag_values(
            measurement, TAG_DEVICE, time_range, {TAG_SOURCE: [source]}, bucket
        )
        return sorted(values)


def _device_query(
    devices: DeviceSourcesSpec, time_range: TimeRange, window: Optional[str], aggregator: str
) -> SeriesQuery:
    return SeriesQuery(
        measurement=devices.measurement,
        time_range=time_range,
        tag_filters={TAG_SOURCE: devices.sources, **{k: [v] for k, v in devices.tags.items()}},
        fields=devices.fields,
        window=window,
        aggregator=aggregator,
        bucket=devices.bucket,
    )
