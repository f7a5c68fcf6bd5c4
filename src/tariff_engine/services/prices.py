"""Market price fetching."""

import logging
from datetime import datetime
from typing import Optional, Union

import pandas as pd

from tariff_engine.core.constants import COL_FIELD, COL_TIMESTAMP, COL_VALUE
from tariff_engine.core.prices import PriceSeries
from tariff_engine.core.schemas import PricePoint, PriceSpec, SeriesQuery, TariffParameters, TimeRange
from tariff_engine.core.timerange import ensure_utc
from tariff_engine.store.interface import TimeSeriesSource

logger = logging.getLogger(__name__)


class MarketPriceFeed:
    """Reads market reference prices from the store."""

    def __init__(self, source: TimeSeriesSource, spec: PriceSpec, tariff: TariffParameters):
        self.source = source
        self.spec = spec
        self.tolerance = pd.Timedelta(minutes=tariff.price_match_tolerance_minutes)

    async def fetch(self, time_range: TimeRange, pad: bool = True) -> PriceSeries:
        """Fetch prices for a range.

        Args:
            time_range: Range the prices will be matched against
            pad: Widen the range by the match tolerance so samples near the
                edges can still find their nearest price

        Returns:
            PriceSeries with one price per timestamp
        """
        start = ensure_utc(time_range.start)
        stop = ensure_utc(time_range.stop)
        if pad:
            start, stop = start - self.tolerance, stop + self.tolerance

        frame = await self.source.query(
            SeriesQuery(
                measurement=self.spec.measurement,
                time_range=TimeRange(start=start.to_pydatetime(), stop=stop.to_pydatetime()),
                fields=self.spec.fields,
                bucket=self.spec.bucket,
            )
        )
        return PriceSeries(_one_price_per_timestamp(frame, self.spec.fields), tolerance=self.tolerance)

    async def current_price(self, now: Optional[Union[datetime, pd.Timestamp]] = None) -> Optional[PricePoint]:
        """Latest price published within the last hour."""
        reference = ensure_utc(now) if now is not None else pd.Timestamp.now(tz="UTC")
        time_range = TimeRange(
            start=(reference - pd.Timedelta(hours=1)).to_pydatetime(),
            stop=(reference + pd.Timedelta(seconds=1)).to_pydatetime(),
        )
        prices = await self.fetch(time_range, pad=False)
        latest = prices.latest()
        if latest is None:
            logger.info("No market price in the last hour, falling back to the default price")
        return latest

    async def forecast(
        self, now: Optional[Union[datetime, pd.Timestamp]] = None, hours: int = 24
    ) -> list[PricePoint]:
        """Prices from one hour ago up to ``hours`` ahead."""
        reference = ensure_utc(now) if now is not None else pd.Timestamp.now(tz="UTC")
        time_range = TimeRange(
            start=(reference - pd.Timedelta(hours=1)).to_pydatetime(),
            stop=(reference + pd.Timedelta(hours=hours)).to_pydatetime(),
        )
        prices = await self.fetch(time_range, pad=False)
        return prices.to_points()


def _one_price_per_timestamp(frame: pd.DataFrame, fields: list[str]) -> pd.Series:
    """Keep the highest-priority field when several report the same timestamp."""
    if frame.empty:
        return pd.Series([], index=pd.DatetimeIndex([], tz="UTC"), dtype=float)

    rank = {field: position for position, field in enumerate(fields)}
    ordered = frame.assign(_rank=frame[COL_FIELD].map(rank).fillna(len(rank)))
    ordered = ordered.sort_values([COL_TIMESTAMP, "_rank"], kind="stable")
    ordered = ordered.drop_duplicates(subset=[COL_TIMESTAMP], keep="first")

    index = pd.DatetimeIndex(pd.to_datetime(ordered[COL_TIMESTAMP], utc=True))
    return pd.Series(ordered[COL_VALUE].to_numpy(dtype=float), index=index)
