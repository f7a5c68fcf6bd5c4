"""Nearest-timestamp market price matching.

Price feeds are typically hourly while meters are read every 15 minutes or
faster, so an exact timestamp match would fail for most samples. A sample is
matched to the price with the smallest absolute time difference, provided the
difference is within the tolerance.
"""

from datetime import datetime
from typing import Optional, Union

import numpy as np
import pandas as pd

from tariff_engine.core.schemas import PricePoint
from tariff_engine.core.timerange import ensure_utc

DEFAULT_TOLERANCE = pd.Timedelta(hours=1)


class PriceSeries:
    """Ordered market price samples with bounded nearest-neighbour lookup."""

    def __init__(
        self,
        prices: pd.Series,
        tolerance: pd.Timedelta = DEFAULT_TOLERANCE,
    ):
        """Initialize from a price series.

        Args:
            prices: EUR/MWh values indexed by tz-aware timestamps
            tolerance: Maximum distance between a sample and its matched price
        """
        prices = prices.dropna()
        index = pd.DatetimeIndex(prices.index)
        index = index.tz_localize("UTC") if index.tz is None else index.tz_convert("UTC")
        index = index.as_unit("ns")
        order = np.argsort(index.asi8, kind="stable")

        self._times = index.asi8[order]
        self._values = prices.to_numpy(dtype=float)[order]
        self.tolerance = pd.Timedelta(tolerance)

    def __len__(self) -> int:
        return len(self._times)

    def to_points(self) -> list[PricePoint]:
        index = pd.DatetimeIndex(self._times).tz_localize("UTC")
        return [
            PricePoint(timestamp=ts.to_pydatetime(), price_eur_per_mwh=float(value))
            for ts, value in zip(index, self._values)
        ]

    def latest(self) -> Optional[PricePoint]:
        if len(self) == 0:
            return None
        ts = pd.Timestamp(self._times[-1], tz="UTC")
        return PricePoint(timestamp=ts.to_pydatetime(), price_eur_per_mwh=float(self._values[-1]))

    def _nearest(self, targets: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Positions of the nearest samples and their distances in ns.

        Ties resolve to the earlier sample.
        """
        right = np.searchsorted(self._times, targets, side="left")
        right = np.clip(right, 0, len(self._times) - 1)
        left = np.clip(right - 1, 0, len(self._times) - 1)

        left_diff = np.abs(targets - self._times[left])
        right_diff = np.abs(self._times[right] - targets)

        positions = np.where(left_diff <= right_diff, left, right)
        distances = np.minimum(left_diff, right_diff)
        return positions, distances

    def price_at(self, timestamp: Union[str, datetime, pd.Timestamp]) -> Optional[float]:
        """Price nearest to ``timestamp``, or None when none is within tolerance."""
        if len(self) == 0:
            return None

        target = np.array([ensure_utc(timestamp).value], dtype=np.int64)
        positions, distances = self._nearest(target)
        if distances[0] > self.tolerance.value:
            return None
        return float(self._values[positions[0]])

    def prices_at(self, index: pd.DatetimeIndex, default: float) -> pd.Series:
        """Matched price for every timestamp, ``default`` where unmatched."""
        index = pd.DatetimeIndex(index)
        if len(index) == 0:
            return pd.Series([], index=index, dtype=float)
        if len(self) == 0:
            return pd.Series(default, index=index, dtype=float)

        utc = index.tz_localize("UTC") if index.tz is None else index.tz_convert("UTC")
        targets = utc.as_unit("ns").asi8
        positions, distances = self._nearest(targets)
        matched = np.where(distances <= self.tolerance.value, self._values[positions], default)
        return pd.Series(matched, index=index, dtype=float)
