"""Time-series store interface."""

from typing import Optional, Protocol

import pandas as pd

from tariff_engine.core.schemas import SeriesQuery, TimeRange


class TimeSeriesSource(Protocol):
    """Protocol for time-series stores.

    Stores hold timestamped power, energy and price samples and answer typed
    range/filter/window queries. Any failure to answer surfaces as
    UpstreamQueryError; stores never retry.
    """

    async def query(self, query: SeriesQuery) -> pd.DataFrame:
        """Run a query.

        Args:
            query: Validated query

        Returns:
            DataFrame ordered by timestamp with columns:
            - timestamp (tz-aware UTC)
            - value
            - field
            - one column per tag key present in the matched samples
            One row per (timestamp, tag-set).
        """
        ...

    async def tag_values(
        self,
        measurement: str,
        tag_key: str,
        time_range: TimeRange,
        tag_filters: Optional[dict[str, list[str]]] = None,
        bucket: Optional[str] = None,
    ) -> set[str]:
        """Distinct values of a tag within a measurement and time range."""
        ...
