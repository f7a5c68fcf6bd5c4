"""In-memory time-series store backed by a pandas sample frame."""

from typing import Optional

import pandas as pd

from tariff_engine.core.constants import COL_FIELD, COL_MEASUREMENT, COL_TIMESTAMP, COL_VALUE
from tariff_engine.core.schemas import SeriesQuery, TimeRange
from tariff_engine.core.timerange import ensure_utc, pandas_freq
from tariff_engine.core.validate import validate_samples

_RESERVED_COLUMNS = (COL_TIMESTAMP, COL_MEASUREMENT, COL_FIELD, COL_VALUE)


class DataFrameSource:
    """Answers store queries from a long-format sample frame.

    Every column other than timestamp, measurement, field and value is a tag.
    Windows are aligned to the Unix epoch, as in Flux, and labelled by their
    start. Empty windows are omitted.
    """

    def __init__(self, samples: pd.DataFrame):
        """Initialize with a sample frame.

        Args:
            samples: One row per sample with timestamp, measurement, field,
                value and tag columns
        """
        validate_samples(samples)
        self.samples = samples.sort_values(COL_TIMESTAMP, kind="stable").reset_index(drop=True)

    @property
    def tag_columns(self) -> list[str]:
        return [col for col in self.samples.columns if col not in _RESERVED_COLUMNS]

    def _select(
        self,
        measurement: str,
        time_range: TimeRange,
        tag_filters: dict[str, list[str]],
        fields: Optional[list[str]] = None,
    ) -> pd.DataFrame:
        df = self.samples
        start = ensure_utc(time_range.start)
        stop = ensure_utc(time_range.stop)

        mask = (df[COL_MEASUREMENT] == measurement) & (df[COL_TIMESTAMP] >= start) & (df[COL_TIMESTAMP] < stop)
        if fields:
            mask &= df[COL_FIELD].isin(fields)

        for key, values in tag_filters.items():
            if key not in df.columns:
                return df.iloc[0:0]
            mask &= df[key].isin(values)

        return df.loc[mask]

    def run(self, query: SeriesQuery) -> pd.DataFrame:
        """Synchronous query evaluation."""
        matched = self._select(
            query.measurement,
            query.time_range,
            query.tag_filters,
            query.fields,
        )

        # Only keep tags the matched samples actually carry
        tags = [col for col in self.tag_columns if matched[col].notna().any()]
        group_cols = [COL_FIELD, *tags]
        matched = matched[[COL_TIMESTAMP, *group_cols, COL_VALUE]]

        if query.window is not None:
            result = _downsample(matched, group_cols, pandas_freq(query.window), query.aggregator)
        elif query.aggregator == "last":
            result = matched.groupby(group_cols, dropna=False, sort=False).tail(1)
        else:
            result = matched

        return result.sort_values(COL_TIMESTAMP, kind="stable").reset_index(drop=True)

    async def query(self, query: SeriesQuery) -> pd.DataFrame:
        return self.run(query)

    async def tag_values(
        self,
        measurement: str,
        tag_key: str,
        time_range: TimeRange,
        tag_filters: Optional[dict[str, list[str]]] = None,
        bucket: Optional[str] = None,
    ) -> set[str]:
        if tag_key not in self.samples.columns:
            return set()
        matched = self._select(measurement, time_range, tag_filters or {})
        return set(matched[tag_key].dropna().astype(str))


def _downsample(matched: pd.DataFrame, group_cols: list[str], freq: str, aggregator: str) -> pd.DataFrame:
    """Aggregate each tag-set into fixed windows, omitting empty windows."""
    pieces = []
    for key, group in matched.groupby(group_cols, dropna=False, sort=False):
        series = group.set_index(COL_TIMESTAMP)[COL_VALUE].sort_index()
        resampled = series.resample(freq, origin="epoch")
        values = resampled.agg(aggregator)
        values = values[resampled.count() > 0]

        piece = pd.DataFrame({COL_TIMESTAMP: values.index, COL_VALUE: values.to_numpy(dtype=float)})
        key = key if isinstance(key, tuple) else (key,)
        for col, tag_value in zip(group_cols, key):
            piece[col] = tag_value
        pieces.append(piece)

    if not pieces:
        return pd.DataFrame(columns=[COL_TIMESTAMP, *group_cols, COL_VALUE])

    return pd.concat(pieces, ignore_index=True)[[COL_TIMESTAMP, *group_cols, COL_VALUE]]
