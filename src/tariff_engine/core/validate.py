"""Input validation beyond Pydantic schemas."""

import pandas as pd

from tariff_engine.core.constants import (
    CHART_TYPES,
    COL_TIMESTAMP,
    COL_VALUE,
    DEVICE_SOURCES,
    PERIOD_STARTS,
    REQUIRED_SAMPLE_COLUMNS,
)
from tariff_engine.core.errors import ValidationError


def validate_samples(df: pd.DataFrame) -> None:
    """Validate a long-format sample frame.

    Args:
        df: Samples with timestamp, measurement, field, value and tag columns

    Raises:
        ValidationError: If validation fails
    """
    # Check required columns
    missing_cols = set(REQUIRED_SAMPLE_COLUMNS) - set(df.columns)
    if missing_cols:
        raise ValidationError(f"Missing required columns: {missing_cols}")

    # Check timestamp dtype
    if not pd.api.types.is_datetime64_any_dtype(df[COL_TIMESTAMP]):
        raise ValidationError("Column 'timestamp' must hold datetimes")

    if df[COL_TIMESTAMP].dt.tz is None:
        raise ValidationError("Timestamps must be timezone-aware")

    # Check numeric values
    if not pd.api.types.is_numeric_dtype(df[COL_VALUE]):
        raise ValidationError("Column 'value' must be numeric")

    # Check for NaN values
    nan_cols = df[REQUIRED_SAMPLE_COLUMNS].columns[df[REQUIRED_SAMPLE_COLUMNS].isna().any()].tolist()
    if nan_cols:
        raise ValidationError(f"NaN values found in columns: {nan_cols}")


def validate_series(series: pd.Series, name: str) -> None:
    """Validate a power series before energy integration.

    Raises:
        ValidationError: If the index is not an ordered, unique DatetimeIndex
    """
    if not isinstance(series.index, pd.DatetimeIndex):
        raise ValidationError(f"Series {name!r} must have DatetimeIndex")

    if not series.index.is_monotonic_increasing:
        raise ValidationError(f"Series {name!r} timestamps must be monotonic increasing")

    if series.index.has_duplicates:
        raise ValidationError(f"Series {name!r} has duplicate timestamps")


def validate_period(period: str) -> str:
    if period not in PERIOD_STARTS:
        raise ValidationError(f"Invalid period: {period!r}. Expected one of {sorted(PERIOD_STARTS)}")
    return period


def validate_chart_type(chart_type: str) -> str:
    if chart_type not in CHART_TYPES:
        raise ValidationError(f"Invalid chart type: {chart_type!r}. Expected one of {list(CHART_TYPES)}")
    return chart_type


def validate_device_source(source: str) -> str:
    if source not in DEVICE_SOURCES:
        raise ValidationError(f"Invalid device source: {source!r}. Expected one of {DEVICE_SOURCES}")
    return source
