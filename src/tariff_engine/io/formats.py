"""Parquet I/O for long-format sample frames."""

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from tariff_engine.core.constants import COL_TIMESTAMP, REQUIRED_SAMPLE_COLUMNS


def ensure_columns(df: pd.DataFrame, required_columns: list[str]) -> None:
    """Ensure dataframe has required columns.

    Raises:
        ValueError: If any required columns are missing
    """
    missing = set(required_columns) - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def read_parquet_samples(path: str) -> pd.DataFrame:
    """Read a sample frame from Parquet.

    Args:
        path: Path to Parquet file

    Returns:
        DataFrame with a tz-aware UTC timestamp column
    """
    df = pd.read_parquet(path)
    ensure_columns(df, REQUIRED_SAMPLE_COLUMNS)

    # Naive timestamps are stored as UTC
    df[COL_TIMESTAMP] = pd.to_datetime(df[COL_TIMESTAMP], utc=True)
    return df


def write_parquet_samples(df: pd.DataFrame, path: str) -> None:
    """Write a sample frame to Parquet.

    Args:
        df: Samples with timestamp, measurement, field, value and tag columns
        path: Output path
    """
    ensure_columns(df, REQUIRED_SAMPLE_COLUMNS)

    table = pa.Table.from_pandas(df.reset_index(drop=True), preserve_index=False)
    pq.write_table(table, path, compression="snappy")
