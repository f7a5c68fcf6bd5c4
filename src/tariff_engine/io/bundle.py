"""Run bundle I/O operations.

A run bundle is a folder containing:
- tariff.yaml: Tariff parameters (omitted keys keep their defaults)
- schema.yaml: Optional metering schema, either ``name: canonical|legacy`` or
  a full schema definition (defaults to canonical)
- samples.parquet: Long-format telemetry and price samples
- (outputs):
  - results/<name>.json: Saved command results
  - results/bundle_metadata.json: Reproducibility metadata
"""

import json
from pathlib import Path

import pandas as pd
import yaml
from pydantic import BaseModel

from tariff_engine import __version__
from tariff_engine.core.schemas import BundleMetadata, MeteringSchema, TariffParameters
from tariff_engine.io.formats import read_parquet_samples, write_parquet_samples
from tariff_engine.metering.schema import canonical_schema, schema_by_name
from tariff_engine.store.frame import DataFrameSource

REQUIRED_FILES = ["tariff.yaml", "samples.parquet"]


def _load_schema(path: Path) -> MeteringSchema:
    if not path.exists():
        return canonical_schema()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if set(data) <= {"name"}:
        return schema_by_name(data.get("name", "canonical"))
    return MeteringSchema(**data)


def load_bundle(bundle_path: str | Path) -> tuple[TariffParameters, MeteringSchema, DataFrameSource]:
    """Load a run bundle.

    Args:
        bundle_path: Path to bundle directory

    Returns:
        Tuple of (tariff, metering_schema, source)
    """
    bundle_path = Path(bundle_path)

    if not bundle_path.exists():
        raise FileNotFoundError(f"Bundle not found: {bundle_path}")

    with open(bundle_path / "tariff.yaml") as f:
        tariff = TariffParameters(**(yaml.safe_load(f) or {}))

    schema = _load_schema(bundle_path / "schema.yaml")
    samples = read_parquet_samples(str(bundle_path / "samples.parquet"))

    return tariff, schema, DataFrameSource(samples)


def write_result(bundle_path: str | Path, name: str, result: BaseModel, schema_name: str) -> Path:
    """Write a command result to the bundle.

    Args:
        bundle_path: Path to bundle directory
        name: Result file stem
        result: Result model
        schema_name: Metering schema the result was computed with

    Returns:
        Path of the written result file
    """
    results_path = Path(bundle_path) / "results"
    results_path.mkdir(parents=True, exist_ok=True)

    output = results_path / f"{name}.json"
    with open(output, "w") as f:
        json.dump(result.model_dump(mode="json"), f, indent=2)

    metadata = BundleMetadata(tariff_engine_version=__version__, metering_schema=schema_name)
    with open(results_path / "bundle_metadata.json", "w") as f:
        json.dump(metadata.model_dump(mode="json"), f, indent=2)

    return output


def init_bundle(
    bundle_path: str | Path,
    tariff: TariffParameters,
    samples: pd.DataFrame,
    schema: MeteringSchema | None = None,
) -> None:
    """Initialize a new run bundle.

    Args:
        bundle_path: Path to bundle directory
        tariff: Tariff parameters
        samples: Long-format sample frame
        schema: Metering schema; omitted means canonical
    """
    bundle_path = Path(bundle_path)
    bundle_path.mkdir(parents=True, exist_ok=True)

    with open(bundle_path / "tariff.yaml", "w") as f:
        yaml.dump(tariff.model_dump(), f, default_flow_style=False)

    if schema is not None:
        with open(bundle_path / "schema.yaml", "w") as f:
            yaml.dump(schema.model_dump(), f, default_flow_style=False)

    write_parquet_samples(samples, str(bundle_path / "samples.parquet"))


def validate_bundle(bundle_path: str | Path) -> bool:
    """Validate that a bundle has all required files and readable contents.

    Returns:
        True if valid

    Raises:
        ValueError: If bundle is invalid
    """
    bundle_path = Path(bundle_path)

    for filename in REQUIRED_FILES:
        if not (bundle_path / filename).exists():
            raise ValueError(f"Missing required file: {filename}")

    try:
        load_bundle(bundle_path)
    except Exception as e:
        raise ValueError(f"Unreadable bundle: {e}") from e

    return True
