"""Test run bundle I/O and the CLI on bundles."""

import json

import pytest
import yaml
from typer.testing import CliRunner

from samples import combine, p1_samples, price_samples, pv_samples
from tariff_engine.cli import app
from tariff_engine.core.schemas import TariffParameters
from tariff_engine.io.bundle import init_bundle, load_bundle, validate_bundle
from tariff_engine.metering.schema import legacy_schema

runner = CliRunner()


@pytest.fixture
def samples():
    """Three months of evening peaks (2, 3 and 4 kW) plus a midday PV sample."""
    return combine(
        p1_samples(["2024-01-10 18:00", "2024-02-10 18:00", "2024-03-10 18:00"], [2.0, 3.0, 4.0]),
        pv_samples(["2024-03-10 12:00"], [1500.0]),
        price_samples(["2024-03-10 18:00"], [120.0]),
    )


@pytest.fixture
def bundle(tmp_path, samples):
    path = tmp_path / "bundle"
    init_bundle(path, TariffParameters(), samples)
    return path


def test_round_trip(bundle, samples):
    """Test that a written bundle loads back with the same samples."""
    tariff, schema, source = load_bundle(bundle)

    assert tariff == TariffParameters()
    assert schema.name == "canonical"
    assert len(source.samples) == len(samples)
    assert str(source.samples["timestamp"].dt.tz) == "UTC"


def test_schema_by_name(tmp_path, samples):
    path = tmp_path / "legacy"
    init_bundle(path, TariffParameters(), samples)
    with open(path / "schema.yaml", "w") as f:
        yaml.dump({"name": "legacy"}, f)

    _, schema, _ = load_bundle(path)

    assert schema.name == "legacy"
    assert schema.derive_net is False


def test_full_schema_round_trip(tmp_path, samples):
    path = tmp_path / "legacy_full"
    init_bundle(path, TariffParameters(), samples, legacy_schema())

    _, schema, _ = load_bundle(path)

    assert schema == legacy_schema()


def test_validate_missing_file(bundle):
    (bundle / "samples.parquet").unlink()

    with pytest.raises(ValueError, match="samples.parquet"):
        validate_bundle(bundle)


def test_validate_bad_tariff(bundle):
    with open(bundle / "tariff.yaml", "w") as f:
        yaml.dump({"yearly_capacity_rate_eur_per_kw": -1.0}, f)

    with pytest.raises(ValueError, match="Unreadable bundle"):
        validate_bundle(bundle)


def test_load_missing_bundle(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_bundle(tmp_path / "nope")


def test_cli_validate(bundle, tmp_path):
    assert runner.invoke(app, ["validate", str(bundle)]).exit_code == 0

    result = runner.invoke(app, ["validate", str(tmp_path / "nope")])
    assert result.exit_code == 1


def test_cli_capacity(bundle):
    """Test the capacity command resolving the lookback from the last sample."""
    result = runner.invoke(app, ["capacity", str(bundle), "--timezone", "UTC", "--save"])

    assert result.exit_code == 0, result.output
    assert "Average peak:     3.000 kW" in result.output
    assert "Monthly cost:     €14.23" in result.output

    with open(bundle / "results" / "capacity.json") as f:
        saved = json.load(f)
    assert saved["monthly_cost"] == pytest.approx(14.2325)
    assert (bundle / "results" / "bundle_metadata.json").exists()


def test_cli_breakdown_rejects_period(bundle):
    result = runner.invoke(app, ["breakdown", str(bundle), "decade"])

    assert result.exit_code == 1


def test_cli_current_price(bundle):
    result = runner.invoke(app, ["current-price", str(bundle), "--now", "2024-03-10T18:30:00Z"])

    assert result.exit_code == 0, result.output
    assert "€120.00 /MWh" in result.output


def test_cli_costs(bundle):
    result = runner.invoke(app, ["costs", str(bundle), "--start", "-1d"])

    assert result.exit_code == 0, result.output
    assert "COST BREAKDOWN" in result.output


def test_cli_version():
    result = runner.invoke(app, ["version"])
    assert "Tariff Engine v" in result.output


def test_reference_defaults_to_last_sample(bundle):
    """Test that relative ranges end just after the last sample."""
    result = runner.invoke(app, ["self-consumption", str(bundle), "--start", "-1d"])

    assert result.exit_code == 0, result.output
    assert "Self-consumption:" in result.output
