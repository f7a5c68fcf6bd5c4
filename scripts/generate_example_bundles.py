"""Generate synthetic example bundles for testing and demonstration."""

from pathlib import Path

import numpy as np
import pandas as pd

from tariff_engine.core.schemas import TariffParameters
from tariff_engine.io.bundle import init_bundle
from tariff_engine.metering.schema import legacy_schema


def _profiles(dates: pd.DatetimeIndex, rng: np.random.Generator) -> tuple[np.ndarray, np.ndarray]:
    """Synthetic household load and PV production in W."""
    hour_of_day = dates.hour + dates.minute / 60.0
    load_w = 400.0 + 1800.0 * np.maximum(np.sin((hour_of_day - 6) * np.pi / 16), 0)
    load_w = np.maximum(load_w + rng.normal(0, 150.0, len(dates)), 100.0)

    pv_w = np.where(
        (hour_of_day >= 7) & (hour_of_day <= 18),
        4500.0 * np.sin((hour_of_day - 7) * np.pi / 11) ** 2,
        0.0,
    )
    pv_w = np.maximum(pv_w + rng.normal(0, 100.0, len(dates)), 0.0)
    return load_w, pv_w


def _hourly_prices(start: str, days: int, rng: np.random.Generator) -> pd.DataFrame:
    """Day-ahead style prices (EUR/MWh), cheap at noon, expensive in the evening."""
    hours = pd.date_range(start, periods=days * 24, freq="h", tz="UTC")
    price = 90.0 + 60.0 * np.sin((hours.hour - 12) * np.pi / 12) ** 2 - 40.0 * (hours.hour == 13)
    return pd.DataFrame({
        "timestamp": hours,
        "measurement": "electricity_price",
        "field": "price",
        "value": price + rng.normal(0, 5.0, len(hours)),
    })


def generate_canonical():
    """Generate a canonical-schema bundle: P1 meter (kW), PV inverter (W), plugs."""
    print("Generating canonical bundle...")
    rng = np.random.default_rng(42)

    num_days = 92
    dates = pd.date_range("2024-01-01", periods=num_days * 24 * 4, freq="15min", tz="UTC")
    load_w, pv_w = _profiles(dates, rng)
    grid_kw = np.maximum(load_w - pv_w, 0.0) / 1000.0

    frames = [
        pd.DataFrame({
            "timestamp": dates,
            "measurement": "metering",
            "field": "PowerDelivered",
            "value": grid_kw,
            "source": "p1",
            "device": "main-panel",
            "metric": None,
        }),
        pd.DataFrame({
            "timestamp": dates,
            "measurement": "metering",
            "field": "value",
            "value": pv_w,
            "source": "sdm",
            "device": "pv-inverter",
            "metric": "Power",
        }),
        pd.DataFrame({
            "timestamp": dates,
            "measurement": "metering",
            "field": "value",
            "value": np.maximum(rng.normal(80.0, 10.0, len(dates)), 0.0),
            "source": "shelly",
            "device": "fridge",
            "metric": "Power",
        }),
        _hourly_prices("2024-01-01", num_days, rng),
    ]
    samples = pd.concat(frames, ignore_index=True)

    bundle_path = Path(__file__).parent.parent / "examples" / "bundles" / "canonical"
    init_bundle(bundle_path, TariffParameters(), samples)
    print(f"✓ Created {bundle_path}")


def generate_legacy():
    """Generate a legacy-schema bundle with logical consumption/production measurements."""
    print("Generating legacy bundle...")
    rng = np.random.default_rng(7)

    num_days = 14
    dates = pd.date_range("2024-06-01", periods=num_days * 24 * 4, freq="15min", tz="UTC")
    load_w, pv_w = _profiles(dates, rng)

    samples = pd.concat(
        [
            pd.DataFrame({"timestamp": dates, "measurement": "energy_consumption", "field": "power", "value": load_w}),
            pd.DataFrame({"timestamp": dates, "measurement": "solar_production", "field": "power", "value": pv_w}),
            _hourly_prices("2024-06-01", num_days, rng),
        ],
        ignore_index=True,
    )

    tariff = TariffParameters(fixed_monthly_fees_eur={"supplier": 4.5, "network": 1.2})
    bundle_path = Path(__file__).parent.parent / "examples" / "bundles" / "legacy"
    init_bundle(bundle_path, tariff, samples, legacy_schema())
    print(f"✓ Created {bundle_path}")


if __name__ == "__main__":
    generate_canonical()
    generate_legacy()
    print("\n✓ All example bundles generated")
