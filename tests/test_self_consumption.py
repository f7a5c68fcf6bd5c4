"""Test the self-consumption ratio."""

import asyncio

import numpy as np
import pandas as pd
import pytest

from samples import build_samples, combine
from tariff_engine.core.self_consumption import self_consumption_ratio
from tariff_engine.core.timerange import resolve_time_range
from tariff_engine.metering.aggregate import MeterAggregator
from tariff_engine.services.tariff import SelfConsumptionCalculator
from tariff_engine.store.frame import DataFrameSource


def _totals(value: float) -> pd.Series:
    return pd.Series([value], index=pd.DatetimeIndex(["2024-06-01 12:00"], tz="UTC"))


def test_sixty_percent_scenario():
    """Test 10 kWh production against 6 kWh consumption."""
    assert self_consumption_ratio(_totals(10.0), _totals(6.0)) == pytest.approx(60.0)


def test_consumption_above_production_is_full():
    assert self_consumption_ratio(_totals(4.0), _totals(9.0)) == pytest.approx(100.0)
    assert self_consumption_ratio(_totals(4.0), _totals(4.0)) == pytest.approx(100.0)


def test_zero_production_is_zero():
    assert self_consumption_ratio(_totals(0.0), _totals(5.0)) == 0.0
    assert self_consumption_ratio(pd.Series([], dtype=float), pd.Series([], dtype=float)) == 0.0


def test_negative_consumption_floors_at_zero():
    """Test that net export over the range gives 0, not a negative ratio."""
    assert self_consumption_ratio(_totals(10.0), _totals(-3.0)) == 0.0


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_ratio_stays_in_range(seed):
    rng = np.random.default_rng(seed)
    index = pd.date_range("2024-06-01", periods=48, freq="h", tz="UTC")
    production = pd.Series(rng.uniform(0, 5000, len(index)), index=index)
    consumption = pd.Series(rng.normal(1000, 3000, len(index)), index=index)

    ratio = self_consumption_ratio(production, consumption)

    assert 0.0 <= ratio <= 100.0


def test_calculator_over_store(legacy):
    """Test the calculator on hourly legacy samples: 10 kWh produced, 6 kWh consumed."""
    hours = ["2024-06-01 10:00", "2024-06-01 11:00"]
    source = DataFrameSource(
        combine(
            build_samples(hours, [3000.0, 3000.0], "energy_consumption", "power"),
            build_samples(hours, [5000.0, 5000.0], "solar_production", "power"),
        )
    )
    calculator = SelfConsumptionCalculator(MeterAggregator(source, legacy))
    time_range = resolve_time_range("2024-06-01T00:00:00Z", "2024-06-02T00:00:00Z")

    assert asyncio.run(calculator.ratio(time_range)) == pytest.approx(60.0)
