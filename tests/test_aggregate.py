"""Test meter aggregation and the net-consumption join."""

import asyncio

import pandas as pd
import pytest

from samples import build_samples, combine, p1_samples, pv_samples
from tariff_engine.core.timerange import resolve_time_range
from tariff_engine.metering.aggregate import MeterAggregator, combine_tag_sets, join_net_consumption
from tariff_engine.store.frame import DataFrameSource


@pytest.fixture
def time_range():
    return resolve_time_range("2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z")


def _series(timestamps, values) -> pd.Series:
    return pd.Series(values, index=pd.DatetimeIndex(timestamps, tz="UTC"), dtype=float)


def test_join_keeps_only_shared_timestamps():
    """Test that the join never emits a timestamp absent from grid import."""
    grid = _series(["2024-01-01 10:00", "2024-01-01 10:15", "2024-01-01 10:30"], [3000.0, 2500.0, 1000.0])
    production = _series(["2024-01-01 10:00", "2024-01-01 10:30", "2024-01-01 10:45"], [500.0, 1500.0, 900.0])

    net = join_net_consumption(grid, production)

    assert net.index.isin(grid.index).all()
    assert net.tolist() == [2500.0, -500.0]


def test_join_without_common_timestamps_is_empty():
    grid = _series(["2024-01-01 10:00"], [3000.0])
    production = _series(["2024-01-01 10:05"], [500.0])

    assert join_net_consumption(grid, production).empty


def test_combine_tag_sets_sums_and_scales():
    """Test that tag-sets of one meter are summed and kW scaled to W."""
    frame = pd.DataFrame({
        "timestamp": pd.to_datetime(["2024-01-01 10:00", "2024-01-01 10:00", "2024-01-01 10:15"], utc=True),
        "value": [1.0, 0.5, 2.0],
        "field": ["PowerDelivered"] * 3,
        "meter": ["phase1", "phase2", "phase1"],
    })

    series = combine_tag_sets(frame, scale=1000.0)

    assert series.tolist() == [1500.0, 2000.0]


def test_canonical_net_consumption(canonical, time_range):
    """Test downsampling, kW scaling and the join over the canonical schema."""
    source = DataFrameSource(
        combine(
            p1_samples(["2024-01-01 10:00", "2024-01-01 10:05", "2024-01-01 10:15"], [1.0, 3.0, 2.0]),
            pv_samples(["2024-01-01 10:00", "2024-01-01 10:10"], [400.0, 600.0]),
        )
    )
    aggregator = MeterAggregator(source, canonical)

    net, production = asyncio.run(aggregator.consumption_and_production(time_range, "15m"))

    # 10:00 window: grid mean 2 kW, production mean 500 W; 10:15 has no production
    assert net.index.tolist() == [pd.Timestamp("2024-01-01 10:00", tz="UTC")]
    assert net.tolist() == [1500.0]
    assert production.tolist() == [500.0]


def test_canonical_ignores_other_devices(canonical, time_range):
    """Test that only the PV inverter counts as production."""
    source = DataFrameSource(
        combine(
            p1_samples(["2024-01-01 10:00"], [2.0]),
            pv_samples(["2024-01-01 10:00"], [500.0]),
            build_samples(["2024-01-01 10:00"], [70.0], "metering", "value", source="shelly", device="fridge", metric="Power"),
        )
    )

    production = asyncio.run(MeterAggregator(source, canonical).production(time_range, "15m"))

    assert production.tolist() == [500.0]


def test_empty_store_gives_empty_series(canonical, time_range):
    source = DataFrameSource(combine())
    net, production = asyncio.run(MeterAggregator(source, canonical).consumption_and_production(time_range))

    assert net.empty
    assert production.empty


def test_legacy_schema_passes_consumption_through(legacy, time_range):
    """Test that the legacy consumption measurement is used without a join."""
    source = DataFrameSource(
        combine(
            build_samples(["2024-01-01 10:00", "2024-01-01 11:00"], [800.0, 1200.0], "energy_consumption", "power"),
            build_samples(["2024-01-01 10:00"], [300.0], "solar_production", "power"),
        )
    )

    net, production = asyncio.run(MeterAggregator(source, legacy).consumption_and_production(time_range, "1h"))

    assert net.tolist() == [800.0, 1200.0]
    assert production.tolist() == [300.0]


def test_current_power_reads_last_values(canonical):
    """Test latest readings within the last five minutes."""
    source = DataFrameSource(
        combine(
            p1_samples(["2024-01-01 11:50", "2024-01-01 11:57", "2024-01-01 11:58"], [9.0, 1.0, 2.5]),
            pv_samples(["2024-01-01 11:56"], [700.0]),
            build_samples(["2024-01-01 11:59"], [65.0], "metering", "value", source="shelly", device="fridge", metric="Power"),
        )
    )

    current = asyncio.run(MeterAggregator(source, canonical).current_power(now="2024-01-01T12:00:00Z"))

    assert current.grid_import_w == pytest.approx(2500.0)
    assert current.production_w == pytest.approx(700.0)
    assert current.net_consumption_w == pytest.approx(1800.0)
    assert current.devices["shelly"]["fridge"] == pytest.approx(65.0)
    assert current.devices["sdm"]["pv-inverter"] == pytest.approx(700.0)


def test_current_power_without_recent_samples(canonical):
    source = DataFrameSource(combine(p1_samples(["2024-01-01 10:00"], [2.0])))

    current = asyncio.run(MeterAggregator(source, canonical).current_power(now="2024-01-01T12:00:00Z"))

    assert current.grid_import_w == 0.0
    assert current.devices == {}


def test_power_overview_one_series_per_device(canonical, time_range):
    """Test that every source/device pair gets its own series."""
    source = DataFrameSource(
        combine(
            p1_samples(["2024-01-01 10:00"], [2.0]),
            pv_samples(["2024-01-01 10:00"], [500.0]),
            build_samples(["2024-01-01 10:00"], [70.0], "metering", "value", source="shelly", device="fridge", metric="Power"),
        )
    )

    overview = asyncio.run(MeterAggregator(source, canonical).power_overview(time_range, "1m"))

    names = [series.name for series in overview]
    assert names[0] == "p1/main-panel"
    assert set(names[1:]) == {"sdm/pv-inverter", "shelly/fridge"}
    assert overview[0].points[0].value == pytest.approx(2000.0)


def test_devices_lists_tag_values(canonical, time_range):
    source = DataFrameSource(
        combine(
            build_samples(["2024-01-01 10:00"], [70.0], "metering", "value", source="shelly", device="fridge", metric="Power"),
            build_samples(["2024-01-01 10:00"], [20.0], "metering", "value", source="shelly", device="router", metric="Power"),
            pv_samples(["2024-01-01 10:00"], [500.0]),
        )
    )

    devices = asyncio.run(MeterAggregator(source, canonical).devices("shelly", time_range))

    assert devices == ["fridge", "router"]


@pytest.mark.parametrize("window", ["1w", "7m"])
def test_join_meters_starting_on_different_days(canonical, window):
    """Test that windows not dividing a day still line up across meters."""
    grid_index = pd.date_range("2024-01-01", "2024-01-20", freq="15min", tz="UTC", inclusive="left")
    pv_index = pd.date_range("2024-01-02", "2024-01-20", freq="15min", tz="UTC", inclusive="left")
    source = DataFrameSource(
        combine(
            p1_samples(grid_index, [2.0] * len(grid_index)),
            pv_samples(pv_index, [500.0] * len(pv_index)),
        )
    )
    time_range = resolve_time_range("2024-01-01T00:00:00Z", "2024-01-20T00:00:00Z")

    net, production = asyncio.run(MeterAggregator(source, canonical).consumption_and_production(time_range, window))

    assert not net.empty
    assert net.index.equals(production.index)
    assert net.tolist() == pytest.approx([1500.0] * len(net))
