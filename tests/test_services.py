"""Test the tariff, dashboard and analytics services over an in-memory store."""

import asyncio

import pandas as pd
import pytest

from samples import FailingSource, combine, p1_samples, price_samples, pv_samples
from tariff_engine.core.errors import UpstreamQueryError, ValidationError
from tariff_engine.core.schemas import CapacityPeaks, ChartPoint, CostBreakdown
from tariff_engine.core.timerange import resolve_time_range
from tariff_engine.services.container import Services
from tariff_engine.store.frame import DataFrameSource

NOW = pd.Timestamp("2024-03-02 00:00", tz="UTC")


@pytest.fixture
def day_samples():
    """One day of 15-minute grid import (2 kW) and midday PV (1000 W), hourly prices of 100."""
    index = pd.date_range("2024-03-01", periods=96, freq="15min", tz="UTC")
    pv = [1000.0 if 10 <= ts.hour < 14 else 0.0 for ts in index]
    hours = pd.date_range("2024-03-01", periods=24, freq="h", tz="UTC")
    return combine(
        p1_samples(index, [2.0] * len(index)),
        pv_samples(index, pv),
        price_samples(hours, [100.0] * len(hours)),
    )


@pytest.fixture
def services(day_samples, canonical, tariff):
    return Services(DataFrameSource(day_samples), canonical, tariff, "UTC")


def test_costs_fold_capacity_tariff(services):
    """Test costs over a day with the capacity tariff from the lookback."""
    time_range = resolve_time_range("2024-03-01T00:00:00Z", "2024-03-02T00:00:00Z")

    result = asyncio.run(services.tariff.costs(time_range, now=NOW))

    # Net: 2000 W for 80 intervals, 1000 W for 16 intervals
    delivered = 80 * 0.5 + 16 * 0.25
    assert result.total_kwh_delivered == pytest.approx(delivered)
    assert result.total_kwh_returned == pytest.approx(16 * 0.25)
    assert result.energy_cost == pytest.approx(delivered * 0.106)
    # One month with a 2 kW peak
    assert result.capacity_cost == pytest.approx(2.0 * 56.93 / 12)
    assert result.net_cost == pytest.approx(result.total_cost - result.energy_revenue)


def test_breakdown_rejects_unknown_period(services):
    with pytest.raises(ValidationError):
        asyncio.run(services.tariff.breakdown("decade", NOW))


def test_current_price_falls_back_to_default(services):
    """Test the default price when no sample is within the last hour."""
    breakdown = asyncio.run(services.tariff.current_price(pd.Timestamp("2024-03-05 12:00", tz="UTC")))

    assert breakdown.is_default_price is True
    assert breakdown.market_price_eur_per_mwh == 100.0


def test_failed_fetch_fails_costs(canonical, tariff):
    """Test that one failing fetch fails the whole computation."""
    services = Services(FailingSource(), canonical, tariff)
    time_range = resolve_time_range("-1d", "now()", NOW)

    with pytest.raises(UpstreamQueryError):
        asyncio.run(services.tariff.costs(time_range, now=NOW))


def test_chart_type_validated_before_fetch(canonical, tariff):
    source = FailingSource()
    services = Services(source, canonical, tariff)

    with pytest.raises(ValidationError, match="chart type"):
        asyncio.run(services.dashboard.chart("pie", now=NOW))
    assert source.calls == 0


def test_consumption_production_chart(services):
    points = asyncio.run(
        services.dashboard.chart("consumption-production", "2024-03-01T10:00:00Z", "2024-03-01T12:00:00Z", "1h")
    )

    assert all(isinstance(point, ChartPoint) for point in points)
    assert [point.consumption_kw for point in points] == pytest.approx([1.0, 1.0])
    assert [point.production_kw for point in points] == pytest.approx([1.0, 1.0])


def test_other_chart_types(services):
    costs = asyncio.run(services.dashboard.chart("costs", "-1d", "now()", "15m", now=NOW))
    peaks = asyncio.run(services.dashboard.chart("capacity-peaks", now=NOW))

    assert isinstance(costs, CostBreakdown)
    assert isinstance(peaks, CapacityPeaks)
    assert peaks.monthly_peaks_kw == pytest.approx([2.0])


def test_summary(services):
    summary = asyncio.run(services.dashboard.summary("day", NOW))

    assert summary.period == "day"
    assert summary.production_kwh == pytest.approx(4.0)
    assert summary.net_balance_kwh == pytest.approx(summary.production_kwh - summary.consumption_kwh)
    assert 0.0 <= summary.self_consumption_ratio <= 100.0


def test_overview_without_charging_client(services):
    overview = asyncio.run(services.dashboard.overview(NOW))

    assert overview.charging.enabled is False
    assert overview.capacity.average_peak_kw == pytest.approx(2.0)
    assert overview.today.production_kwh == pytest.approx(4.0)


def test_comparison_without_previous_data(services):
    """Test that an empty previous period gives no percentage change."""
    comparison = asyncio.run(services.analytics.comparison("day", NOW))

    assert comparison.previous == 0.0
    assert comparison.percentage_change is None
    assert comparison.trend == "up"


def test_comparison_percentage(canonical, tariff):
    index = pd.date_range("2024-02-29", periods=48, freq="h", tz="UTC")
    values = [1.0] * 24 + [1.5] * 24
    samples = combine(p1_samples(index, values), pv_samples(index, [0.0] * len(index)))
    services = Services(DataFrameSource(samples), canonical, tariff)

    comparison = asyncio.run(services.analytics.comparison("day", NOW))

    assert comparison.current == pytest.approx(24 * 1500.0)
    assert comparison.previous == pytest.approx(24 * 1000.0)
    assert comparison.percentage_change == pytest.approx(50.0)
    assert comparison.trend == "up"


def test_peak_hours(services):
    """Test hour-of-day averages: midday PV lowers net consumption."""
    peaks = asyncio.run(services.analytics.peak_hours(1, NOW))

    assert len(peaks.hourly_averages_w) == 24
    assert peaks.hourly_averages_w[12] == pytest.approx(1000.0)
    assert len(peaks.peak_hours) == 5
    assert all(peak.average_w == pytest.approx(2000.0) for peak in peaks.peak_hours)
    assert [peak.hour for peak in peaks.peak_hours] == [0, 1, 2, 3, 4]


def test_peak_hours_rejects_non_positive_days(services):
    with pytest.raises(ValidationError):
        asyncio.run(services.analytics.peak_hours(0, NOW))


def test_insights(services):
    """Test insight values with the low-peak and full self-consumption advice."""
    insights = asyncio.run(services.analytics.insights(NOW))

    assert insights.capacity.value == pytest.approx(2.0)
    assert "is low" in insights.capacity.recommendation
    assert insights.self_consumption.value == pytest.approx(100.0)
    assert insights.self_consumption.recommendation.startswith("You self-consume")
    assert insights.costs.value == pytest.approx(asyncio.run(services.tariff.breakdown("month", NOW)).net_cost)


def test_fluvius_peaks_chart_name(services):
    """Test that the older chart name gives the capacity peaks."""
    peaks = asyncio.run(services.dashboard.chart("fluvius-peaks", now=NOW))

    assert isinstance(peaks, CapacityPeaks)
    assert peaks.monthly_peaks_kw == pytest.approx([2.0])
