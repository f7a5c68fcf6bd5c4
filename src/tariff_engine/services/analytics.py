"""Period comparison, peak hours and recommendations."""

import asyncio
from datetime import datetime
from typing import Optional, Union

import numpy as np
import pandas as pd

from tariff_engine.core.constants import PERIOD_DAYS, SUMMARY_WINDOW, WATTS_PER_KILOWATT
from tariff_engine.core.errors import ValidationError
from tariff_engine.core.schemas import HourlyAverage, Insight, Insights, PeakHours, PeriodComparison
from tariff_engine.core.timerange import ensure_utc, resolve_time_range
from tariff_engine.core.validate import validate_period
from tariff_engine.metering.aggregate import MeterAggregator
from tariff_engine.services.tariff import TariffService

Now = Optional[Union[datetime, pd.Timestamp]]

PEAK_HOURS_COUNT = 5


def hourly_profile(net_consumption_w: pd.Series, timezone: str = "UTC") -> pd.Series:
    """Average absolute net consumption per local hour of day (0-23).

    Hours without samples average to 0.
    """
    if net_consumption_w.empty:
        return pd.Series(0.0, index=range(24))

    local = net_consumption_w.abs().tz_convert(timezone)
    return local.groupby(local.index.hour).mean().reindex(range(24), fill_value=0.0).astype(float)


def capacity_recommendation(average_peak_kw: float) -> str:
    if average_peak_kw > 5:
        return (
            f"Your average peak is {average_peak_kw:.2f} kW, which is relatively high. "
            "Spread high-power appliances over the day to reduce the capacity tariff."
        )
    if average_peak_kw > 3:
        return (
            f"Your average peak is {average_peak_kw:.2f} kW. "
            "Avoid running heavy appliances simultaneously to lower it further."
        )
    return f"Your average peak of {average_peak_kw:.2f} kW is low, which keeps the capacity tariff minimal."


def self_consumption_recommendation(ratio: float) -> str:
    if ratio > 70:
        return f"You self-consume {ratio:.1f}% of your solar production."
    if ratio > 50:
        return f"Self-consumption is {ratio:.1f}%. Shift more usage to peak solar hours to increase it."
    return f"Self-consumption is {ratio:.1f}%. Move energy-intensive tasks to hours when the panels produce."


def cost_recommendation(capacity_cost: float, total_cost: float) -> str:
    share = capacity_cost / total_cost * 100 if total_cost > 0 else 0.0
    if share > 30:
        return (
            f"The capacity tariff is {share:.1f}% of your total costs. "
            "Reducing peak consumption lowers your bill the most."
        )
    return "Your costs are well balanced. Keep shifting usage away from high-price periods."


def peak_hours_recommendation(peak_hours: list[HourlyAverage]) -> str:
    hours = ", ".join(f"{peak.hour}:00" for peak in peak_hours)
    return (
        f"Your highest consumption is typically at {hours}. "
        "Avoid running heavy appliances simultaneously during these hours."
    )


class AnalyticsService:
    def __init__(self, aggregator: MeterAggregator, tariff: TariffService, timezone: str = "UTC"):
        self.aggregator = aggregator
        self.tariff = tariff
        self.timezone = timezone

    async def comparison(self, period: str = "day", now: Now = None) -> PeriodComparison:
        """Absolute net consumption of the current period against the previous one."""
        validate_period(period)
        reference = ensure_utc(now) if now is not None else pd.Timestamp.now(tz="UTC")
        days = PERIOD_DAYS[period]
        current_range = resolve_time_range(f"-{days}d", "now()", reference)
        previous_range = resolve_time_range(f"-{2 * days}d", f"-{days}d", reference)

        current_w, previous_w = await asyncio.gather(
            self.aggregator.net_consumption(current_range, SUMMARY_WINDOW),
            self.aggregator.net_consumption(previous_range, SUMMARY_WINDOW),
        )

        current = float(current_w.abs().sum())
        previous = float(previous_w.abs().sum())
        change = current - previous
        percentage = change / previous * 100 if previous > 0 else None

        return PeriodComparison(
            period=period,
            current=current,
            previous=previous,
            change=change,
            percentage_change=percentage,
            trend="up" if change > 0 else "down" if change < 0 else "flat",
        )

    async def peak_hours(self, days: int = 30, now: Now = None) -> PeakHours:
        """Hour-of-day consumption averages and the five busiest hours."""
        if days <= 0:
            raise ValidationError(f"Days must be positive, got {days}")
        time_range = resolve_time_range(f"-{days}d", "now()", now)
        net_w = await self.aggregator.net_consumption(time_range, SUMMARY_WINDOW)

        profile = hourly_profile(net_w, self.timezone)
        # Stable sort keeps earlier hours first among equal averages
        order = np.argsort(-profile.to_numpy(), kind="stable")[:PEAK_HOURS_COUNT]
        peaks = [HourlyAverage(hour=int(profile.index[i]), average_w=float(profile.iloc[i])) for i in order]

        return PeakHours(
            hourly_averages_w=profile.tolist(),
            peak_hours=peaks,
            recommendation=peak_hours_recommendation(peaks),
        )

    async def insights(self, now: Now = None) -> Insights:
        """Capacity, self-consumption and cost figures with recommendations."""
        reference = ensure_utc(now) if now is not None else pd.Timestamp.now(tz="UTC")
        month = resolve_time_range("-30d", "now()", reference)

        capacity, ratio, costs = await asyncio.gather(
            self.tariff.capacity_tariff(now=reference),
            self.tariff.self_consumption_ratio(month),
            self.tariff.breakdown("month", reference),
        )

        return Insights(
            capacity=Insight(
                value=capacity.average_peak_w / WATTS_PER_KILOWATT,
                recommendation=capacity_recommendation(capacity.average_peak_kw),
            ),
            self_consumption=Insight(value=ratio, recommendation=self_consumption_recommendation(ratio)),
            costs=Insight(
                value=costs.net_cost,
                recommendation=cost_recommendation(costs.capacity_cost, costs.total_cost),
            ),
        )
