"""Dashboard aggregations."""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Union

import pandas as pd

from tariff_engine.charging.client import ChargingClient
from tariff_engine.core.constants import CAPACITY_PEAKS_CHARTS, SUMMARY_WINDOW, WATTS_PER_KILOWATT
from tariff_engine.core.costs import interval_energy_kwh
from tariff_engine.core.schemas import (
    CapacityPeaks,
    ChargingStatus,
    ChartPoint,
    CostBreakdown,
    DashboardOverview,
    EnergyTotals,
    PeriodSummary,
)
from tariff_engine.core.timerange import ensure_utc, period_range, resolve_time_range, window_minutes
from tariff_engine.core.validate import validate_chart_type, validate_period
from tariff_engine.metering.aggregate import MeterAggregator
from tariff_engine.services.tariff import TariffService

logger = logging.getLogger(__name__)

Now = Optional[Union[datetime, pd.Timestamp]]


def energy_totals(consumption_w: pd.Series, production_w: pd.Series, window: str) -> EnergyTotals:
    """Energy totals from two average-power series of the same window."""
    minutes = window_minutes(window)
    consumption = float(interval_energy_kwh(consumption_w, minutes).sum())
    production = float(interval_energy_kwh(production_w, minutes).sum())
    return EnergyTotals(
        consumption_kwh=consumption,
        production_kwh=production,
        self_consumption_kwh=max(0.0, min(consumption, production)),
        grid_import_kwh=max(0.0, consumption - production),
        grid_export_kwh=max(0.0, production - consumption),
    )


class DashboardService:
    def __init__(
        self,
        aggregator: MeterAggregator,
        tariff: TariffService,
        charging: Optional[ChargingClient] = None,
    ):
        self.aggregator = aggregator
        self.tariff = tariff
        self.charging = charging

    async def _charging_status(self) -> ChargingStatus:
        if self.charging is None:
            return ChargingStatus(enabled=False, available=False)
        return await self.charging.status()

    async def overview(self, now: Now = None) -> DashboardOverview:
        """Current values, today's totals, this month's costs and the capacity tariff."""
        reference = ensure_utc(now) if now is not None else pd.Timestamp.now(tz="UTC")
        today = resolve_time_range("-24h", "now()", reference)

        current, price, (consumption_w, production_w), month_costs, capacity, charging = await asyncio.gather(
            self.aggregator.current_power(reference),
            self.tariff.current_price(reference),
            self.aggregator.consumption_and_production(today, SUMMARY_WINDOW),
            self.tariff.breakdown("month", reference),
            self.tariff.capacity_tariff(now=reference),
            self._charging_status(),
        )

        return DashboardOverview(
            current=current,
            price=price,
            today=energy_totals(consumption_w, production_w, SUMMARY_WINDOW),
            month_costs=month_costs,
            capacity=capacity,
            charging=charging,
        )

    async def summary(self, period: str, now: Now = None) -> PeriodSummary:
        """Energy totals, self-consumption and costs for a billing period."""
        validate_period(period)
        time_range = period_range(period, now)

        (consumption_w, production_w), costs, ratio = await asyncio.gather(
            self.aggregator.consumption_and_production(time_range, SUMMARY_WINDOW),
            self.tariff.costs(time_range, now=now),
            self.tariff.self_consumption_ratio(time_range),
        )

        totals = energy_totals(consumption_w, production_w, SUMMARY_WINDOW)
        return PeriodSummary(
            period=period,
            consumption_kwh=totals.consumption_kwh,
            production_kwh=totals.production_kwh,
            self_consumption_ratio=ratio,
            net_balance_kwh=totals.production_kwh - totals.consumption_kwh,
            costs=costs,
        )

    async def chart(
        self,
        chart_type: str,
        start: str = "-24h",
        stop: str = "now()",
        window: str = SUMMARY_WINDOW,
        now: Now = None,
    ) -> Union[list[ChartPoint], CostBreakdown, CapacityPeaks]:
        """Chart data by type.

        Raises:
            ValidationError: If the chart type, range or window is invalid
        """
        validate_chart_type(chart_type)
        time_range = resolve_time_range(start, stop, now)
        window_minutes(window)

        if chart_type == "costs":
            return await self.tariff.costs(time_range, window, now=now)

        if chart_type in CAPACITY_PEAKS_CHARTS:
            capacity = await self.tariff.capacity_tariff(now=now)
            return CapacityPeaks(
                monthly_peaks_kw=[peak / WATTS_PER_KILOWATT for peak in capacity.monthly_peaks_w],
                average_peak_kw=capacity.average_peak_kw,
            )

        consumption_w, production_w = await self.aggregator.consumption_and_production(time_range, window)
        frame = pd.concat(
            {"consumption": consumption_w, "production": production_w}, axis=1
        ).fillna(0.0) / WATTS_PER_KILOWATT
        return [
            ChartPoint(
                timestamp=ts.to_pydatetime(),
                consumption_kw=float(row["consumption"]),
                production_kw=float(row["production"]),
            )
            for ts, row in frame.sort_index().iterrows()
        ]
