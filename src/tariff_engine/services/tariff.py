"""Tariff services: capacity tariff, costs and self-consumption over the store."""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Union

import pandas as pd

from tariff_engine.core.capacity import capacity_tariff, monthly_peaks
from tariff_engine.core.constants import CAPACITY_WINDOW, COST_WINDOW, SUMMARY_WINDOW
from tariff_engine.core.costs import CostEngine
from tariff_engine.core.schemas import (
    CapacityTariffResult,
    CostBreakdown,
    PriceBreakdown,
    PricePoint,
    TariffParameters,
    TimeRange,
)
from tariff_engine.core.self_consumption import self_consumption_ratio
from tariff_engine.core.timerange import lookback_range, period_range, window_minutes
from tariff_engine.metering.aggregate import MeterAggregator
from tariff_engine.services.prices import MarketPriceFeed

logger = logging.getLogger(__name__)

Now = Optional[Union[datetime, pd.Timestamp]]


class CapacityTariffCalculator:
    """Capacity tariff from the grid import peaks of the trailing months."""

    def __init__(self, aggregator: MeterAggregator, tariff: TariffParameters, timezone: str = "UTC"):
        self.aggregator = aggregator
        self.tariff = tariff
        self.timezone = timezone

    async def calculate(self, lookback_months: int = 12, now: Now = None) -> CapacityTariffResult:
        """Average monthly peak and the resulting monthly and yearly charge.

        Power is averaged per 15 minutes, then the highest average of each
        calendar month is that month's peak. No data gives a zero result.
        """
        time_range = lookback_range(lookback_months, now)
        power_w = await self.aggregator.grid_import(time_range, CAPACITY_WINDOW)
        peaks = monthly_peaks(power_w, self.timezone)

        result = capacity_tariff(peaks.tolist(), self.tariff.yearly_capacity_rate_eur_per_kw)
        logger.info(
            "Capacity tariff over %d months: %d peaks, average %.2f kW, %.2f EUR/month",
            lookback_months,
            len(result.monthly_peaks_w),
            result.average_peak_kw,
            result.monthly_cost,
        )
        return result


class SelfConsumptionCalculator:
    def __init__(self, aggregator: MeterAggregator):
        self.aggregator = aggregator

    async def ratio(self, time_range: TimeRange, window: str = SUMMARY_WINDOW) -> float:
        """Self-consumed share of production in percent, in [0, 100]."""
        consumption_w, production_w = await self.aggregator.consumption_and_production(time_range, window)
        return self_consumption_ratio(production_w, consumption_w)


class TariffService:
    """Cost and tariff operations for a time range or billing period."""

    def __init__(
        self,
        aggregator: MeterAggregator,
        prices: MarketPriceFeed,
        tariff: TariffParameters,
        timezone: str = "UTC",
    ):
        self.aggregator = aggregator
        self.prices = prices
        self.tariff = tariff
        self.engine = CostEngine(tariff)
        self.capacity = CapacityTariffCalculator(aggregator, tariff, timezone)
        self.self_consumption = SelfConsumptionCalculator(aggregator)

    async def capacity_tariff(self, months: int = 12, now: Now = None) -> CapacityTariffResult:
        return await self.capacity.calculate(months, now)

    async def costs(self, time_range: TimeRange, window: str = COST_WINDOW, now: Now = None) -> CostBreakdown:
        """Cost breakdown for a time range.

        Consumption, production, prices and the capacity tariff are fetched
        concurrently; any failed fetch fails the whole computation.
        """
        interval_minutes = window_minutes(window)

        (consumption_w, production_w), prices, capacity = await asyncio.gather(
            self.aggregator.consumption_and_production(time_range, window),
            self.prices.fetch(time_range),
            self.capacity.calculate(now=now),
        )

        breakdown = self.engine.compute(consumption_w, production_w, prices, interval_minutes, capacity)
        logger.info(
            "Costs %s - %s: %.2f kWh delivered, %.2f kWh returned, net %.2f EUR",
            time_range.start,
            time_range.stop,
            breakdown.total_kwh_delivered,
            breakdown.total_kwh_returned,
            breakdown.net_cost,
        )
        return breakdown

    async def breakdown(self, period: str, now: Now = None) -> CostBreakdown:
        """Cost breakdown for ``day``, ``week``, ``month`` or ``year`` up to now."""
        return await self.costs(period_range(period, now), now=now)

    async def self_consumption_ratio(self, time_range: TimeRange) -> float:
        return await self.self_consumption.ratio(time_range)

    async def current_price(self, now: Now = None) -> PriceBreakdown:
        point = await self.prices.current_price(now)
        if point is None:
            return self.engine.price_breakdown(None)
        return self.engine.price_breakdown(point.price_eur_per_mwh, point.timestamp)

    async def forecast(self, now: Now = None) -> list[PricePoint]:
        return await self.prices.forecast(now)

    def rates(self) -> TariffParameters:
        return self.tariff
