"""Cost computation under the dynamic tariff."""

from typing import Optional

import pandas as pd

from tariff_engine.core.constants import MINUTES_PER_HOUR, MONTHS_PER_YEAR, WATTS_PER_KILOWATT
from tariff_engine.core.prices import PriceSeries
from tariff_engine.core.schemas import (
    CapacityTariffResult,
    CostBreakdown,
    PriceBreakdown,
    TariffParameters,
)
from tariff_engine.core.validate import validate_series


def interval_energy_kwh(power_w: pd.Series, interval_minutes: float) -> pd.Series:
    """Energy per interval from average power over the interval."""
    return power_w / WATTS_PER_KILOWATT * (interval_minutes / MINUTES_PER_HOUR)


class CostEngine:
    """Applies the tariff formula to consumption and production series.

    Pure function of its inputs: the engine holds nothing but the tariff
    parameters, which are immutable.
    """

    def __init__(self, tariff: TariffParameters):
        self.tariff = tariff

    def compute(
        self,
        consumption_w: pd.Series,
        production_w: pd.Series,
        prices: PriceSeries,
        interval_minutes: float,
        capacity: Optional[CapacityTariffResult] = None,
    ) -> CostBreakdown:
        """Compute the cost breakdown for one time range.

        Args:
            consumption_w: Net consumption, average W per interval
            production_w: Production, average W per interval
            prices: Market prices matched to each interval
            interval_minutes: Interval width in minutes
            capacity: Capacity tariff to bill instead of the in-range peak

        Returns:
            CostBreakdown in EUR
        """
        validate_series(consumption_w, "consumption")
        validate_series(production_w, "production")
        tariff = self.tariff
        default_price = tariff.default_market_price_eur_per_mwh

        # Exporting intervals deliver nothing
        delivered_w = consumption_w.astype(float).clip(lower=0.0)
        delivered_kwh = interval_energy_kwh(delivered_w, interval_minutes)
        consumption_price = prices.prices_at(delivered_w.index, default_price)
        energy_cost = float((tariff.energy_cost_per_kwh(consumption_price) * delivered_kwh).sum())
        total_kwh_delivered = float(delivered_kwh.sum())
        peak_power_kw = float(delivered_w.max() / WATTS_PER_KILOWATT) if len(delivered_w) else 0.0

        returned_w = production_w.astype(float).clip(lower=0.0)
        returned_kwh = interval_energy_kwh(returned_w, interval_minutes)
        production_price = prices.prices_at(returned_w.index, default_price)
        energy_revenue = float((tariff.injection_revenue_per_kwh(production_price) * returned_kwh).sum())
        total_kwh_returned = float(returned_kwh.sum())

        # Flat-rate components
        distribution_cost = total_kwh_delivered * tariff.distribution_eur_per_kwh
        injection_cost = total_kwh_returned * tariff.injection_eur_per_kwh
        green_cert_cost = total_kwh_delivered * tariff.green_certificate_eur_per_kwh
        chp_cost = total_kwh_delivered * tariff.chp_eur_per_kwh
        fixed_cost = tariff.fixed_monthly_cost

        if capacity is not None:
            capacity_cost = capacity.monthly_cost
        else:
            capacity_cost = peak_power_kw * tariff.yearly_capacity_rate_eur_per_kw / MONTHS_PER_YEAR

        total_cost = (
            fixed_cost
            + energy_cost
            + distribution_cost
            + injection_cost
            + green_cert_cost
            + chp_cost
            + capacity_cost
        )

        return CostBreakdown(
            fixed_cost=fixed_cost,
            energy_cost=energy_cost,
            energy_revenue=energy_revenue,
            distribution_cost=distribution_cost,
            injection_cost=injection_cost,
            green_cert_cost=green_cert_cost,
            chp_cost=chp_cost,
            capacity_cost=capacity_cost,
            total_cost=total_cost,
            net_cost=total_cost - energy_revenue,
            total_kwh_delivered=total_kwh_delivered,
            total_kwh_returned=total_kwh_returned,
            peak_power_kw=peak_power_kw,
        )

    def price_breakdown(
        self, price_eur_per_mwh: Optional[float], timestamp=None
    ) -> PriceBreakdown:
        """Per-kWh consumption price at a market price (default when None)."""
        tariff = self.tariff
        is_default = price_eur_per_mwh is None
        price = tariff.default_market_price_eur_per_mwh if is_default else price_eur_per_mwh

        energy = tariff.energy_cost_per_kwh(price)
        total = (
            energy
            + tariff.distribution_eur_per_kwh
            + tariff.green_certificate_eur_per_kwh
            + tariff.chp_eur_per_kwh
        )

        return PriceBreakdown(
            timestamp=timestamp,
            market_price_eur_per_mwh=price,
            is_default_price=is_default,
            energy=energy,
            distribution=tariff.distribution_eur_per_kwh,
            green_certificate=tariff.green_certificate_eur_per_kwh,
            chp=tariff.chp_eur_per_kwh,
            total=total,
            injection_revenue=tariff.injection_revenue_per_kwh(price),
        )
