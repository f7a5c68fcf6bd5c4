"""Capacity tariff math.

The capacity tariff bills the average of the monthly peak demands over a
trailing window rather than the single highest peak, which smooths the charge
against one-off spikes. A monthly peak is the highest 15-minute average power
within a calendar month.
"""

from typing import Sequence

import pandas as pd

from tariff_engine.core.constants import MONTHS_PER_YEAR, WATTS_PER_KILOWATT
from tariff_engine.core.schemas import CapacityTariffResult


def monthly_peaks(power_w: pd.Series, timezone: str = "UTC") -> pd.Series:
    """Highest value per calendar month.

    Args:
        power_w: Power samples (already averaged per 15-minute window)
        timezone: Timezone whose calendar months bound the peaks

    Returns:
        Peak W indexed by month start, months without samples omitted
    """
    if power_w.empty:
        return pd.Series([], index=pd.DatetimeIndex([], tz=timezone), dtype=float)

    if power_w.index.tz is None:
        power_w = power_w.tz_localize("UTC")
    local = power_w.tz_convert(timezone)
    resampled = local.resample("MS")
    peaks = resampled.max()
    return peaks[resampled.count() > 0].astype(float)


def capacity_tariff(peaks_w: Sequence[float], yearly_rate_eur_per_kw: float) -> CapacityTariffResult:
    """Capacity charge for a sequence of monthly peaks.

    Args:
        peaks_w: Monthly peaks in W, oldest first
        yearly_rate_eur_per_kw: Capacity rate in EUR per kW per year

    Returns:
        CapacityTariffResult; all zero (with the configured rate) when empty
    """
    peaks = [float(p) for p in peaks_w]
    if not peaks:
        return CapacityTariffResult(tariff_rate=yearly_rate_eur_per_kw)

    average_peak_w = sum(peaks) / len(peaks)
    average_peak_kw = average_peak_w / WATTS_PER_KILOWATT
    monthly_cost = average_peak_kw * yearly_rate_eur_per_kw / MONTHS_PER_YEAR

    return CapacityTariffResult(
        monthly_peaks_w=peaks,
        average_peak_w=average_peak_w,
        average_peak_kw=average_peak_kw,
        monthly_cost=monthly_cost,
        yearly_cost=monthly_cost * MONTHS_PER_YEAR,
        tariff_rate=yearly_rate_eur_per_kw,
    )
