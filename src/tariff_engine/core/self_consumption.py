"""Self-consumption ratio of solar production."""

import pandas as pd


def self_consumption_ratio(production: pd.Series, consumption: pd.Series) -> float:
    """Share of production consumed on site, in percent.

    Both series must share the same window so their sums are comparable.
    Self-consumption cannot exceed total production nor total consumption.

    Returns:
        Ratio in [0, 100]; 0 when there is no production
    """
    total_production = float(production.sum())
    total_consumption = float(consumption.sum())

    if total_production <= 0:
        return 0.0

    self_consumed = max(0.0, min(total_production, total_consumption))
    return self_consumed / total_production * 100
