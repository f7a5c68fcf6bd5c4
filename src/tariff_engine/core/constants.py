"""Canonical column names, units, and sign conventions.

SIGN CONVENTIONS:
- grid import power: Positive = power drawn from the grid
- production power: Positive = solar generation
- net consumption: grid import - production (may be negative while exporting)

UNITS:
- Power: W (canonical inside the engine; kW meters are scaled on read)
- Energy: kWh (only at the energy-integration stage)
- Market prices: EUR/MWh (day-ahead reference price)
- Tariff rates: EUR/kWh, capacity rate EUR/kW/year
- Time: minutes (for windows), months (for capacity lookback)
- Timestamps: UTC, tz-aware

ENERGY INTEGRATION:
interval_kwh = power_w / 1000 * window_minutes / 60
"""

# Sample frame columns (long format, one row per timestamp and tag-set)
COL_TIMESTAMP = "timestamp"
COL_MEASUREMENT = "measurement"
COL_FIELD = "field"
COL_VALUE = "value"

# Well-known tag keys
TAG_SOURCE = "source"
TAG_DEVICE = "device"
TAG_METRIC = "metric"

REQUIRED_SAMPLE_COLUMNS = [
    COL_TIMESTAMP,
    COL_MEASUREMENT,
    COL_FIELD,
    COL_VALUE,
]

# Canonical metering schema
METERING_MEASUREMENT = "metering"
SOURCE_P1 = "p1"
SOURCE_SDM = "sdm"
SOURCE_SHELLY = "shelly"
SOURCE_BLITZ = "blitz"
DEVICE_SOURCES = [SOURCE_SDM, SOURCE_SHELLY, SOURCE_BLITZ, SOURCE_P1]
PV_INVERTER_DEVICE = "pv-inverter"
P1_POWER_FIELD = "PowerDelivered"
POWER_METRIC = "Power"

# Legacy (logical measurement) schema
LEGACY_CONSUMPTION_MEASUREMENT = "energy_consumption"
LEGACY_PRODUCTION_MEASUREMENT = "solar_production"

# Market prices
PRICE_MEASUREMENT = "electricity_price"
PRICE_FIELDS = ["price", "buy_price"]

WATTS_PER_KILOWATT = 1000.0
MINUTES_PER_HOUR = 60.0
MONTHS_PER_YEAR = 12

# Default windows
CAPACITY_WINDOW = "15m"
COST_WINDOW = "15m"
SUMMARY_WINDOW = "1h"
CURRENT_VALUES_LOOKBACK = "-5m"

# Relative start of each billing period (stop is always now)
PERIOD_STARTS = {
    "day": "-1d",
    "week": "-7d",
    "month": "-30d",
    "year": "-365d",
}

# Period shifts used for period-over-period comparison
PERIOD_DAYS = {
    "day": 1,
    "week": 7,
    "month": 30,
    "year": 365,
}

# "fluvius-peaks" is the older name of "capacity-peaks"
CAPACITY_PEAKS_CHARTS = ("capacity-peaks", "fluvius-peaks")
CHART_TYPES = ("consumption-production", "costs", *CAPACITY_PEAKS_CHARTS)
