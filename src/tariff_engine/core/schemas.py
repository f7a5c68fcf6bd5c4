"""Pydantic schemas for configuration, queries and results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class TimeRange(BaseModel):
    """Half-open time range [start, stop) in UTC."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    stop: datetime

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        if self.start >= self.stop:
            raise ValueError(f"Range start {self.start} must be before stop {self.stop}")
        return self


class SeriesQuery(BaseModel):
    """Typed query against the time-series store.

    Tag filters match any of the listed values per key; exclusions drop rows
    whose tag equals any listed value. With a window, rows are downsampled per
    tag-set using the aggregator. Without a window, rows are returned raw
    unless the aggregator is ``last``.
    """

    model_config = ConfigDict(frozen=True)

    measurement: str = Field(..., min_length=1)
    time_range: TimeRange
    tag_filters: dict[str, list[str]] = Field(default_factory=dict)
    fields: list[str] = Field(default_factory=list)
    window: Optional[str] = None
    aggregator: Optional[Literal["mean", "max", "min", "sum", "last"]] = None
    bucket: Optional[str] = None

    @field_validator("tag_filters", mode="before")
    @classmethod
    def normalize_tag_values(cls, v):
        """Accept a single string per tag key."""
        if v is None:
            return {}
        return {key: [values] if isinstance(values, str) else list(values) for key, values in v.items()}

    @field_validator("window")
    @classmethod
    def validate_window(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the window is a positive duration literal."""
        if v is None:
            return v
        from tariff_engine.core.errors import ValidationError
        from tariff_engine.core.timerange import pandas_freq

        try:
            pandas_freq(v)
        except ValidationError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def validate_aggregation(self) -> "SeriesQuery":
        if self.window is not None and self.aggregator is None:
            raise ValueError("A windowed query needs an aggregator")
        if self.window is None and self.aggregator not in (None, "last"):
            raise ValueError(f"Aggregator {self.aggregator!r} needs a window")
        return self


class MeterSpec(BaseModel):
    """Where one logical meter lives in the store and which unit it reports."""

    name: str
    measurement: str
    tags: dict[str, str] = Field(default_factory=dict)
    fields: list[str] = Field(default_factory=list)
    unit: Literal["W", "kW"] = "W"
    bucket: Optional[str] = None

    @property
    def scale_to_watts(self) -> float:
        return 1000.0 if self.unit == "kW" else 1.0

    def query(
        self,
        time_range: TimeRange,
        window: Optional[str] = None,
        aggregator: Optional[str] = None,
    ) -> SeriesQuery:
        return SeriesQuery(
            measurement=self.measurement,
            time_range=time_range,
            tag_filters=self.tags,
            fields=self.fields,
            window=window,
            aggregator=aggregator,
            bucket=self.bucket,
        )


class DeviceSourcesSpec(BaseModel):
    """Per-device power sources (sub-meters, smart plugs, chargers)."""

    measurement: str
    sources: list[str]
    tags: dict[str, str] = Field(default_factory=dict)
    fields: list[str] = Field(default_factory=list)
    bucket: Optional[str] = None


class PriceSpec(BaseModel):
    """Where market price samples live in the store."""

    measurement: str
    fields: list[str] = Field(default_factory=list)
    bucket: Optional[str] = None


class MeteringSchema(BaseModel):
    """Store layout for the meters the engine reads.

    ``derive_net`` is true when net consumption must be derived by joining grid
    import with production; otherwise the grid import meter already reports
    household consumption.
    """

    name: str
    grid_import: MeterSpec
    production: MeterSpec
    prices: PriceSpec
    devices: Optional[DeviceSourcesSpec] = None
    derive_net: bool = True


class TariffParameters(BaseModel):
    """Dynamic tariff with flat surcharges and a capacity component.

    Energy prices are linear in the market reference price (EUR/MWh):
    ``cost_per_kwh = coefficient * price + fixed``.
    """

    model_config = ConfigDict(frozen=True)

    fixed_monthly_fees_eur: dict[str, float] = Field(
        default_factory=lambda: {"supplier": 5.0},
        description="Fixed monthly subscription fees by name",
    )
    consumption_coefficient: float = Field(default=0.00102, ge=0, description="EUR/kWh per EUR/MWh")
    consumption_fixed_eur_per_kwh: float = Field(default=0.004)
    injection_coefficient: float = Field(default=0.00098, ge=0, description="EUR/kWh per EUR/MWh")
    injection_fixed_eur_per_kwh: float = Field(default=-0.015, description="Negative = feed-in penalty")
    distribution_eur_per_kwh: float = Field(default=0.0543, ge=0)
    injection_eur_per_kwh: float = Field(default=0.0, ge=0, description="Prosumer/injection grid fee")
    green_certificate_eur_per_kwh: float = Field(default=0.0117, ge=0)
    chp_eur_per_kwh: float = Field(default=0.0042, ge=0)
    yearly_capacity_rate_eur_per_kw: float = Field(default=56.93, ge=0)
    default_market_price_eur_per_mwh: float = Field(default=100.0)
    price_match_tolerance_minutes: float = Field(default=60.0, ge=0)

    @field_validator("fixed_monthly_fees_eur")
    @classmethod
    def validate_fees(cls, v: dict[str, float]) -> dict[str, float]:
        """Ensure fees are non-negative."""
        for name, fee in v.items():
            if fee < 0:
                raise ValueError(f"Fixed fee {name!r} must be non-negative, got {fee}")
        return v

    @property
    def fixed_monthly_cost(self) -> float:
        return float(sum(self.fixed_monthly_fees_eur.values()))

    def energy_cost_per_kwh(self, price_eur_per_mwh):
        """Consumption energy price for a market price (scalar or array)."""
        return self.consumption_coefficient * price_eur_per_mwh + self.consumption_fixed_eur_per_kwh

    def injection_revenue_per_kwh(self, price_eur_per_mwh):
        """Feed-in revenue for a market price (scalar or array)."""
        return self.injection_coefficient * price_eur_per_mwh + self.injection_fixed_eur_per_kwh


class PricePoint(BaseModel):
    """Market reference price sample."""

    timestamp: datetime
    price_eur_per_mwh: float


class PriceBreakdown(BaseModel):
    """Per-kWh composition of the consumption price at one market price."""

    timestamp: Optional[datetime] = None
    market_price_eur_per_mwh: float
    is_default_price: bool = False
    energy: float
    distribution: float
    green_certificate: float
    chp: float
    total: float
    injection_revenue: float
    currency: str = "EUR"
    unit: str = "kWh"


class CostBreakdown(BaseModel):
    """Cost and revenue over a time range (EUR).

    total_cost is the sum of every cost component except revenue;
    net_cost = total_cost - energy_revenue.
    """

    fixed_cost: float = 0.0
    energy_cost: float = 0.0
    energy_revenue: float = 0.0
    distribution_cost: float = 0.0
    injection_cost: float = 0.0
    green_cert_cost: float = 0.0
    chp_cost: float = 0.0
    capacity_cost: float = 0.0
    total_cost: float = 0.0
    net_cost: float = 0.0
    total_kwh_delivered: float = Field(default=0.0, ge=0)
    total_kwh_returned: float = Field(default=0.0, ge=0)
    peak_power_kw: float = Field(default=0.0, ge=0)


class CapacityTariffResult(BaseModel):
    """Capacity charge derived from the average of monthly peaks."""

    monthly_peaks_w: list[float] = Field(default_factory=list)
    average_peak_w: float = 0.0
    average_peak_kw: float = 0.0
    monthly_cost: float = 0.0
    yearly_cost: float = 0.0
    tariff_rate: float = Field(..., ge=0, description="EUR per kW per year")


class SeriesPoint(BaseModel):
    timestamp: datetime
    value: float


class MeterSeries(BaseModel):
    """Ordered samples of one logical meter (one tag-set)."""

    name: str
    tags: dict[str, str] = Field(default_factory=dict)
    points: list[SeriesPoint] = Field(default_factory=list)


class CurrentPower(BaseModel):
    """Latest power readings (W)."""

    timestamp: datetime
    grid_import_w: float = 0.0
    production_w: float = 0.0
    net_consumption_w: float = 0.0
    devices: dict[str, dict[str, float]] = Field(default_factory=dict)


class LoadpointRole(str, Enum):
    EV = "ev"
    HEAT_PUMP = "heat_pump"


class Loadpoint(BaseModel):
    """Charging or consumption point reported by the charging controller."""

    id: int
    title: str = ""
    power: float = Field(default=0.0, validation_alias=AliasChoices("power", "chargePower"))
    energy: float = Field(default=0.0, validation_alias=AliasChoices("energy", "chargedEnergy"))
    state_of_charge: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("state_of_charge", "stateOfCharge", "vehicleSoc", "soc"),
    )
    charging: bool = False
    connected: bool = False
    mode: str = "off"
    vehicle: Optional[str] = Field(default=None, validation_alias=AliasChoices("vehicle", "vehicleTitle"))
    role: LoadpointRole = LoadpointRole.EV


class ChargingSession(BaseModel):
    charged_energy: float = Field(default=0.0, validation_alias=AliasChoices("charged_energy", "chargedEnergy"))
    duration: float = 0.0
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt", "created")
    )
    loadpoint: Optional[str] = None


class ChargingStatus(BaseModel):
    enabled: bool
    available: bool
    loadpoints: list[Loadpoint] = Field(default_factory=list)


class ChargingCost(BaseModel):
    total_cost: float
    total_energy_kwh: float
    sessions: int
    average_price_eur_per_kwh: float


class EnergyTotals(BaseModel):
    """Energy totals over a range (kWh)."""

    consumption_kwh: float = 0.0
    production_kwh: float = 0.0
    self_consumption_kwh: float = 0.0
    grid_import_kwh: float = 0.0
    grid_export_kwh: float = 0.0


class DashboardOverview(BaseModel):
    current: CurrentPower
    price: PriceBreakdown
    today: EnergyTotals
    month_costs: CostBreakdown
    capacity: CapacityTariffResult
    charging: ChargingStatus


class PeriodSummary(BaseModel):
    period: str
    consumption_kwh: float
    production_kwh: float
    self_consumption_ratio: float
    net_balance_kwh: float = Field(..., description="Production - consumption")
    costs: CostBreakdown


class ChartPoint(BaseModel):
    timestamp: datetime
    consumption_kw: float = 0.0
    production_kw: float = 0.0


class CapacityPeaks(BaseModel):
    monthly_peaks_kw: list[float] = Field(default_factory=list)
    average_peak_kw: float = 0.0


class PeriodComparison(BaseModel):
    """Absolute net consumption of a period against the one before it (W sums)."""

    period: str
    current: float
    previous: float
    change: float
    percentage_change: Optional[float] = Field(default=None, description="None when the previous total is 0")
    trend: Literal["up", "down", "flat"]


class HourlyAverage(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    average_w: float


class PeakHours(BaseModel):
    hourly_averages_w: list[float]
    peak_hours: list[HourlyAverage]
    recommendation: str


class Insight(BaseModel):
    value: float
    recommendation: str


class Insights(BaseModel):
    capacity: Insight
    self_consumption: Insight
    costs: Insight


class BundleMetadata(BaseModel):
    """Metadata written next to saved results."""

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tariff_engine_version: str
    metering_schema: str
