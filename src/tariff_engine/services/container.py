"""Wiring of the services over one store, schema and tariff."""

import logging
from typing import Optional

from tariff_engine.charging.client import ChargingClient
from tariff_engine.core.schemas import MeteringSchema, TariffParameters
from tariff_engine.metering.aggregate import MeterAggregator
from tariff_engine.metering.schema import schema_by_name
from tariff_engine.services.analytics import AnalyticsService
from tariff_engine.services.dashboard import DashboardService
from tariff_engine.services.prices import MarketPriceFeed
from tariff_engine.services.tariff import TariffService
from tariff_engine.settings import AppSettings
from tariff_engine.store.interface import TimeSeriesSource

logger = logging.getLogger(__name__)


class Services:
    """All request-scoped services sharing one source, schema and tariff."""

    def __init__(
        self,
        source: TimeSeriesSource,
        schema: MeteringSchema,
        tariff: TariffParameters,
        timezone: str = "UTC",
        charging: Optional[ChargingClient] = None,
    ):
        self.source = source
        self.schema = schema
        self.timezone = timezone
        self.aggregator = MeterAggregator(source, schema)
        self.prices = MarketPriceFeed(source, schema.prices, tariff)
        self.tariff = TariffService(self.aggregator, self.prices, tariff, timezone)
        self.charging = charging
        self.dashboard = DashboardService(self.aggregator, self.tariff, charging)
        self.analytics = AnalyticsService(self.aggregator, self.tariff, timezone)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "Services":
        """Services over InfluxDB as configured by the environment."""
        from tariff_engine.store.influx import InfluxSource

        influx = settings.influx
        schema = schema_by_name(
            settings.metering_schema,
            influx.metering_measurement,
            influx.bucket,
            influx.price_bucket or influx.bucket,
        )
        logger.info(
            "Using InfluxDB %s (org %s, bucket %s) with the %s metering schema",
            influx.url,
            influx.org,
            influx.bucket,
            schema.name,
        )
        return cls(
            InfluxSource(influx),
            schema,
            settings.tariff,
            settings.timezone,
            ChargingClient(settings.charging),
        )
