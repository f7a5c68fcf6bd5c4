"""Metering schemas: where each meter lives in the store.

The canonical schema keeps every device in one measurement tagged by
``source``/``device``/``metric``; the P1 grid meter reports kW and the
PV-inverter sub-meter reports W. The legacy schema stored logical
``energy_consumption``/``solar_production`` measurements where consumption is
already the household series, so no net join is derived.
"""

from typing import Optional

from tariff_engine.core.constants import (
    DEVICE_SOURCES,
    LEGACY_CONSUMPTION_MEASUREMENT,
    LEGACY_PRODUCTION_MEASUREMENT,
    METERING_MEASUREMENT,
    P1_POWER_FIELD,
    POWER_METRIC,
    PRICE_FIELDS,
    PRICE_MEASUREMENT,
    PV_INVERTER_DEVICE,
    SOURCE_P1,
    SOURCE_SDM,
    TAG_DEVICE,
    TAG_METRIC,
    TAG_SOURCE,
)
from tariff_engine.core.schemas import DeviceSourcesSpec, MeterSpec, MeteringSchema, PriceSpec


def canonical_schema(
    measurement: str = METERING_MEASUREMENT,
    bucket: Optional[str] = None,
    price_bucket: Optional[str] = None,
) -> MeteringSchema:
    return MeteringSchema(
        name="canonical",
        grid_import=MeterSpec(
            name="grid_import",
            measurement=measurement,
            tags={TAG_SOURCE: SOURCE_P1},
            fields=[P1_POWER_FIELD],
            unit="kW",
            bucket=bucket,
        ),
        production=MeterSpec(
            name="production",
            measurement=measurement,
            tags={TAG_SOURCE: SOURCE_SDM, TAG_DEVICE: PV_INVERTER_DEVICE, TAG_METRIC: POWER_METRIC},
            fields=["value"],
            unit="W",
            bucket=bucket,
        ),
        prices=PriceSpec(measurement=PRICE_MEASUREMENT, fields=PRICE_FIELDS, bucket=price_bucket),
        devices=DeviceSourcesSpec(
            measurement=measurement,
            sources=[source for source in DEVICE_SOURCES if source != SOURCE_P1],
            tags={TAG_METRIC: POWER_METRIC},
            fields=["value"],
            bucket=bucket,
        ),
        derive_net=True,
    )


def legacy_schema(bucket: Optional[str] = None, price_bucket: Optional[str] = None) -> MeteringSchema:
    return MeteringSchema(
        name="legacy",
        grid_import=MeterSpec(
            name="consumption",
            measurement=LEGACY_CONSUMPTION_MEASUREMENT,
            fields=["power"],
            unit="W",
            bucket=bucket,
        ),
        production=MeterSpec(
            name="production",
            measurement=LEGACY_PRODUCTION_MEASUREMENT,
            fields=["power"],
            unit="W",
            bucket=bucket,
        ),
        prices=PriceSpec(measurement=PRICE_MEASUREMENT, fields=PRICE_FIELDS, bucket=price_bucket),
        devices=None,
        derive_net=False,
    )


def schema_by_name(
    name: str,
    measurement: str = METERING_MEASUREMENT,
    bucket: Optional[str] = None,
    price_bucket: Optional[str] = None,
) -> MeteringSchema:
    if name == "canonical":
        return canonical_schema(measurement, bucket, price_bucket)
    if name == "legacy":
        return legacy_schema(bucket, price_bucket)
    raise ValueError(f"Unknown metering schema: {name}")
