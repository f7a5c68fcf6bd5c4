"""Process settings read from the environment."""

import os
from pathlib import Path
from typing import Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from tariff_engine.core.constants import METERING_MEASUREMENT
from tariff_engine.core.errors import ConfigurationError
from tariff_engine.core.schemas import LoadpointRole, TariffParameters


class InfluxSettings(BaseModel):
    """InfluxDB connection settings."""

    url: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    org: str = Field(..., min_length=1)
    bucket: str = Field(default="energy")
    price_bucket: Optional[str] = Field(default=None, description="Defaults to the main bucket")
    metering_measurement: str = Field(default=METERING_MEASUREMENT)
    timeout_ms: int = Field(default=30_000, gt=0)


class ChargingSettings(BaseModel):
    """Charging controller (evcc-compatible) settings."""

    enabled: bool = False
    url: str = "http://localhost:7070"
    timeout_seconds: float = Field(default=5.0, gt=0)
    loadpoint_roles: dict[str, LoadpointRole] = Field(
        default_factory=dict, description="Loadpoint title -> role"
    )


class AppSettings(BaseModel):
    """Everything needed to wire the services for one process."""

    influx: InfluxSettings
    charging: ChargingSettings = Field(default_factory=ChargingSettings)
    tariff: TariffParameters = Field(default_factory=TariffParameters)
    metering_schema: Literal["canonical", "legacy"] = "canonical"
    timezone: str = "Europe/Brussels"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone is known."""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppSettings":
        """Read settings from environment variables.

        Raises:
            ConfigurationError: If store credentials are missing or a value is invalid
        """
        env = os.environ if environ is None else environ

        missing = [var for var in ("INFLUX_URL", "INFLUX_TOKEN", "INFLUX_ORG") if not env.get(var, "").strip()]
        if missing:
            raise ConfigurationError(f"InfluxDB configuration missing: {', '.join(missing)}")

        influx = {
            "url": env["INFLUX_URL"].strip(),
            "token": env["INFLUX_TOKEN"].strip(),
            "org": env["INFLUX_ORG"].strip(),
            "bucket": env.get("INFLUX_BUCKET", "energy"),
            "price_bucket": env.get("INFLUX_PRICE_BUCKET") or None,
            "metering_measurement": env.get("INFLUX_METERING_MEASUREMENT", METERING_MEASUREMENT),
        }
        if env.get("INFLUX_TIMEOUT_MS"):
            influx["timeout_ms"] = env["INFLUX_TIMEOUT_MS"]

        charging = {
            "enabled": env.get("EVCC_ENABLED", "false").lower() == "true",
            "url": env.get("EVCC_URL", "http://localhost:7070"),
        }
        if env.get("EVCC_TIMEOUT"):
            charging["timeout_seconds"] = env["EVCC_TIMEOUT"]

        try:
            tariff = load_tariff(env["TARIFF_CONFIG"]) if env.get("TARIFF_CONFIG") else TariffParameters()
            if env.get("EVCC_ROLES_CONFIG"):
                charging["loadpoint_roles"] = _load_yaml(env["EVCC_ROLES_CONFIG"])
            return cls(
                influx=InfluxSettings(**influx),
                charging=ChargingSettings(**charging),
                tariff=tariff,
                metering_schema=env.get("METERING_SCHEMA", "canonical"),
                timezone=env.get("LOCAL_TIMEZONE", "Europe/Brussels"),
            )
        except (ValueError, OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def _load_yaml(path: str | Path) -> dict:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_tariff(path: str | Path) -> TariffParameters:
    """Load tariff parameters from a YAML file; omitted keys keep their defaults."""
    return TariffParameters(**_load_yaml(path))
