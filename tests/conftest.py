"""Shared fixtures: schemas and tariffs."""

import pytest

from tariff_engine.core.schemas import TariffParameters
from tariff_engine.metering.schema import canonical_schema, legacy_schema


@pytest.fixture
def tariff():
    """Default tariff parameters."""
    return TariffParameters()


@pytest.fixture
def canonical():
    """Canonical metering schema."""
    return canonical_schema()


@pytest.fixture
def legacy():
    """Legacy metering schema."""
    return legacy_schema()
