"""Tariff engine: metering aggregation, dynamic tariff costs and capacity billing."""

__version__ = "0.1.0"
