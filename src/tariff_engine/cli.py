"""Command-line interface for the tariff engine."""

import asyncio
import logging
from typing import Optional

import pandas as pd
import typer

from tariff_engine import __version__

DEFAULT_TIMEZONE = "Europe/Brussels"

app = typer.Typer(
    help="Dynamic tariff, capacity tariff and self-consumption calculations on run bundles",
    no_args_is_help=True,
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open(bundle_path: str, timezone: str = DEFAULT_TIMEZONE):
    """Load a bundle and wire the services over it."""
    from tariff_engine.io.bundle import load_bundle
    from tariff_engine.services.container import Services

    tariff, schema, source = load_bundle(bundle_path)
    return Services(source, schema, tariff, timezone)


def _reference_time(services, now: Optional[str]) -> pd.Timestamp:
    """``--now`` when given, else just after the bundle's last sample."""
    from tariff_engine.core.constants import COL_TIMESTAMP
    from tariff_engine.core.timerange import ensure_utc

    if now is not None:
        return ensure_utc(now)
    return services.source.samples[COL_TIMESTAMP].max() + pd.Timedelta(seconds=1)


def _run(bundle_path: str, name: str, save: bool, compute, timezone: str = DEFAULT_TIMEZONE):
    """Run one bundle command, print failures in red and optionally save the result."""
    try:
        services = _open(bundle_path, timezone)
        result = asyncio.run(compute(services))
    except Exception as e:
        typer.secho(f"✗ {name} failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    if save:
        from tariff_engine.io.bundle import write_result

        output = write_result(bundle_path, name, result, services.schema.name)
        typer.secho(f"✓ Saved {output}", fg=typer.colors.GREEN)
    return result


@app.command()
def version():
    """Show tariff engine version."""
    typer.echo(f"Tariff Engine v{__version__}")


@app.command()
def validate(bundle_path: str):
    """Validate a run bundle.

    Args:
        bundle_path: Path to bundle directory
    """
    from tariff_engine.io.bundle import validate_bundle

    try:
        validate_bundle(bundle_path)
        typer.secho(f"✓ Bundle at {bundle_path} is valid", fg=typer.colors.GREEN)
    except Exception as e:
        typer.secho(f"✗ Bundle validation failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


@app.command()
def capacity(
    bundle_path: str,
    months: int = typer.Option(12, help="Lookback in calendar months"),
    timezone: str = typer.Option(DEFAULT_TIMEZONE, help="Timezone bounding the months"),
    now: Optional[str] = typer.Option(None, help="Reference time (default: last sample)"),
    save: bool = typer.Option(False, help="Write the result into the bundle"),
):
    """Capacity tariff from the monthly grid import peaks."""

    async def compute(services):
        return await services.tariff.capacity_tariff(months, _reference_time(services, now))

    result = _run(bundle_path, "capacity", save, compute, timezone)

    typer.echo(f"\nMonthly peaks ({len(result.monthly_peaks_w)}):")
    for peak in result.monthly_peaks_w:
        typer.echo(f"  {peak / 1000:8.3f} kW")
    typer.echo(f"\nAverage peak:     {result.average_peak_kw:.3f} kW")
    typer.echo(f"Rate:             €{result.tariff_rate:.2f} /kW/year")
    typer.echo(f"Monthly cost:     €{result.monthly_cost:.2f}")
    typer.echo(f"Yearly cost:      €{result.yearly_cost:.2f}")


def _print_costs(result):
    typer.echo("\n" + "=" * 60)
    typer.echo("COST BREAKDOWN")
    typer.echo("=" * 60)

    typer.echo("\nEnergy:")
    typer.echo(f"  Delivered:        {result.total_kwh_delivered:.2f} kWh")
    typer.echo(f"  Returned:         {result.total_kwh_returned:.2f} kWh")
    typer.echo(f"  Peak power:       {result.peak_power_kw:.2f} kW")

    typer.echo("\nCosts:")
    typer.echo(f"  Fixed:            €{result.fixed_cost:.2f}")
    typer.echo(f"  Energy:           €{result.energy_cost:.2f}")
    typer.echo(f"  Distribution:     €{result.distribution_cost:.2f}")
    typer.echo(f"  Injection:        €{result.injection_cost:.2f}")
    typer.echo(f"  Green cert.:      €{result.green_cert_cost:.2f}")
    typer.echo(f"  CHP:              €{result.chp_cost:.2f}")
    typer.echo(f"  Capacity:         €{result.capacity_cost:.2f}")
    typer.echo(f"  Total:            €{result.total_cost:.2f}")

    typer.echo(f"\nRevenue:           €{result.energy_revenue:.2f}")
    typer.echo(f"Net cost:          €{result.net_cost:.2f}")
    typer.echo("\n" + "=" * 60 + "\n")


@app.command()
def costs(
    bundle_path: str,
    start: str = typer.Option("-30d", help="Range start (relative or ISO)"),
    stop: str = typer.Option("now()", help="Range stop (relative or ISO)"),
    window: str = typer.Option("15m", help="Integration window"),
    now: Optional[str] = typer.Option(None, help="Reference time (default: last sample)"),
    save: bool = typer.Option(False, help="Write the result into the bundle"),
):
    """Cost breakdown for a time range."""
    from tariff_engine.core.timerange import resolve_time_range

    async def compute(services):
        reference = _reference_time(services, now)
        return await services.tariff.costs(resolve_time_range(start, stop, reference), window, now=reference)

    _print_costs(_run(bundle_path, "costs", save, compute))


@app.command()
def breakdown(
    bundle_path: str,
    period: str = typer.Argument(..., help="day, week, month or year"),
    now: Optional[str] = typer.Option(None, help="Reference time (default: last sample)"),
    save: bool = typer.Option(False, help="Write the result into the bundle"),
):
    """Cost breakdown for a billing period."""

    async def compute(services):
        return await services.tariff.breakdown(period, _reference_time(services, now))

    _print_costs(_run(bundle_path, f"breakdown_{period}", save, compute))


@app.command("self-consumption")
def self_consumption(
    bundle_path: str,
    start: str = typer.Option("-30d", help="Range start (relative or ISO)"),
    stop: str = typer.Option("now()", help="Range stop (relative or ISO)"),
    now: Optional[str] = typer.Option(None, help="Reference time (default: last sample)"),
):
    """Self-consumed share of solar production."""
    from tariff_engine.core.timerange import resolve_time_range

    async def compute(services):
        time_range = resolve_time_range(start, stop, _reference_time(services, now))
        return await services.tariff.self_consumption_ratio(time_range)

    ratio = _run(bundle_path, "self_consumption", False, compute)
    typer.echo(f"Self-consumption: {ratio:.1f}%")


@app.command("current-price")
def current_price(
    bundle_path: str,
    now: Optional[str] = typer.Option(None, help="Reference time (default: last sample)"),
):
    """Per-kWh consumption price at the latest market price."""

    async def compute(services):
        return await services.tariff.current_price(_reference_time(services, now))

    price = _run(bundle_path, "current_price", False, compute)

    label = "default" if price.is_default_price else f"{price.timestamp:%Y-%m-%d %H:%M}"
    typer.echo(f"Market price:      €{price.market_price_eur_per_mwh:.2f} /MWh ({label})")
    typer.echo(f"  Energy:          €{price.energy:.5f} /kWh")
    typer.echo(f"  Distribution:    €{price.distribution:.5f} /kWh")
    typer.echo(f"  Green cert.:     €{price.green_certificate:.5f} /kWh")
    typer.echo(f"  CHP:             €{price.chp:.5f} /kWh")
    typer.echo(f"  Total:           €{price.total:.5f} /kWh")
    typer.echo(f"Injection revenue: €{price.injection_revenue:.5f} /kWh")


if __name__ == "__main__":
    app()
