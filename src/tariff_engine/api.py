"""HTTP surface (FastAPI).

Routes are thin: they parse arguments, delegate to the services and map the
error kinds to status codes. Overview and insights responses are cached for a
short fixed time and never invalidated.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

import pandas as pd
from cachetools import TTLCache
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tariff_engine import __version__
from tariff_engine.charging.client import ChargingClient
from tariff_engine.core.constants import COST_WINDOW, SUMMARY_WINDOW
from tariff_engine.core.errors import NotFoundError, UpstreamQueryError, ValidationError
from tariff_engine.core.schemas import (
    CapacityTariffResult,
    ChargingCost,
    ChargingSession,
    ChargingStatus,
    CostBreakdown,
    CurrentPower,
    DashboardOverview,
    Insights,
    Loadpoint,
    MeterSeries,
    PeakHours,
    PeriodComparison,
    PeriodSummary,
    PriceBreakdown,
    PricePoint,
    SeriesPoint,
    TariffParameters,
)
from tariff_engine.core.timerange import resolve_time_range
from tariff_engine.core.validate import validate_device_source, validate_period
from tariff_engine.services.container import Services
from tariff_engine.settings import AppSettings

logger = logging.getLogger(__name__)

OVERVIEW_TTL_SECONDS = 60.0
ANALYTICS_TTL_SECONDS = 300.0


async def cached(cache: TTLCache, key: str, compute: Callable[[], Awaitable[Any]]) -> Any:
    """Return the cached value for ``key``, computing and storing it when absent or expired."""
    try:
        return cache[key]
    except KeyError:
        pass

    value = await compute()
    cache[key] = value
    return value


def series_points(series: pd.Series) -> list[SeriesPoint]:
    return [SeriesPoint(timestamp=ts.to_pydatetime(), value=float(v)) for ts, v in series.items()]


def _services(request: Request) -> Services:
    return request.app.state.services


def _charging(request: Request) -> ChargingClient:
    charging = _services(request).charging
    if charging is None:
        raise NotFoundError("Charging controller is not configured")
    return charging


def _caches(request: Request) -> dict[str, TTLCache]:
    return request.app.state.caches


tariff_router = APIRouter(prefix="/tariff", tags=["tariff"])
dashboard_router = APIRouter(prefix="/dashboard", tags=["dashboard"])
analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])
metering_router = APIRouter(prefix="/metering", tags=["metering"])
charging_router = APIRouter(prefix="/charging", tags=["charging"])


@tariff_router.get("/fluvius", response_model=CapacityTariffResult)
async def capacity_tariff(request: Request, months: int = Query(12, ge=1, le=36)):
    return await _services(request).tariff.capacity_tariff(months)


@tariff_router.get("/costs", response_model=CostBreakdown)
async def costs(request: Request, start: str = "-30d", stop: str = "now()", window: str = COST_WINDOW):
    return await _services(request).tariff.costs(resolve_time_range(start, stop), window)


@tariff_router.get("/breakdown/{period}", response_model=CostBreakdown)
async def breakdown(request: Request, period: str):
    validate_period(period)
    return await _services(request).tariff.breakdown(period)


@tariff_router.get("/self-consumption")
async def self_consumption(request: Request, start: str = "-30d", stop: str = "now()"):
    time_range = resolve_time_range(start, stop)
    ratio = await _services(request).tariff.self_consumption_ratio(time_range)
    return {"start": time_range.start, "stop": time_range.stop, "ratio": ratio}


@tariff_router.get("/current-price", response_model=PriceBreakdown)
async def current_price(request: Request):
    return await _services(request).tariff.current_price()


@tariff_router.get("/forecast", response_model=list[PricePoint])
async def forecast(request: Request):
    return await _services(request).tariff.forecast()


@tariff_router.get("/rates", response_model=TariffParameters)
async def rates(request: Request):
    return _services(request).tariff.rates()


@dashboard_router.get("/overview", response_model=DashboardOverview)
async def overview(request: Request):
    services = _services(request)
    return await cached(_caches(request)["overview"], "dashboard-overview", services.dashboard.overview)


@dashboard_router.get("/summary/{period}", response_model=PeriodSummary)
async def summary(request: Request, period: str):
    return await _services(request).dashboard.summary(period)


@dashboard_router.get("/chart/{chart_type}")
async def chart(
    request: Request,
    chart_type: str,
    start: str = "-24h",
    stop: str = "now()",
    window: str = SUMMARY_WINDOW,
):
    return await _services(request).dashboard.chart(chart_type, start, stop, window)


@analytics_router.get("/insights", response_model=Insights)
async def insights(request: Request):
    services = _services(request)
    return await cached(_caches(request)["analytics"], "analytics-insights", services.analytics.insights)


@analytics_router.get("/comparison", response_model=PeriodComparison)
async def comparison(request: Request, period: str = "day"):
    return await _services(request).analytics.comparison(period)


@analytics_router.get("/peak-times", response_model=PeakHours)
async def peak_times(request: Request, days: int = Query(30, ge=1, le=365)):
    return await _services(request).analytics.peak_hours(days)


@metering_router.get("/net-consumption", response_model=list[SeriesPoint])
async def net_consumption(request: Request, start: str = "-24h", stop: str = "now()", window: str = COST_WINDOW):
    series = await _services(request).aggregator.net_consumption(resolve_time_range(start, stop), window)
    return series_points(series)


@metering_router.get("/production", response_model=list[SeriesPoint])
async def production(request: Request, start: str = "-24h", stop: str = "now()", window: str = COST_WINDOW):
    series = await _services(request).aggregator.production(resolve_time_range(start, stop), window)
    return series_points(series)


@metering_router.get("/prices", response_model=list[PricePoint])
async def prices(request: Request, start: str = "-24h", stop: str = "now()"):
    series = await _services(request).prices.fetch(resolve_time_range(start, stop), pad=False)
    return series.to_points()


@metering_router.get("/current", response_model=CurrentPower)
async def current(request: Request):
    return await _services(request).aggregator.current_power()


@metering_router.get("/overview", response_model=list[MeterSeries])
async def power_overview(request: Request, start: str = "-1h", stop: str = "now()", window: str = "1m"):
    return await _services(request).aggregator.power_overview(resolve_time_range(start, stop), window)


@metering_router.get("/devices/{source}")
async def devices(request: Request, source: str, start: str = "-1d"):
    validate_device_source(source)
    names = await _services(request).aggregator.devices(source, resolve_time_range(start))
    return {"source": source, "devices": names}


@charging_router.get("/status", response_model=ChargingStatus)
async def charging_status(request: Request):
    return await _charging(request).status()


@charging_router.get("/loadpoint/{loadpoint_id}", response_model=Loadpoint)
async def loadpoint(request: Request, loadpoint_id: int):
    return await _charging(request).loadpoint(loadpoint_id)


@charging_router.get("/sessions", response_model=list[ChargingSession])
async def sessions(request: Request, days: int = Query(30, ge=1)):
    return await _charging(request).sessions(days)


@charging_router.get("/heatpump", response_model=list[Loadpoint])
async def heat_pumps(request: Request):
    return await _charging(request).heat_pumps()


@charging_router.get("/ev", response_model=list[Loadpoint])
async def ev_loadpoints(request: Request):
    return await _charging(request).ev_loadpoints()


@charging_router.get("/charging-costs", response_model=ChargingCost)
async def charging_costs(
    request: Request,
    days: int = Query(30, ge=1),
    average_price: float = Query(0.30, ge=0, alias="averagePrice"),
):
    client = _charging(request)
    return client.charging_cost(await client.sessions(days), average_price)


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    return handler


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed query or path parameters in the common error shape."""
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    logger.info("%s %s rejected: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the application.

    Args:
        services: Services to serve; built from the environment at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is None:
            app.state.services = Services.from_settings(AppSettings.from_env())
        yield

    app = FastAPI(title="Tariff Engine API", version=__version__, lifespan=lifespan)
    app.state.services = services
    app.state.caches = {
        "overview": TTLCache(maxsize=1, ttl=OVERVIEW_TTL_SECONDS),
        "analytics": TTLCache(maxsize=1, ttl=ANALYTICS_TTL_SECONDS),
    }

    for router in (tariff_router, dashboard_router, analytics_router, metering_router, charging_router):
        app.include_router(router, prefix="/api")

    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(ValidationError, _error_handler(400))
    app.add_exception_handler(NotFoundError, _error_handler(404))
    app.add_exception_handler(UpstreamQueryError, _error_handler(502))
    app.add_exception_handler(Exception, _error_handler(500))

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app
