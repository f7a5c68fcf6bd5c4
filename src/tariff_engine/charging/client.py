"""Client for the vehicle-charging controller (evcc-compatible HTTP API)."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from tariff_engine.core.errors import NotFoundError, UpstreamQueryError
from tariff_engine.core.schemas import ChargingCost, ChargingSession, ChargingStatus, Loadpoint, LoadpointRole
from tariff_engine.settings import ChargingSettings

logger = logging.getLogger(__name__)


class ChargingClient:
    """Reads loadpoints and charging sessions from the charging controller.

    Loadpoint roles come from an explicit ``role`` in the payload, else from
    the configured title -> role mapping, else EV.
    """

    def __init__(self, settings: ChargingSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the client.

        Args:
            settings: Controller URL, timeout and loadpoint roles
            transport: Optional httpx transport (e.g. MockTransport in tests)
        """
        self.settings = settings
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    async def _get(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.url,
                timeout=self.settings.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.get(path, params=params)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamQueryError(f"Charging controller request {path} failed: {e}") from e

    async def get_state(self) -> list[Loadpoint]:
        """Current loadpoints.

        Raises:
            UpstreamQueryError: If the controller is unreachable or answers garbage
        """
        payload = await self._get("/api/state")
        if isinstance(payload, dict) and isinstance(payload.get("result"), dict):
            payload = payload["result"]
        if not isinstance(payload, dict):
            raise UpstreamQueryError("Charging controller state is not an object")

        loadpoints = []
        for position, raw in enumerate(payload.get("loadpoints") or [], start=1):
            raw = dict(raw)
            raw.setdefault("id", position)
            if "role" not in raw:
                raw["role"] = self.settings.loadpoint_roles.get(raw.get("title", ""), LoadpointRole.EV)
            try:
                loadpoints.append(Loadpoint.model_validate(raw))
            except PydanticValidationError as e:
                raise UpstreamQueryError(f"Invalid loadpoint {position}: {e}") from e
        return loadpoints

    async def status(self) -> ChargingStatus:
        """Controller status; an unreachable controller is reported, not raised."""
        if not self.enabled:
            return ChargingStatus(enabled=False, available=False)

        try:
            loadpoints = await self.get_state()
        except UpstreamQueryError as e:
            logger.warning("Charging controller unavailable: %s", e)
            return ChargingStatus(enabled=True, available=False)

        return ChargingStatus(enabled=True, available=True, loadpoints=loadpoints)

    async def loadpoint(self, loadpoint_id: int) -> Loadpoint:
        """Loadpoint by id.

        Raises:
            NotFoundError: If no loadpoint has this id
        """
        status = await self.status()
        for loadpoint in status.loadpoints:
            if loadpoint.id == loadpoint_id:
                return loadpoint
        raise NotFoundError(f"Loadpoint {loadpoint_id} not found")

    async def sessions(self, since_days: int = 30) -> list[ChargingSession]:
        """Charging sessions of the last ``since_days`` days."""
        if not self.enabled:
            return []

        payload = await self._get("/api/sessions", params={"since": f"{since_days}d"})
        if isinstance(payload, dict):
            payload = payload.get("result") or []
        try:
            return [ChargingSession.model_validate(raw) for raw in payload]
        except (PydanticValidationError, TypeError) as e:
            raise UpstreamQueryError(f"Invalid charging sessions: {e}") from e

    async def heat_pumps(self) -> list[Loadpoint]:
        status = await self.status()
        return [lp for lp in status.loadpoints if lp.role == LoadpointRole.HEAT_PUMP]

    async def ev_loadpoints(self) -> list[Loadpoint]:
        status = await self.status()
        return [lp for lp in status.loadpoints if lp.role == LoadpointRole.EV]

    @staticmethod
    def charging_cost(sessions: list[ChargingSession], average_price_eur_per_kwh: float) -> ChargingCost:
        """Cost of charged energy at a flat average price."""
        energy = sum(session.charged_energy for session in sessions)
        return ChargingCost(
            total_cost=energy * average_price_eur_per_kwh,
            total_energy_kwh=energy,
            sessions=len(sessions),
            average_price_eur_per_kwh=average_price_eur_per_kwh,
        )
