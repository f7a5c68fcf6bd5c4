"""Test the charging controller client against a mocked HTTP transport."""

import asyncio

import httpx
import pytest

from tariff_engine.charging.client import ChargingClient
from tariff_engine.core.errors import NotFoundError, UpstreamQueryError
from tariff_engine.core.schemas import ChargingSession, LoadpointRole
from tariff_engine.settings import ChargingSettings

STATE = {
    "result": {
        "loadpoints": [
            {"title": "Garage", "chargePower": 7400.0, "chargedEnergy": 12.5, "vehicleSoc": 64, "charging": True,
             "connected": True, "mode": "pv"},
            {"title": "Warmtepomp", "chargePower": 1800.0, "charging": False, "connected": True, "mode": "now"},
            {"title": "Carport", "role": "heat_pump", "chargePower": 0.0},
        ]
    }
}


def _transport(requests: list, state=STATE, sessions=None, status_code: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if status_code != 200:
            return httpx.Response(status_code, json={"error": "boom"})
        if request.url.path == "/api/state":
            return httpx.Response(200, json=state)
        if request.url.path == "/api/sessions":
            return httpx.Response(200, json=sessions or [])
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture
def settings():
    """Enabled controller with one configured heat pump."""
    return ChargingSettings(
        enabled=True,
        url="http://evcc.local:7070",
        loadpoint_roles={"Warmtepomp": LoadpointRole.HEAT_PUMP},
    )


def test_state_unwraps_result_and_assigns_ids(settings):
    client = ChargingClient(settings, _transport([]))

    loadpoints = asyncio.run(client.get_state())

    assert [lp.id for lp in loadpoints] == [1, 2, 3]
    garage = loadpoints[0]
    assert garage.power == 7400.0
    assert garage.energy == 12.5
    assert garage.state_of_charge == 64
    assert garage.charging is True


def test_roles_from_payload_and_configuration(settings):
    """Test explicit roles first, then configured titles, EV otherwise."""
    client = ChargingClient(settings, _transport([]))

    heat_pumps = asyncio.run(client.heat_pumps())
    evs = asyncio.run(client.ev_loadpoints())

    assert [lp.title for lp in heat_pumps] == ["Warmtepomp", "Carport"]
    assert [lp.title for lp in evs] == ["Garage"]


def test_disabled_controller_is_not_called(settings):
    requests = []
    client = ChargingClient(settings.model_copy(update={"enabled": False}), _transport(requests))

    status = asyncio.run(client.status())

    assert status.enabled is False
    assert status.available is False
    assert asyncio.run(client.sessions()) == []
    assert requests == []


def test_unreachable_controller_reports_unavailable(settings):
    client = ChargingClient(settings, _transport([], status_code=503))

    status = asyncio.run(client.status())

    assert status.enabled is True
    assert status.available is False
    assert status.loadpoints == []


def test_loadpoint_lookup(settings):
    client = ChargingClient(settings, _transport([]))

    assert asyncio.run(client.loadpoint(2)).title == "Warmtepomp"
    with pytest.raises(NotFoundError):
        asyncio.run(client.loadpoint(9))


def test_sessions_request_and_parsing(settings):
    """Test that sessions are requested with since=Nd and parsed."""
    requests = []
    sessions = [
        {"chargedEnergy": 10.0, "duration": 3600, "createdAt": "2024-01-05T18:00:00Z", "loadpoint": "Garage"},
        {"chargedEnergy": 5.5, "duration": 1800, "createdAt": "2024-01-06T18:00:00Z", "loadpoint": "Garage"},
    ]
    client = ChargingClient(settings, _transport(requests, sessions=sessions))

    result = asyncio.run(client.sessions(7))

    assert requests[0].url.params["since"] == "7d"
    assert [s.charged_energy for s in result] == [10.0, 5.5]


def test_sessions_failure_raises(settings):
    client = ChargingClient(settings, _transport([], status_code=500))

    with pytest.raises(UpstreamQueryError):
        asyncio.run(client.sessions())


def test_charging_cost():
    sessions = [ChargingSession(chargedEnergy=10.0), ChargingSession(chargedEnergy=5.0)]

    cost = ChargingClient.charging_cost(sessions, 0.30)

    assert cost.total_cost == pytest.approx(4.5)
    assert cost.total_energy_kwh == pytest.approx(15.0)
    assert cost.sessions == 2
