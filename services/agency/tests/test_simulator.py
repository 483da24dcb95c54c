"""
Tests for the provider simulator.
"""

import json

import pytest
from click.testing import CliRunner

from mds_agency.models import DeviceRegistration
from mds_agency.simulator import AgencyClient, ProviderSimulator, VehicleSimulator, create_sample_route, haversine, main
from mds_agency.validation import bad_event, bad_telemetry


START = 1700000000000


@pytest.fixture
def simulator():
    return ProviderSimulator(vehicle_count=2, clock=lambda: START)


def test_haversine():
    # roughly 111 km per degree of latitude
    assert haversine((0, 0), (1, 0)) == pytest.approx(111195, rel=1e-3)
    assert haversine((34.05, -118.24), (34.05, -118.24)) == 0


def test_vehicle_moves_along_route():
    route = create_sample_route()
    vehicle = VehicleSimulator("ec551174-f324-4251-bfed-28d9f3f473fc", route, speed_kmh=36)
    start = vehicle.current_position
    charge = vehicle.charge

    vehicle.calculate_next_position(10)

    assert haversine(start, vehicle.current_position) == pytest.approx(100, rel=0.05)
    assert vehicle.charge < charge


def test_clock_advances(simulator):
    simulator.step(5)
    assert simulator.timestamp == START + 5000


def test_registrations_are_valid(simulator):
    for registration in simulator.registrations():
        DeviceRegistration.model_validate(registration)


@pytest.mark.asyncio
async def test_trip_events_are_valid(simulator):
    device = {"modality": "micromobility"}
    for _, event in simulator.start_trips():
        assert await bad_event(device, event) is None
        assert event["trip_id"]
    simulator.step(5)
    for _, event in simulator.end_trips():
        assert await bad_event(device, event) is None
        assert event["vehicle_state"] == "available"


def test_telemetry_is_valid_once_hdop_is_mapped(simulator):
    for telemetry in simulator.step(5):
        gps = dict(telemetry["gps"])
        gps["accuracy"] = gps.pop("hdop")
        assert bad_telemetry({**telemetry, "gps": gps}) is None


def test_simulated_provider_against_the_api(simulator, client, provider_id):
    agency_client = AgencyClient("http://testserver", provider_id, session=client)

    for registration in simulator.registrations():
        assert agency_client.register(registration).status_code == 201
    for device_id, event in simulator.start_trips():
        assert agency_client.post_event(device_id, event).status_code == 201

    response = agency_client.post_telemetry(simulator.step(5))

    assert response.status_code == 200
    assert response.json()["success"] == 2

    for device_id, event in simulator.end_trips():
        assert agency_client.post_event(device_id, event).json()["state"] == "available"


def test_cli_dry_run():
    runner = CliRunner()
    result = runner.invoke(main, ["--dry-run", "--vehicles", "2", "--steps", "3", "--interval", "1"])

    assert result.exit_code == 0
    payloads = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
    assert sum("register" in p for p in payloads) == 2
    assert sum("telemetry" in p for p in payloads) == 3
    assert sum("event" in p for p in payloads) == 4
