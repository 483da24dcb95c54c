"""
Shared fixtures for agency tests.
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from mds_agency.agency import AgencyService
from mds_agency.main import create_app
from mds_agency.storage import MemoryStateCache, MemoryStore, MemoryStream
from mds_agency.utils import now


PROVIDER_ID = "5f7114d1-4091-46ee-b492-e55875f7de00"


def make_telemetry(device_id, timestamp=None, **gps_overrides):
    gps = {"lat": 34.0522, "lng": -118.2437, "speed": 4.2, "heading": 90, "accuracy": 3.0, "satellites": 9}
    gps.update(gps_overrides)
    return {
        "device_id": device_id,
        "timestamp": timestamp or now(),
        "gps": gps,
        "charge": 0.75,
    }


def make_registration(device_id=None, **overrides):
    body = {
        "device_id": device_id or str(uuid.uuid4()),
        "vehicle_id": "scooter-42",
        "vehicle_type": "scooter",
        "propulsion_types": ["electric"],
        "year": 2021,
        "mfgr": "Acme",
        "model": "Zoom",
    }
    body.update(overrides)
    return body


def make_trip_start(device_id, timestamp=None, trip_id=None):
    timestamp = timestamp or now()
    return {
        "event_types": ["trip_start"],
        "vehicle_state": "on_trip",
        "trip_id": trip_id or str(uuid.uuid4()),
        "timestamp": timestamp,
        "telemetry": make_telemetry(device_id, timestamp),
    }


class FailingCache(MemoryStateCache):
    """Every operation blows up"""

    async def read_device(self, device_id):
        raise ConnectionError("cache down")

    async def write_device(self, device):
        raise ConnectionError("cache down")

    async def write_event(self, event):
        raise ConnectionError("cache down")

    async def write_telemetry(self, telemetry):
        raise ConnectionError("cache down")


class FailingStream(MemoryStream):
    """Every write blows up"""

    async def write_device(self, device):
        raise ConnectionError("stream down")

    async def write_event(self, event):
        raise ConnectionError("stream down")

    async def write_telemetry(self, telemetry):
        raise ConnectionError("stream down")

    async def write_event_error(self, error):
        raise ConnectionError("stream down")

    async def write_trip_metadata(self, trip_metadata):
        raise ConnectionError("stream down")


@pytest.fixture
def provider_id():
    return PROVIDER_ID


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache():
    return MemoryStateCache()


@pytest.fixture
def stream():
    return MemoryStream()


@pytest.fixture
def agency(store, cache, stream):
    return AgencyService(store, cache, stream)


@pytest.fixture
def client(agency):
    return TestClient(create_app(agency))


@pytest.fixture
def headers(provider_id):
    return {"X-Provider-Id": provider_id}


@pytest.fixture
def device_id(client, headers):
    """A registered micromobility device"""
    body = make_registration()
    response = client.post("/vehicles", json=body, headers=headers)
    assert response.status_code == 201
    return body["device_id"]
