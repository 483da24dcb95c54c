"""
Tests for composite vehicle records and paging links.
"""

import pytest

from mds_agency.composite import (
    compute_composite_vehicle_data,
    normalize_telemetry,
    paging_links,
    read_payload,
    vehicle_rows,
)
from mds_agency.storage import MemoryStateCache, MemoryStore


DEVICE_ID = "ec551174-f324-4251-bfed-28d9f3f473fc"
DEVICE = {"device_id": DEVICE_ID, "provider_id": "p", "vehicle_type": "scooter"}
EVENT = {
    "device_id": DEVICE_ID,
    "event_types": ["trip_start"],
    "vehicle_state": "on_trip",
    "timestamp": 1700000000000,
    "telemetry": {"device_id": DEVICE_ID, "gps": {"lat": 34.05, "lng": -118.24}},
}


def test_composite_with_event():
    vehicle = compute_composite_vehicle_data({"device": DEVICE, "event": EVENT, "telemetry": EVENT["telemetry"]})
    assert vehicle["state"] == "on_trip"
    assert vehicle["prev_events"] == ["trip_start"]
    assert vehicle["updated"] == 1700000000000
    assert vehicle["gps"] == {"lat": 34.05, "lng": -118.24}


def test_composite_without_event():
    vehicle = compute_composite_vehicle_data({"device": DEVICE})
    assert vehicle["state"] == "removed"
    assert vehicle["prev_events"] == ["decommissioned"]
    assert "gps" not in vehicle
    assert "state" not in DEVICE


def test_normalize_telemetry():
    assert normalize_telemetry([{"a": 1}, {"a": 2}]) == {"a": 1}
    assert normalize_telemetry([]) is None
    assert normalize_telemetry({"a": 1}) == {"a": 1}


@pytest.mark.asyncio
async def test_read_payload_leaves_holes():
    store, cache = MemoryStore(), MemoryStateCache()
    await store.write_device(DEVICE)

    assert await read_payload(store, cache, DEVICE_ID) == {"device": DEVICE}

    await cache.write_event(EVENT)
    payload = await read_payload(store, cache, DEVICE_ID)
    assert payload["event"]["vehicle_state"] == "on_trip"
    assert payload["telemetry"] == EVENT["telemetry"]


@pytest.mark.asyncio
async def test_read_payload_for_unknown_device():
    assert await read_payload(MemoryStore(), MemoryStateCache(), DEVICE_ID) == {}


class TestPagingLinks:

    def test_first_page(self):
        links = paging_links("http://x/vehicles", {}, 0, 10, 25)
        assert links["first"] == "http://x/vehicles?skip=0&take=10"
        assert links["last"] == "http://x/vehicles?skip=20&take=10"
        assert links["prev"] is None
        assert links["next"] == "http://x/vehicles?skip=10&take=10"

    def test_middle_page_keeps_query(self):
        links = paging_links("http://x/vehicles", {"format": "full"}, 10, 10, 25)
        assert links["prev"] == "http://x/vehicles?format=full&skip=0&take=10"
        assert links["next"] == "http://x/vehicles?format=full&skip=20&take=10"

    def test_last_page(self):
        links = paging_links("http://x/vehicles", {}, 20, 10, 25)
        assert links["next"] is None

    def test_past_the_end(self):
        links = paging_links("http://x/vehicles", {}, 40, 10, 25)
        assert links["prev"] is None
        assert links["next"] is None


def test_vehicle_rows():
    other = {"device_id": "other", "provider_id": "p"}
    rows = vehicle_rows([DEVICE, other], {DEVICE_ID: EVENT})
    assert rows[0]["state"] == "on_trip"
    assert rows[0]["telemetry"] == EVENT["telemetry"]
    assert rows[0]["updated"] == 1700000000000
    assert rows[1]["state"] == "removed"
    assert rows[1]["telemetry"] is None
