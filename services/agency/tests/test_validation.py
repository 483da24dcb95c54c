"""
Tests for telemetry and event validation.
"""

import copy
import math
import uuid

import pytest

from mds_agency.utils import is_float, is_pct, is_timestamp, is_uuid
from mds_agency.validation import bad_event, bad_telemetry

from conftest import make_telemetry


DEVICE_ID = "ec551174-f324-4251-bfed-28d9f3f473fc"
TRIP_ID = "1f981864-cc17-40cf-aea3-70fd985e2ea7"
TIMESTAMP = 1700000000000

MICROMOBILITY = {"modality": "micromobility"}
TAXI = {"modality": "taxi"}
TNC = {"modality": "tnc"}


def telemetry(**gps_overrides):
    return make_telemetry(DEVICE_ID, TIMESTAMP, **gps_overrides)


def event(**overrides):
    body = {
        "device_id": DEVICE_ID,
        "event_types": ["trip_start"],
        "vehicle_state": "on_trip",
        "trip_id": TRIP_ID,
        "timestamp": TIMESTAMP,
        "telemetry": telemetry(),
    }
    body.update(overrides)
    return body


class TestPrimitives:

    def test_timestamp_must_be_milliseconds(self):
        assert is_timestamp(TIMESTAMP)
        assert not is_timestamp(TIMESTAMP // 1000)
        assert not is_timestamp(TIMESTAMP * 1000)
        assert not is_timestamp(str(TIMESTAMP))
        assert not is_timestamp(True)

    def test_pct_is_a_fraction(self):
        assert is_pct(0)
        assert is_pct(1)
        assert is_pct(0.5)
        assert not is_pct(1.5)
        assert not is_pct(-0.1)
        assert not is_pct(math.nan)

    def test_float_rejects_ints_too_large_for_a_double(self):
        assert is_float(10 ** 300)
        assert not is_float(10 ** 400)
        assert not is_float(-(10 ** 400))

    def test_uuid(self):
        assert is_uuid(str(uuid.uuid4()))
        assert is_uuid(DEVICE_ID.upper())
        assert not is_uuid("not-a-uuid")
        assert not is_uuid(None)


class TestBadTelemetry:

    def test_valid_telemetry(self):
        assert bad_telemetry(telemetry()) is None

    def test_missing_telemetry(self):
        failure = bad_telemetry(None)
        assert failure.error == "missing_param"
        assert failure.error_description == "invalid missing telemetry"

    def test_missing_gps(self):
        t = telemetry()
        t["gps"] = None
        assert bad_telemetry(t).error_description == "invalid missing gps"

    def test_missing_device_id(self):
        t = telemetry()
        t["device_id"] = "bogus"
        failure = bad_telemetry(t)
        assert failure.error == "missing_param"
        assert failure.error_description == "no device_id included in telemetry"

    @pytest.mark.parametrize("lat", [0, 91, -90.5, "34.1", math.nan, None])
    def test_bad_lat(self, lat):
        failure = bad_telemetry(telemetry(lat=lat))
        assert failure.error == "bad_param"
        assert failure.error_description == f"invalid lat {lat}"

    @pytest.mark.parametrize("lng", [0, 180.1, -181])
    def test_bad_lng(self, lng):
        failure = bad_telemetry(telemetry(lng=lng))
        assert failure.error == "bad_param"
        assert failure.error_description == f"invalid lng {lng}"

    def test_boundaries_are_inclusive(self):
        assert bad_telemetry(telemetry(lat=90, lng=-180)) is None

    def test_lat_checked_before_lng(self):
        assert bad_telemetry(telemetry(lat=0, lng=0)).error_description == "invalid lat 0"

    @pytest.mark.parametrize("field", ["altitude", "accuracy", "speed"])
    def test_bad_optional_floats(self, field):
        failure = bad_telemetry(telemetry(**{field: "fast"}))
        assert failure.error_description == f"invalid {field} fast"

    def test_null_optional_floats_are_fine(self):
        assert bad_telemetry(telemetry(altitude=None, speed=None)) is None

    @pytest.mark.parametrize("satellites", [-1, 2.5, "9"])
    def test_bad_satellites(self, satellites):
        failure = bad_telemetry(telemetry(satellites=satellites))
        assert failure.error_description == f"invalid satellites {satellites}"

    @pytest.mark.parametrize("field", ["lat", "lng", "altitude", "speed", "satellites"])
    def test_oversized_integers_are_rejected(self, field):
        failure = bad_telemetry(telemetry(**{field: 10 ** 400}))
        assert failure.error == "bad_param"
        assert failure.error_description.startswith(f"invalid {field} ")

    def test_oversized_charge(self):
        t = telemetry()
        t["charge"] = 10 ** 400
        assert bad_telemetry(t).error == "bad_param"

    def test_bad_charge(self):
        t = telemetry()
        t["charge"] = 75
        assert bad_telemetry(t).error_description == "invalid charge 75"

    def test_bad_timestamp(self):
        t = telemetry()
        t["timestamp"] = 1700000000
        failure = bad_telemetry(t)
        assert failure.error == "bad_param"
        assert "should be in milliseconds" in failure.error_description


@pytest.mark.asyncio
class TestBadEvent:

    async def test_valid_trip_start(self):
        assert await bad_event(MICROMOBILITY, event()) is None

    async def test_missing_timestamp(self):
        e = event()
        del e["timestamp"]
        failure = await bad_event(MICROMOBILITY, e)
        assert failure.error == "missing_param"

    async def test_bad_timestamp(self):
        failure = await bad_event(MICROMOBILITY, event(timestamp="yesterday"))
        assert failure.error == "bad_param"

    async def test_missing_event_types(self):
        failure = await bad_event(MICROMOBILITY, event(event_types=None))
        assert failure.error == "missing_param"

    async def test_event_types_not_a_list(self):
        failure = await bad_event(MICROMOBILITY, event(event_types="trip_start"))
        assert failure.error == "bad_param"

    async def test_empty_event_types(self):
        failure = await bad_event(MICROMOBILITY, event(event_types=[]))
        assert failure.error_description == "empty event_types array"

    async def test_missing_vehicle_state(self):
        failure = await bad_event(MICROMOBILITY, event(vehicle_state=None))
        assert failure.error == "missing_param"

    async def test_first_illegal_event_type_is_named(self):
        failure = await bad_event(MICROMOBILITY, event(event_types=["trip_start", "warp", "teleport"]))
        assert failure.error_description == "invalid event_type in event_types warp"

    async def test_taxi_event_is_illegal_for_micromobility(self):
        failure = await bad_event(MICROMOBILITY, event(event_types=["service_start"], vehicle_state="available"))
        assert failure.error == "bad_param"

    async def test_illegal_vehicle_state(self):
        failure = await bad_event(MICROMOBILITY, event(vehicle_state="stopped"))
        assert failure.error_description == "invalid vehicle_state stopped"

    async def test_unknown_modality(self):
        failure = await bad_event({"modality": "hovercraft"}, event())
        assert failure.error == "bad_param"
        assert "trip_start" in failure.error_description

    async def test_trip_start_requires_trip_id(self):
        failure = await bad_event(MICROMOBILITY, event(trip_id=None))
        assert failure.error == "missing_param"
        assert failure.error_description == "missing trip_id"

    async def test_trip_start_requires_telemetry(self):
        failure = await bad_event(MICROMOBILITY, event(telemetry=None))
        assert failure.error_description == "invalid missing telemetry"

    async def test_telemetry_failure_reported_before_missing_trip_id(self):
        failure = await bad_event(MICROMOBILITY, event(trip_id=None, telemetry=telemetry(lat=0)))
        assert failure.error_description == "invalid lat 0"

    async def test_empty_trip_id_is_normalized(self):
        e = event(event_types=["battery_low"], vehicle_state="available", trip_id="")
        assert await bad_event(MICROMOBILITY, e) is None
        assert e["trip_id"] is None

    async def test_trip_id_must_be_uuid(self):
        failure = await bad_event(MICROMOBILITY, event(trip_id="T1"))
        assert failure.error_description == "invalid trip_id T1 is not a UUID"

    async def test_provider_drop_off_needs_telemetry_not_trip_id(self):
        e = event(event_types=["provider_drop_off"], vehicle_state="available", trip_id=None)
        assert await bad_event(MICROMOBILITY, e) is None
        e["telemetry"] = None
        assert (await bad_event(MICROMOBILITY, e)).error == "missing_param"

    async def test_other_events_need_no_telemetry(self):
        e = event(event_types=["battery_low"], vehicle_state="non_operational", trip_id=None, telemetry=None)
        assert await bad_event(MICROMOBILITY, e) is None

    async def test_micromobility_never_requires_trip_state(self):
        e = event(event_types=["reservation_start"], vehicle_state="reserved")
        assert await bad_event(MICROMOBILITY, e) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("device", [TAXI, TNC])
class TestTripState:

    async def test_trip_state_required_on_trip(self, device):
        e = event(event_types=["trip_resume"], vehicle_state="on_trip")
        failure = await bad_event(device, e)
        assert failure.error == "missing_param"
        assert "trip_state" in failure.error_description

    async def test_trip_state_must_be_legal(self, device):
        e = event(event_types=["trip_resume"], vehicle_state="on_trip", trip_state="flying")
        failure = await bad_event(device, e)
        assert failure.error_description == "invalid trip_state flying"

    async def test_legal_trip_state(self, device):
        e = event(event_types=["trip_resume"], vehicle_state="on_trip", trip_state="on_trip")
        assert await bad_event(device, e) is None

    async def test_trip_exit_event_needs_no_trip_state(self, device):
        e = event(event_types=["passenger_cancellation"], vehicle_state="reserved")
        assert await bad_event(device, e) is None

    async def test_no_trip_id_needs_no_trip_state(self, device):
        e = event(event_types=["reservation_start"], vehicle_state="reserved", trip_id=None)
        assert await bad_event(device, e) is None


@pytest.mark.asyncio
async def test_bad_event_does_not_touch_valid_input():
    e = event()
    before = copy.deepcopy(e)
    await bad_event(MICROMOBILITY, e)
    assert e == before
