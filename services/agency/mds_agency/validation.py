"""
Validation for submitted devices, events and telemetry.

The validators return an ErrorObject describing the first problem found, or
None when the payload is acceptable. They never raise for bad input.
"""

from typing import Any, Dict, Optional

from pydantic import ValidationError

from .models import ErrorObject
from .utils import are_there_common_elements, is_float, is_pct, is_timestamp, is_uuid
from .vocabulary import TRIP_BOUNDARY_EVENTS, TRIP_STATES, rules_for

MAX_LAT = 90.0
MIN_LAT = -90.0
MAX_LNG = 180.0
MIN_LNG = -180.0


def _missing(description: str) -> ErrorObject:
    return ErrorObject(error='missing_param', error_description=description)


def _bad(description: str) -> ErrorObject:
    return ErrorObject(error='bad_param', error_description=description)


def _bad_coordinate(value: Any, lower: float, upper: float) -> bool:
    # 0 is what a provider sends when it has no fix
    return not is_float(value) or value < lower or value > upper or value == 0


def bad_telemetry(telemetry: Optional[Dict[str, Any]]) -> Optional[ErrorObject]:
    """Check a single telemetry sample"""
    if not telemetry:
        return _missing('invalid missing telemetry')
    if not isinstance(telemetry, dict):
        return _bad(f"invalid telemetry {telemetry}")

    gps = telemetry.get('gps')
    if not isinstance(gps, dict):
        return _missing('invalid missing gps')

    if not is_uuid(telemetry.get('device_id')):
        return _missing('no device_id included in telemetry')

    lat = gps.get('lat')
    if _bad_coordinate(lat, MIN_LAT, MAX_LAT):
        return _bad(f"invalid lat {lat}")

    lng = gps.get('lng')
    if _bad_coordinate(lng, MIN_LNG, MAX_LNG):
        return _bad(f"invalid lng {lng}")

    for field in ('altitude', 'accuracy', 'speed'):
        value = gps.get(field)
        if value is not None and not is_float(value):
            return _bad(f"invalid {field} {value}")

    satellites = gps.get('satellites')
    if satellites is not None and not (is_float(satellites) and float(satellites).is_integer() and satellites >= 0):
        return _bad(f"invalid satellites {satellites}")

    charge = telemetry.get('charge')
    if charge is not None and not is_pct(charge):
        return _bad(f"invalid charge {charge}")

    timestamp = telemetry.get('timestamp')
    if not is_timestamp(timestamp):
        return _bad(f"invalid timestamp {timestamp} (note: should be in milliseconds)")

    return None


async def bad_event(device: Dict[str, Any], event: Dict[str, Any]) -> Optional[ErrorObject]:
    """
    Check an event against the vocabulary of the device's modality.

    An empty-string trip_id is rewritten to None on the event itself; at least
    one provider sends those instead of omitting the field.
    """
    timestamp = event.get('timestamp')
    if timestamp is None:
        return _missing('missing enum field "timestamp"')
    if not is_timestamp(timestamp):
        return _bad(f"invalid timestamp {timestamp}")

    event_types = event.get('event_types')
    if event_types is None:
        return _missing('missing enum field "event_type"')
    if not isinstance(event_types, list):
        return _bad(f"invalid event_types {event_types}")
    if len(event_types) == 0:
        return _bad('empty event_types array')

    vehicle_state = event.get('vehicle_state')
    if not vehicle_state:
        return _missing('missing enum field "vehicle_state"')

    rules = rules_for(device.get('modality'))
    if rules is None:
        return _bad(f"invalid event_types in {event_types}")

    for event_type in event_types:
        if not isinstance(event_type, str) or event_type not in rules.events:
            return _bad(f"invalid event_type in event_types {event_type}")

    if not isinstance(vehicle_state, str) or vehicle_state not in rules.states:
        return _bad(f"invalid vehicle_state {vehicle_state}")

    if event.get('trip_id') and rules.requires_trip_state(event_types, vehicle_state):
        trip_state = event.get('trip_state')
        if not trip_state:
            return _missing('missing enum field "trip_state" required on trip events')
        if not isinstance(trip_state, str) or trip_state not in TRIP_STATES:
            return _bad(f"invalid trip_state {trip_state}")

    if event.get('trip_id') == '':
        event['trip_id'] = None

    trip_id = event.get('trip_id')
    if trip_id is not None and not is_uuid(trip_id):
        return _bad(f"invalid trip_id {trip_id} is not a UUID")

    # event-specific checks go last
    if are_there_common_elements(TRIP_BOUNDARY_EVENTS, event_types):
        failure = bad_telemetry(event.get('telemetry'))
        if failure:
            return failure
        if not trip_id:
            return _missing('missing trip_id')
        return None

    if 'provider_drop_off' in event_types:
        return bad_telemetry(event.get('telemetry'))

    return None


def validation_error_to_error_object(error: ValidationError) -> ErrorObject:
    """
    Collapse a pydantic ValidationError into an agency error payload.

    When the first problem is a missing field, only missing fields are
    reported; otherwise every problem is reported with its property name.
    """
    errors = error.errors()
    if errors and errors[0]['type'] == 'missing':
        missing = [
            '.'.join(str(part) for part in err['loc'])
            for err in errors
            if err['type'] == 'missing'
        ]
        return ErrorObject(
            error='missing_param',
            error_description='A required parameter is missing.',
            error_details=missing
        )

    details = [
        {
            'property': '.'.join(str(part) for part in err['loc'] if not isinstance(part, int)),
            'message': err['msg'],
        }
        for err in errors
    ]
    return ErrorObject(
        error='bad_param',
        error_description='A validation error occurred.',
        error_details=details
    )
