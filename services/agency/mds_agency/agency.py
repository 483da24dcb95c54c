"""
Agency operations: registration, event, telemetry and trip metadata submission,
vehicle reads.

Every write goes to the store of record first. That write decides whether the
submission succeeded. The cache and the stream are then brought up to date on a
best-effort basis through fanout.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from .composite import compute_composite_vehicle_data, paging_links, read_payload, vehicle_rows
from .errors import (
    AgencyError,
    AlreadyRegisteredError,
    BadParamError,
    DuplicateError,
    DuplicateEventError,
    InvalidDataError,
    NotFoundError,
    NotFoundResponse,
    ServerError,
    UnregisteredError,
)
from .fanout import Diagnostics, fan_out, write_telemetry
from .models import DeviceRegistration, TripMetadata, VehicleUpdate
from .storage.base import EventStream, StateCache, StoreOfRecord
from .utils import is_uuid, lower, now
from .validation import bad_event, bad_telemetry, validation_error_to_error_object

logger = logging.getLogger(__name__)


class AgencyService:
    """Agency API operations over injected store, cache and stream backends"""

    def __init__(
        self,
        store: StoreOfRecord,
        cache: StateCache,
        stream: EventStream,
        diagnostics: Optional[Diagnostics] = None,
        slow_event_ms: int = 100,
        slow_telemetry_ms: int = 300
    ):
        self.store = store
        self.cache = cache
        self.stream = stream
        self.diagnostics = diagnostics or Diagnostics()
        self.slow_event_ms = slow_event_ms
        self.slow_telemetry_ms = slow_telemetry_ms

    async def _fan_out_device(self, device: Dict[str, Any]):
        await fan_out('device', self.diagnostics, self.cache.write_device(device), self.stream.write_device(device))

    # Vehicles

    async def register_vehicle(self, provider_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            registration = DeviceRegistration.model_validate(body)
        except ValidationError as e:
            failure = validation_error_to_error_object(e)
            logger.info(f"Rejected registration from provider {provider_id}: {failure.error_details}")
            raise AgencyError.from_error_object(failure)

        device = {
            **registration.model_dump(),
            'provider_id': provider_id,
            'recorded': now(),
            'status': 'removed',
        }

        try:
            await self.store.write_device(device)
        except DuplicateError:
            raise AlreadyRegisteredError('A vehicle with this device_id is already registered')
        except Exception as e:
            logger.error(f"Register vehicle failed for provider {provider_id}: {str(e)}")
            raise ServerError() from e

        await self._fan_out_device(device)
        logger.info(f"New vehicle {device['device_id']} added by provider {provider_id}")
        return {}

    async def update_vehicle(self, provider_id: str, device_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            update = VehicleUpdate.model_validate(body)
        except ValidationError as e:
            raise BadParamError(
                'Invalid parameters for vehicle were sent',
                validation_error_to_error_object(e).error_details
            )

        try:
            device = await self.store.update_device(device_id, provider_id, {'vehicle_id': update.vehicle_id})
        except NotFoundError:
            raise NotFoundResponse(f"device_id {device_id} not found")
        except Exception as e:
            logger.error(f"Update of vehicle {device_id} failed for provider {provider_id}: {str(e)}")
            raise ServerError() from e

        await self._fan_out_device(device)
        return {}

    async def get_vehicle(self, device_id: str, provider_id: Optional[str] = None) -> Dict[str, Any]:
        payload = await read_payload(self.store, self.cache, device_id)
        device = payload.get('device')
        if not device or (provider_id and device['provider_id'] != provider_id):
            raise NotFoundResponse(f"device_id {device_id} not found")
        return compute_composite_vehicle_data(payload)

    async def list_vehicles(
        self,
        skip: int,
        take: int,
        url: str,
        query: Optional[Dict[str, Any]] = None,
        provider_id: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            rows = await self.store.read_device_ids(provider_id)
            device_ids = sorted(row['device_id'] for row in rows)
            total = len(device_ids)
            logger.info(f"Read {total} device_ids in /vehicles")

            events = await self.cache.read_events(device_ids) if device_ids else []
            event_map = {event['device_id']: event for event in events if event}

            devices = await self.store.read_device_list(device_ids[skip:skip + take])
        except Exception as e:
            logger.error(f"Listing vehicles failed: {str(e)}")
            raise ServerError() from e

        return {
            'total': total,
            'links': paging_links(url, query or {}, skip, take, total),
            'vehicles': vehicle_rows(devices, event_map),
        }

    async def refresh(self, device_id: str, provider_id: str) -> str:
        """Re-seed the cache from the store of record"""
        try:
            device = await self.store.read_device(device_id, provider_id)
        except NotFoundError:
            raise NotFoundResponse(f"device_id {device_id} not found")
        await self.cache.write_device(device)
        try:
            await self.cache.write_event(await self.store.read_event(device_id))
        except NotFoundError as e:
            logger.info(f"No events for {device_id}: {e}")
        try:
            await self.cache.write_telemetry([await self.store.read_telemetry(device_id)])
        except NotFoundError as e:
            logger.info(f"No telemetry for {device_id}: {e}")
        return 'done'

    # Events

    async def _reject(self, error: AgencyError, event: Dict[str, Any], message: str):
        """Mirror a rejected submission to the audit stream, then raise"""
        self.diagnostics.events_rejected += 1
        try:
            await self.stream.write_event_error({
                'provider_id': event.get('provider_id'),
                'data': event,
                'recorded': now(),
                'error_message': message,
            })
        except Exception as e:
            logger.warning(f"Failed to write event error to stream: {e}")
            self.diagnostics.record_fanout_failure('event_error', e)
        raise error

    @staticmethod
    def _event_from_body(provider_id: str, device_id: str, body: Dict[str, Any], recorded: int) -> Dict[str, Any]:
        event_types = body.get('event_types')
        telemetry = body.get('telemetry')
        if isinstance(telemetry, dict) and telemetry:
            telemetry = {**telemetry, 'provider_id': provider_id, 'recorded': recorded}
        return {
            'device_id': device_id,
            'provider_id': provider_id,
            'event_types': [lower(t) for t in event_types] if isinstance(event_types, list) else event_types,
            'vehicle_state': body.get('vehicle_state'),
            'trip_state': body.get('trip_state') or None,
            'telemetry': telemetry or None,
            'timestamp': body.get('timestamp'),
            'trip_id': body.get('trip_id'),
            'recorded': recorded,
            'telemetry_timestamp': None,
        }

    async def submit_event(self, provider_id: str, device_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        recorded = now()
        event = self._event_from_body(provider_id, device_id, body, recorded)

        try:
            device = await self.store.read_device(device_id, provider_id)
        except NotFoundError as e:
            logger.info(f"Event for unregistered device {device_id} from provider {provider_id}")
            await self._reject(
                UnregisteredError('The specified device_id has not been registered'), event, str(e)
            )
        except Exception as e:
            logger.error(f"Post event failed reading device {device_id}: {str(e)}")
            await self._reject(ServerError(), event, str(e))

        # the cache may have evicted the device or never seen it
        try:
            await self.cache.read_device(device_id)
        except Exception as e:
            logger.info(f"Re-adding device {device_id} to cache: {e}")
            await self._fan_out_device(device)

        telemetry = event['telemetry']
        if isinstance(telemetry, dict):
            telemetry['device_id'] = device_id
            event['telemetry_timestamp'] = telemetry.get('timestamp')

        failure = await bad_event(device, event) or (bad_telemetry(telemetry) if telemetry else None)
        if failure:
            logger.info(f"Event failure for device {device_id}: {failure.error_description}")
            await self._reject(AgencyError.from_error_object(failure), event, failure.error_description)

        try:
            # the event references the telemetry row, so it goes in first
            if telemetry:
                await self.store.write_telemetry([telemetry])
            recorded_event = await self.store.write_event(event)
        except DuplicateError as e:
            logger.info(f"Duplicate event for device {device_id} at {event['timestamp']}")
            await self._reject(
                DuplicateEventError('An event with this device_id and timestamp has already been received'),
                event,
                str(e)
            )
        except NotFoundError as e:
            logger.info(f"Event for unregistered device {device_id} from provider {provider_id}")
            await self._reject(
                UnregisteredError('The specified device_id has not been registered'), event, str(e)
            )
        except Exception as e:
            logger.error(f"Post event failed for device {device_id}: {str(e)}")
            await self._reject(ServerError(), event, str(e))

        await fan_out(
            'event',
            self.diagnostics,
            self.cache.write_event(recorded_event),
            self.stream.write_event(recorded_event)
        )
        if telemetry:
            await fan_out(
                'telemetry',
                self.diagnostics,
                self.cache.write_telemetry([telemetry]),
                self.stream.write_telemetry([telemetry])
            )

        self.diagnostics.events_accepted += 1
        delta = now() - recorded
        if delta > self.slow_event_ms:
            logger.info(f"Provider {provider_id} post event took {delta} ms")

        return {'device_id': device_id, 'state': event['vehicle_state']}

    # Telemetry

    @staticmethod
    def _telemetry_from_item(provider_id: str, item: Any, recorded: int) -> Dict[str, Any]:
        if not isinstance(item, dict):
            item = {}
        telemetry = {
            'device_id': item.get('device_id'),
            'provider_id': provider_id,
            'timestamp': item.get('timestamp'),
            'gps': None,
            'recorded': recorded,
        }
        if item.get('charge') is not None:
            telemetry['charge'] = item['charge']

        gps = item.get('gps')
        if isinstance(gps, dict):
            fields = {
                'lat': gps.get('lat'),
                'lng': gps.get('lng'),
                'altitude': gps.get('altitude'),
                'heading': gps.get('heading'),
                'speed': gps.get('speed'),
                # providers report hdop; accuracy is accepted when hdop is absent
                'accuracy': gps['hdop'] if gps.get('hdop') is not None else gps.get('accuracy'),
                'satellites': gps.get('satellites'),
            }
            telemetry['gps'] = {k: v for k, v in fields.items() if v is not None}
        return telemetry

    async def _known_device_ids(self, provider_id: str, data: List[Any]) -> Set[str]:
        if len(data) == 1 and isinstance(data[0], dict) and is_uuid(data[0].get('device_id')):
            device = await self.store.read_device(data[0]['device_id'], provider_id)
            return {device['device_id']}
        rows = await self.store.read_device_ids(provider_id)
        return {row['device_id'] for row in rows}

    async def submit_telemetry(self, provider_id: str, data: Any) -> Dict[str, Any]:
        recorded = now()

        if not provider_id:
            raise BadParamError('Bad or missing provider_id')
        if data is None:
            raise BadParamError('Missing data from post-body')
        if not isinstance(data, list):
            raise BadParamError(f"invalid data {data}")

        try:
            device_ids = await self._known_device_ids(provider_id, data)
        except NotFoundError:
            raise UnregisteredError('Some of the devices are unregistered', [data[0].get('device_id')])
        except Exception as e:
            logger.error(f"Telemetry device lookup failed for provider {provider_id}: {str(e)}")
            raise ServerError() from e

        valid = []
        failures = []
        for item in data:
            telemetry = self._telemetry_from_item(provider_id, item, recorded)
            failure = bad_telemetry(telemetry)
            if failure:
                failures.append({'telemetry': telemetry, 'reason': failure.error_description})
            elif telemetry['device_id'] not in device_ids:
                failures.append({'telemetry': telemetry, 'reason': f"device_id: {telemetry['device_id']} not found"})
            else:
                valid.append(telemetry)

        self.diagnostics.telemetry_rejected += len(failures)

        if not valid:
            logger.info(f"No valid telemetry in {len(data)} items for provider {provider_id}")
            raise InvalidDataError('None of the provided data was valid', failures)

        try:
            recorded_telemetry = await write_telemetry(
                self.store, self.cache, self.stream, self.diagnostics, valid
            )
        except Exception as e:
            logger.error(f"Write telemetry failed for provider {provider_id}: {str(e)}")
            raise ServerError() from e

        duplicates = len(valid) - len(recorded_telemetry)
        self.diagnostics.telemetry_recorded += len(recorded_telemetry)
        self.diagnostics.telemetry_duplicates += duplicates

        delta = now() - recorded
        if delta > self.slow_telemetry_ms:
            logger.info(
                f"Provider {provider_id} wrote {len(valid)} telemetry ({len(recorded_telemetry)} unique) in {delta} ms"
            )

        if not recorded_telemetry:
            logger.info(f"No unique telemetry in {len(data)} items for provider {provider_id}")
            raise InvalidDataError('None of the provided data was valid', failures)

        return {
            'success': len(valid),
            'total': len(data),
            'duplicates': duplicates,
            'failures': failures,
        }

    # Trips

    async def write_trip_metadata(self, provider_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Validate provider trip metadata and append it to the stream"""
        try:
            metadata = TripMetadata.model_validate({**body, 'provider_id': provider_id})
        except ValidationError as e:
            failure = validation_error_to_error_object(e)
            logger.info(f"Rejected trip metadata from provider {provider_id}: {failure.error_details}")
            raise AgencyError.from_error_object(failure)

        trip_metadata = {**metadata.model_dump(exclude_none=True), 'recorded': now()}

        # trip metadata has no store of record; the stream write is the durable one
        try:
            await self.stream.write_trip_metadata(trip_metadata)
        except Exception as e:
            logger.error(f"Write trip metadata failed for trip {trip_metadata['trip_id']}: {str(e)}")
            raise ServerError() from e

        return trip_metadata
