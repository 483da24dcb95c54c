"""
In-process backends, used with STORAGE_BACKEND=memory and in tests
"""

import copy
from typing import List, Dict, Any, Optional, Tuple

from ..errors import DuplicateError, NotFoundError
from .base import EventStream, StateCache, StoreOfRecord


class MemoryStore(StoreOfRecord):
    """Store of record backed by dicts"""

    def __init__(self):
        self.devices: Dict[str, Dict[str, Any]] = {}
        self.events: Dict[Tuple[str, int], Dict[str, Any]] = {}
        self.telemetry: Dict[Tuple[str, int], Dict[str, Any]] = {}

    async def health_check(self) -> bool:
        return True

    async def read_device(self, device_id: str, provider_id: Optional[str] = None) -> Dict[str, Any]:
        device = self.devices.get(device_id)
        if device is None or (provider_id and device['provider_id'] != provider_id):
            raise NotFoundError(f"device_id {device_id} not found")
        return copy.deepcopy(device)

    async def write_device(self, device: Dict[str, Any]) -> Dict[str, Any]:
        if device['device_id'] in self.devices:
            raise DuplicateError(f"duplicate device_id {device['device_id']}")
        self.devices[device['device_id']] = copy.deepcopy(device)
        return device

    async def update_device(self, device_id: str, provider_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        device = self.devices.get(device_id)
        if device is None or device['provider_id'] != provider_id:
            raise NotFoundError(f"device_id {device_id} not found")
        device.update(copy.deepcopy(changes))
        return copy.deepcopy(device)

    async def read_device_ids(self, provider_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            {'device_id': device['device_id'], 'provider_id': device['provider_id']}
            for device in self.devices.values()
            if not provider_id or device['provider_id'] == provider_id
        ]

    async def read_device_list(self, device_ids: List[str]) -> List[Dict[str, Any]]:
        return [copy.deepcopy(self.devices[device_id]) for device_id in device_ids if device_id in self.devices]

    def _latest(self, rows: Dict[Tuple[str, int], Dict[str, Any]], device_id: str, kind: str) -> Dict[str, Any]:
        matching = [row for (row_device_id, _), row in rows.items() if row_device_id == device_id]
        if not matching:
            raise NotFoundError(f"no {kind} for device_id {device_id}")
        return copy.deepcopy(max(matching, key=lambda row: row['timestamp']))

    async def read_event(self, device_id: str) -> Dict[str, Any]:
        return self._latest(self.events, device_id, 'event')

    async def write_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        await self.read_device(event['device_id'], event.get('provider_id'))
        key = (event['device_id'], event['timestamp'])
        if key in self.events:
            raise DuplicateError(f"duplicate event for device_id {event['device_id']} at {event['timestamp']}")
        self.events[key] = {k: copy.deepcopy(v) for k, v in event.items() if k != 'telemetry'}
        return dict(event)

    async def read_telemetry(self, device_id: str) -> Dict[str, Any]:
        return self._latest(self.telemetry, device_id, 'telemetry')

    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        recorded = []
        for row in telemetry:
            key = (row['device_id'], row['timestamp'])
            if key not in self.telemetry:
                self.telemetry[key] = copy.deepcopy(row)
                recorded.append(row)
        return recorded


class MemoryStateCache(StateCache):
    """Latest vehicle state per device"""

    def __init__(self):
        self.devices: Dict[str, Dict[str, Any]] = {}
        self.events: Dict[str, Dict[str, Any]] = {}
        self.telemetry: Dict[str, Dict[str, Any]] = {}

    async def read_device(self, device_id: str) -> Dict[str, Any]:
        if device_id not in self.devices:
            raise NotFoundError(f"device for device_id {device_id} not in cache")
        return copy.deepcopy(self.devices[device_id])

    async def write_device(self, device: Dict[str, Any]) -> None:
        self.devices[device['device_id']] = copy.deepcopy(device)

    async def read_event(self, device_id: str) -> Dict[str, Any]:
        if device_id not in self.events:
            raise NotFoundError(f"event for device_id {device_id} not in cache")
        return copy.deepcopy(self.events[device_id])

    async def read_events(self, device_ids: List[str]) -> List[Optional[Dict[str, Any]]]:
        return [copy.deepcopy(self.events.get(device_id)) for device_id in device_ids]

    async def write_event(self, event: Dict[str, Any]) -> None:
        current = self.events.get(event['device_id'])
        if current is None or current['timestamp'] < event['timestamp']:
            self.events[event['device_id']] = copy.deepcopy(event)

    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> None:
        for row in telemetry:
            current = self.telemetry.get(row['device_id'])
            if current is None or current['timestamp'] < row['timestamp']:
                self.telemetry[row['device_id']] = copy.deepcopy(row)


class MemoryStream(EventStream):
    """Keeps every record in order as (type, data)"""

    def __init__(self):
        self.records: List[Tuple[str, Dict[str, Any]]] = []

    def of_type(self, record_type: str) -> List[Dict[str, Any]]:
        return [data for kind, data in self.records if kind == record_type]

    async def write_device(self, device: Dict[str, Any]) -> None:
        self.records.append(('device', copy.deepcopy(device)))

    async def write_event(self, event: Dict[str, Any]) -> None:
        self.records.append(('event', copy.deepcopy(event)))

    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> None:
        for row in telemetry:
            self.records.append(('telemetry', copy.deepcopy(row)))

    async def write_event_error(self, error: Dict[str, Any]) -> None:
        self.records.append(('event_error', copy.deepcopy(error)))

    async def write_trip_metadata(self, trip_metadata: Dict[str, Any]) -> None:
        self.records.append(('trip_metadata', copy.deepcopy(trip_metadata)))
