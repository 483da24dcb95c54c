"""
Externally visible vehicle records built from device, event and telemetry
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from .storage.base import StateCache, StoreOfRecord

logger = logging.getLogger(__name__)


def compute_composite_vehicle_data(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Merge {device, event?, telemetry?} into one vehicle record"""
    device = payload['device']
    event = payload.get('event')
    telemetry = payload.get('telemetry')

    composite = dict(device)

    if event:
        composite['prev_events'] = event['event_types']
        composite['updated'] = event['timestamp']
        composite['state'] = event['vehicle_state']
    else:
        composite['state'] = 'removed'
        composite['prev_events'] = ['decommissioned']

    if telemetry and telemetry.get('gps'):
        composite['gps'] = telemetry['gps']

    return composite


def normalize_telemetry(telemetry: Any) -> Optional[Dict[str, Any]]:
    if isinstance(telemetry, list):
        return telemetry[0] if telemetry else None
    return telemetry


async def read_payload(store: StoreOfRecord, cache: StateCache, device_id: str) -> Dict[str, Any]:
    """Collect what is known about a device; lookups that fail leave holes"""
    payload: Dict[str, Any] = {}
    try:
        payload['device'] = await store.read_device(device_id)
    except Exception as e:
        logger.error(f"Could not read device {device_id}: {e}")
    try:
        event = await cache.read_event(device_id)
        payload['event'] = event
        if event.get('telemetry'):
            payload['telemetry'] = normalize_telemetry(event['telemetry'])
    except Exception as e:
        logger.info(f"No cached event for device {device_id}: {e}")
    return payload


def paging_links(url: str, query: Dict[str, Any], skip: int, take: int, total: int) -> Dict[str, Optional[str]]:
    """first/last/prev/next links for a skip/take page over `total` rows"""
    def fmt(page_skip: int) -> str:
        return f"{url}?{urlencode({**query, 'skip': page_skip, 'take': take})}"

    no_next = skip + take >= total
    no_prev = skip == 0 or skip > total
    last_skip = take * (total // take) if take else 0

    return {
        'first': fmt(0),
        'last': fmt(last_skip),
        'prev': None if no_prev else fmt(max(skip - take, 0)),
        'next': None if no_next else fmt(skip + take),
    }


def vehicle_rows(devices: List[Dict[str, Any]], event_map: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Vehicle list entries carry state, embedded telemetry and last update time"""
    rows = []
    for device in devices:
        event = event_map.get(device['device_id'])
        rows.append({
            **device,
            'state': event['vehicle_state'] if event else 'removed',
            'telemetry': event.get('telemetry') if event else None,
            'updated': event['timestamp'] if event else None,
        })
    return rows
