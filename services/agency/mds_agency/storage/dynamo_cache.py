"""
DynamoDB-backed fast-read cache of current vehicle state.

One item per device holds the latest device record, event and telemetry.
"""

import boto3
from botocore.exceptions import ClientError
from typing import List, Dict, Any, Optional
import logging

from ..errors import NotFoundError
from .base import StateCache
from .dynamo_store import from_item, is_conditional_check_failure, run_blocking, to_item

logger = logging.getLogger(__name__)

BATCH_GET_SIZE = 100  # DynamoDB BatchGetItem limit


class DynamoStateCache(StateCache):
    """Latest vehicle state, keyed by device_id"""

    def __init__(self, state_table: str, region: str = "us-east-1"):
        self.dynamodb = boto3.resource('dynamodb', region_name=region)
        self.state_table = self.dynamodb.Table(state_table)
        self.state_table_name = state_table

    async def _read_section(self, device_id: str, section: str) -> Dict[str, Any]:
        response = await run_blocking(
            lambda: self.state_table.get_item(Key={'device_id': device_id})
        )
        item = response.get('Item') or {}
        if section not in item:
            raise NotFoundError(f"{section} for device_id {device_id} not in cache")
        return from_item(item[section])

    async def _write_newer(self, device_id: str, section: str, value: Dict[str, Any]) -> bool:
        """Replace a section unless the cached one has a later timestamp"""
        try:
            await run_blocking(
                lambda: self.state_table.update_item(
                    Key={'device_id': device_id},
                    UpdateExpression='SET #section = :value',
                    ConditionExpression='attribute_not_exists(#section) OR #section.#ts < :ts',
                    ExpressionAttributeNames={'#section': section, '#ts': 'timestamp'},
                    ExpressionAttributeValues={
                        ':value': to_item(value),
                        ':ts': value['timestamp']
                    }
                )
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.debug(f"Ignoring stale {section} for device {device_id}")
                return False
            raise
        return True

    async def read_device(self, device_id: str) -> Dict[str, Any]:
        return await self._read_section(device_id, 'device')

    async def write_device(self, device: Dict[str, Any]) -> None:
        await run_blocking(
            lambda: self.state_table.update_item(
                Key={'device_id': device['device_id']},
                UpdateExpression='SET #device = :device',
                ExpressionAttributeNames={'#device': 'device'},
                ExpressionAttributeValues={':device': to_item(device)}
            )
        )

    async def read_event(self, device_id: str) -> Dict[str, Any]:
        return await self._read_section(device_id, 'event')

    async def read_events(self, device_ids: List[str]) -> List[Optional[Dict[str, Any]]]:
        def get_all():
            found = {}
            for i in range(0, len(device_ids), BATCH_GET_SIZE):
                keys = [{'device_id': device_id} for device_id in device_ids[i:i + BATCH_GET_SIZE]]
                request = {self.state_table_name: {'Keys': keys, 'ProjectionExpression': 'device_id, event'}}
                while request:
                    response = self.dynamodb.batch_get_item(RequestItems=request)
                    for item in response.get('Responses', {}).get(self.state_table_name, []):
                        found[item['device_id']] = item.get('event')
                    request = response.get('UnprocessedKeys') or None
            return found

        if not device_ids:
            return []
        found = await run_blocking(get_all)
        return [from_item(found[device_id]) if found.get(device_id) else None for device_id in device_ids]

    async def write_event(self, event: Dict[str, Any]) -> None:
        await self._write_newer(event['device_id'], 'event', event)

    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> None:
        latest: Dict[str, Dict[str, Any]] = {}
        for row in telemetry:
            current = latest.get(row['device_id'])
            if current is None or current['timestamp'] < row['timestamp']:
                latest[row['device_id']] = row

        for device_id, row in latest.items():
            await self._write_newer(device_id, 'telemetry', row)
