"""
DynamoDB store of record for devices, events and telemetry
"""

import boto3
from boto3.dynamodb.conditions import Key, Attr
from botocore.exceptions import ClientError
from typing import List, Dict, Any, Optional
import logging
import asyncio
import json
from decimal import Decimal

from ..errors import DuplicateError, NotFoundError
from .base import StoreOfRecord

logger = logging.getLogger(__name__)


def to_item(record: Dict[str, Any]) -> Dict[str, Any]:
    """DynamoDB wants Decimal instead of float"""
    return json.loads(json.dumps(record), parse_float=Decimal)


def from_item(value: Any) -> Any:
    """Undo to_item, turning Decimals back into int or float"""
    if isinstance(value, dict):
        return {k: from_item(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_item(v) for v in value]
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def is_conditional_check_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


async def run_blocking(fn):
    """Run a blocking boto3 call in the default thread pool"""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, fn)


class DynamoStore(StoreOfRecord):
    """Handles all store-of-record DynamoDB operations"""

    def __init__(self, device_table: str, event_table: str, telemetry_table: str, region: str = "us-east-1"):
        self.dynamodb = boto3.resource('dynamodb', region_name=region)
        self.device_table = self.dynamodb.Table(device_table)
        self.event_table = self.dynamodb.Table(event_table)
        self.telemetry_table = self.dynamodb.Table(telemetry_table)

    async def health_check(self) -> bool:
        """Check if DynamoDB tables are accessible"""
        try:
            for table in (self.device_table, self.event_table, self.telemetry_table):
                status = await run_blocking(lambda: table.table_status)
                if status != 'ACTIVE':
                    return False
            return True
        except Exception as e:
            logger.error(f"DynamoDB health check failed: {str(e)}")
            return False

    async def read_device(self, device_id: str, provider_id: Optional[str] = None) -> Dict[str, Any]:
        response = await run_blocking(
            lambda: self.device_table.get_item(Key={'device_id': device_id})
        )
        item = response.get('Item')
        if not item or (provider_id and item.get('provider_id') != provider_id):
            raise NotFoundError(f"device_id {device_id} not found")
        return from_item(item)

    async def write_device(self, device: Dict[str, Any]) -> Dict[str, Any]:
        try:
            await run_blocking(
                lambda: self.device_table.put_item(
                    Item=to_item(device),
                    ConditionExpression='attribute_not_exists(device_id)'
                )
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise DuplicateError(f"duplicate device_id {device['device_id']}") from e
            raise
        return device

    async def update_device(self, device_id: str, provider_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        names = {f"#{field}": field for field in changes}
        values = {f":{field}": value for field, value in to_item(changes).items()}
        values[':provider_id'] = provider_id
        update_expr = 'SET ' + ', '.join(f"#{field} = :{field}" for field in changes)

        try:
            response = await run_blocking(
                lambda: self.device_table.update_item(
                    Key={'device_id': device_id},
                    UpdateExpression=update_expr,
                    ConditionExpression='attribute_exists(device_id) AND provider_id = :provider_id',
                    ExpressionAttributeNames=names,
                    ExpressionAttributeValues=values,
                    ReturnValues='ALL_NEW'
                )
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise NotFoundError(f"device_id {device_id} not found") from e
            raise
        return from_item(response['Attributes'])

    async def read_device_ids(self, provider_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'ProjectionExpression': 'device_id, provider_id'}
        if provider_id:
            params['FilterExpression'] = Attr('provider_id').eq(provider_id)

        def scan_all():
            items = []
            response = self.device_table.scan(**params)
            items.extend(response.get('Items', []))
            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.device_table.scan(ExclusiveStartKey=response['LastEvaluatedKey'], **params)
                items.extend(response.get('Items', []))
            return items

        return [from_item(item) for item in await run_blocking(scan_all)]

    async def read_device_list(self, device_ids: List[str]) -> List[Dict[str, Any]]:
        def get_all():
            items = []
            for device_id in device_ids:
                item = self.device_table.get_item(Key={'device_id': device_id}).get('Item')
                if item:
                    items.append(item)
            return items

        return [from_item(item) for item in await run_blocking(get_all)]

    async def _read_latest(self, table, device_id: str, kind: str) -> Dict[str, Any]:
        response = await run_blocking(
            lambda: table.query(
                KeyConditionExpression=Key('device_id').eq(device_id),
                ScanIndexForward=False,  # Most recent first
                Limit=1
            )
        )
        items = response.get('Items', [])
        if not items:
            raise NotFoundError(f"no {kind} for device_id {device_id}")
        return from_item(items[0])

    async def read_event(self, device_id: str) -> Dict[str, Any]:
        return await self._read_latest(self.event_table, device_id, 'event')

    async def write_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        # unregistered devices surface as NotFoundError
        await self.read_device(event['device_id'], event.get('provider_id'))

        # the telemetry row is written separately and referenced by telemetry_timestamp
        row = {k: v for k, v in event.items() if k != 'telemetry'}
        try:
            await run_blocking(
                lambda: self.event_table.put_item(
                    Item=to_item(row),
                    ConditionExpression='attribute_not_exists(device_id)'
                )
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise DuplicateError(
                    f"duplicate event for device_id {event['device_id']} at {event['timestamp']}"
                ) from e
            raise
        return dict(event)

    async def read_telemetry(self, device_id: str) -> Dict[str, Any]:
        return await self._read_latest(self.telemetry_table, device_id, 'telemetry')

    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Store telemetry rows, silently skipping any already recorded"""
        if not telemetry:
            return []

        def put_all():
            recorded = []
            for row in telemetry:
                try:
                    self.telemetry_table.put_item(
                        Item=to_item(row),
                        ConditionExpression='attribute_not_exists(device_id)'
                    )
                    recorded.append(row)
                except ClientError as e:
                    if not is_conditional_check_failure(e):
                        raise
            return recorded

        recorded = await run_blocking(put_all)
        if len(recorded) < len(telemetry):
            logger.info(f"Skipped {len(telemetry) - len(recorded)} duplicate telemetry rows")
        return recorded
