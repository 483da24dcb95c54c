"""
Kinesis append-only stream for devices, events, telemetry, trip metadata and rejected submissions
"""

import boto3
import json
import logging
from typing import List, Dict, Any

from .base import EventStream
from .dynamo_store import run_blocking

logger = logging.getLogger(__name__)

MAX_PUT_RECORDS = 500  # PutRecords limit


def encode(record_type: str, data: Dict[str, Any]) -> str:
    return json.dumps({'type': record_type, 'data': data}, default=str)


class KinesisStream(EventStream):
    """Writes typed records to a single Kinesis stream"""

    def __init__(self, stream_name: str, region: str = "us-east-1", batch_size: int = MAX_PUT_RECORDS):
        self.stream_name = stream_name
        self.kinesis_client = boto3.client('kinesis', region_name=region)
        self.batch_size = min(batch_size, MAX_PUT_RECORDS)

    async def _put(self, record_type: str, data: Dict[str, Any], partition_key: str) -> None:
        # Partition by device so a device's records stay ordered on one shard
        response = await run_blocking(
            lambda: self.kinesis_client.put_record(
                StreamName=self.stream_name,
                Data=encode(record_type, data),
                PartitionKey=partition_key
            )
        )
        logger.debug(f"Sent {record_type} to Kinesis: {response['SequenceNumber']}")

    async def _put_batch(self, record_type: str, rows: List[Dict[str, Any]]) -> None:
        for i in range(0, len(rows), self.batch_size):
            records = [
                {'Data': encode(record_type, row), 'PartitionKey': row['device_id']}
                for row in rows[i:i + self.batch_size]
            ]
            response = await run_blocking(
                lambda: self.kinesis_client.put_records(StreamName=self.stream_name, Records=records)
            )
            if response.get('FailedRecordCount', 0):
                logger.error(
                    f"Kinesis rejected {response['FailedRecordCount']} of {len(records)} {record_type} records"
                )

    async def write_device(self, device: Dict[str, Any]) -> None:
        await self._put('device', device, device['device_id'])

    async def write_event(self, event: Dict[str, Any]) -> None:
        await self._put('event', event, event['device_id'])

    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> None:
        if telemetry:
            await self._put_batch('telemetry', telemetry)

    async def write_event_error(self, error: Dict[str, Any]) -> None:
        data = error.get('data') or {}
        partition_key = data.get('device_id') or error.get('provider_id') or 'unknown'
        await self._put('event_error', error, str(partition_key))

    async def write_trip_metadata(self, trip_metadata: Dict[str, Any]) -> None:
        await self._put('trip_metadata', trip_metadata, trip_metadata['trip_id'])
