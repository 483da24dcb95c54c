"""
Backends: store of record, vehicle state cache and stream
"""

from .base import EventStream, StateCache, StoreOfRecord
from .memory import MemoryStateCache, MemoryStore, MemoryStream


def create_backends(settings):
    """Build (store, cache, stream) for the configured STORAGE_BACKEND"""
    if settings.STORAGE_BACKEND == 'memory':
        return MemoryStore(), MemoryStateCache(), MemoryStream()

    if settings.STORAGE_BACKEND != 'dynamodb':
        raise ValueError(f"Unknown STORAGE_BACKEND {settings.STORAGE_BACKEND}")

    from .dynamo_cache import DynamoStateCache
    from .dynamo_store import DynamoStore
    from .kinesis_stream import KinesisStream

    store = DynamoStore(
        device_table=settings.DEVICE_TABLE_NAME,
        event_table=settings.EVENT_TABLE_NAME,
        telemetry_table=settings.TELEMETRY_TABLE_NAME,
        region=settings.AWS_REGION
    )
    cache = DynamoStateCache(
        state_table=settings.VEHICLE_STATE_TABLE_NAME,
        region=settings.AWS_REGION
    )
    stream = KinesisStream(
        stream_name=settings.KINESIS_STREAM_NAME,
        region=settings.AWS_REGION,
        batch_size=settings.KINESIS_BATCH_SIZE
    )
    return store, cache, stream


__all__ = [
    'EventStream',
    'StateCache',
    'StoreOfRecord',
    'MemoryStateCache',
    'MemoryStore',
    'MemoryStream',
    'create_backends',
]
