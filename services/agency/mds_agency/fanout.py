"""
Best-effort fan-out of durably written records to the cache and the stream.

The store of record has already accepted the record by the time anything here
runs, so a failing cache or stream write is logged and counted but never
raised to the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List

from .storage.base import EventStream, StateCache, StoreOfRecord

logger = logging.getLogger(__name__)


class Diagnostics:
    """Counters surfaced on /metrics"""

    def __init__(self):
        self.events_accepted = 0
        self.events_rejected = 0
        self.telemetry_recorded = 0
        self.telemetry_duplicates = 0
        self.telemetry_rejected = 0
        self.fanout_failures = 0
        self.last_fanout_error = None

    def record_fanout_failure(self, label: str, error: BaseException):
        self.fanout_failures += 1
        self.last_fanout_error = f"{label}: {error}"

    def as_dict(self) -> Dict[str, Any]:
        return dict(vars(self))


async def fan_out(label: str, diagnostics: Diagnostics, *writes: Awaitable[Any]) -> List[BaseException]:
    """
    Run every write concurrently and wait for all of them.

    Returns the failures so callers can inspect them; they have already been
    logged and counted.
    """
    results = await asyncio.gather(*writes, return_exceptions=True)
    failures = [result for result in results if isinstance(result, BaseException)]
    for failure in failures:
        logger.warning(f"Failed to write {label} to cache/stream: {failure}")
        diagnostics.record_fanout_failure(label, failure)
    return failures


async def write_telemetry(
    store: StoreOfRecord,
    cache: StateCache,
    stream: EventStream,
    diagnostics: Diagnostics,
    telemetry: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Durably write telemetry, then forward only the newly recorded rows"""
    recorded = await store.write_telemetry(telemetry)
    if recorded:
        await fan_out(
            'telemetry',
            diagnostics,
            cache.write_telemetry(recorded),
            stream.write_telemetry(recorded)
        )
    return recorded
