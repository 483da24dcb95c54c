"""
Interfaces for the three backends the agency service writes to
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional


class StoreOfRecord(ABC):
    """Durable, authoritative storage. Enforces (device_id, timestamp) uniqueness."""

    @abstractmethod
    async def health_check(self) -> bool: ...

    @abstractmethod
    async def read_device(self, device_id: str, provider_id: Optional[str] = None) -> Dict[str, Any]:
        """Raises NotFoundError when the device is unknown to the provider"""

    @abstractmethod
    async def write_device(self, device: Dict[str, Any]) -> Dict[str, Any]:
        """Raises DuplicateError when the device_id is taken"""

    @abstractmethod
    async def update_device(self, device_id: str, provider_id: str, changes: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def read_device_ids(self, provider_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """[{device_id, provider_id}, ...]"""

    @abstractmethod
    async def read_device_list(self, device_ids: List[str]) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def read_event(self, device_id: str) -> Dict[str, Any]:
        """Latest event for the device. Raises NotFoundError."""

    @abstractmethod
    async def write_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Raises DuplicateError or NotFoundError (unregistered device)"""

    @abstractmethod
    async def read_telemetry(self, device_id: str) -> Dict[str, Any]:
        """Latest telemetry for the device. Raises NotFoundError."""

    @abstractmethod
    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Returns only the rows that were not already recorded"""


class StateCache(ABC):
    """Latest known device, event and telemetry per vehicle"""

    @abstractmethod
    async def read_device(self, device_id: str) -> Dict[str, Any]:
        """Raises NotFoundError"""

    @abstractmethod
    async def write_device(self, device: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def read_event(self, device_id: str) -> Dict[str, Any]:
        """Raises NotFoundError"""

    @abstractmethod
    async def read_events(self, device_ids: List[str]) -> List[Optional[Dict[str, Any]]]:
        """Aligned with device_ids; None where nothing is cached"""

    @abstractmethod
    async def write_event(self, event: Dict[str, Any]) -> None:
        """Events older than the cached one are ignored"""

    @abstractmethod
    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> None: ...


class EventStream(ABC):
    """Append-only log for downstream and audit consumers"""

    @abstractmethod
    async def write_device(self, device: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def write_event(self, event: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def write_telemetry(self, telemetry: List[Dict[str, Any]]) -> None: ...

    @abstractmethod
    async def write_event_error(self, error: Dict[str, Any]) -> None:
        """{provider_id, data, recorded, error_message} for a rejected submission"""

    @abstractmethod
    async def write_trip_metadata(self, trip_metadata: Dict[str, Any]) -> None: ...
