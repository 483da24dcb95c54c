"""
Data models for the MDS Agency service
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, List

from .utils import is_timestamp, is_uuid
from .vocabulary import (
    ACCESSIBILITY_OPTIONS,
    MODALITIES,
    PROPULSION_TYPES,
    RESERVATION_METHODS,
    RESERVATION_TYPES,
    VEHICLE_TYPES,
)

class ErrorObject(BaseModel):
    """Error payload returned to submitters"""
    error: str
    error_description: str
    error_details: Optional[Any] = None

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

class DeviceRegistration(BaseModel):
    """Body of a vehicle registration"""
    device_id: str
    vehicle_id: str = Field(..., min_length=1)
    vehicle_type: str
    propulsion_types: List[str] = Field(..., min_length=1)
    modality: str = "micromobility"
    accessibility_options: List[str] = Field(default_factory=list)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    mfgr: Optional[str] = None
    model: Optional[str] = None

    @field_validator('device_id')
    @classmethod
    def check_device_id(cls, v):
        if not is_uuid(v):
            raise ValueError(f"invalid device_id {v} is not a UUID")
        return v.lower()

    @field_validator('vehicle_type')
    @classmethod
    def check_vehicle_type(cls, v):
        if v not in VEHICLE_TYPES:
            raise ValueError(f"invalid vehicle_type {v}")
        return v

    @field_validator('propulsion_types')
    @classmethod
    def check_propulsion_types(cls, v):
        for propulsion in v:
            if propulsion not in PROPULSION_TYPES:
                raise ValueError(f"invalid propulsion_type {propulsion}")
        return v

    @field_validator('modality')
    @classmethod
    def check_modality(cls, v):
        if v not in MODALITIES:
            raise ValueError(f"invalid modality {v}")
        return v

    @field_validator('accessibility_options')
    @classmethod
    def check_accessibility_options(cls, v):
        for option in v:
            if option not in ACCESSIBILITY_OPTIONS:
                raise ValueError(f"invalid accessibility_option {option}")
        return v

class VehicleUpdate(BaseModel):
    """Only vehicle_id may change after registration"""
    vehicle_id: str = Field(..., min_length=1)

class Location(BaseModel):
    """A point without the rest of the telemetry"""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

class TripFare(BaseModel):
    quoted_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    components: Optional[Dict[str, float]] = None
    currency: Optional[str] = None
    payment_methods: Optional[List[str]] = None

class TripMetadata(BaseModel):
    """
    Trip details known only to the provider, reported once per trip.

    The shape is still a proposal, so unknown fields are kept as sent.
    """
    trip_id: str
    provider_id: str
    reservation_method: Optional[str] = None
    reservation_time: Optional[int] = None
    reservation_type: Optional[str] = None
    quoted_trip_start_time: Optional[int] = None
    requested_trip_start_location: Optional[Location] = None
    dispatch_time: Optional[int] = None
    trip_start_time: Optional[int] = None
    trip_end_time: Optional[int] = None
    distance: Optional[float] = Field(None, ge=0)
    accessibility_options: List[str] = Field(default_factory=list)
    fare: Optional[TripFare] = None

    class Config:
        extra = "allow"

    @field_validator('trip_id')
    @classmethod
    def check_trip_id(cls, v):
        if not is_uuid(v):
            raise ValueError(f"invalid trip_id {v} is not a UUID")
        return v.lower()

    @field_validator('reservation_method')
    @classmethod
    def check_reservation_method(cls, v):
        if v is not None and v not in RESERVATION_METHODS:
            raise ValueError(f"invalid reservation_method {v}")
        return v

    @field_validator('reservation_type')
    @classmethod
    def check_reservation_type(cls, v):
        if v is not None and v not in RESERVATION_TYPES:
            raise ValueError(f"invalid reservation_type {v}")
        return v

    @field_validator(
        'reservation_time', 'quoted_trip_start_time', 'dispatch_time', 'trip_start_time', 'trip_end_time'
    )
    @classmethod
    def check_timestamps(cls, v, info):
        if v is not None and not is_timestamp(v):
            raise ValueError(f"invalid {info.field_name} {v} (note: should be in milliseconds)")
        return v

    @field_validator('accessibility_options')
    @classmethod
    def check_accessibility_options(cls, v):
        for option in v:
            if option not in ACCESSIBILITY_OPTIONS:
                raise ValueError(f"invalid accessibility_option {option}")
        return v


class HealthStatus(BaseModel):
    """Service health status"""
    status: str  # healthy, unhealthy
    timestamp: str
    components: Dict[str, str]
