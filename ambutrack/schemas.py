# ambutrack/schemas.py
"""Pydantic schemas for the dispatch REST payloads."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, field_validator
from pydantic.alias_generators import to_camel

from .models import AmbulanceStatus, OwnershipType, RequestStatus
from .tracking import LocationStatus

# Numbers only: "28.6" or true are rejected rather than coerced
Number = Union[StrictFloat, StrictInt]


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _not_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("Field is required")
    return value.strip() if value is not None else None


# Ambulances -----------------------------------------------------------------

class AmbulanceUpsert(ApiModel):
    driver_id: str
    driver_name: Optional[str] = None
    driver_email: Optional[str] = None
    phone: Optional[str] = None
    lat: Optional[Number] = None
    lng: Optional[Number] = None
    type: Optional[str] = None
    status: Optional[str] = None

    @field_validator("driver_id", "driver_name", "driver_email", "phone")
    @classmethod
    def not_blank(cls, value: Optional[str]) -> Optional[str]:
        return _not_blank(value)


class AmbulanceRead(ApiModel):
    id: int
    driver_id: str
    driver_name: str
    driver_email: str
    phone: str
    lat: float
    lng: float
    type: OwnershipType
    status: AmbulanceStatus
    last_updated: datetime


class LocationUpdate(ApiModel):
    lat: Number
    lng: Number


class StatusUpdate(ApiModel):
    status: StrictStr


class NearestAmbulanceRead(ApiModel):
    ambulance: AmbulanceRead
    distance_km: float
    eta_seconds: float


# Requests -------------------------------------------------------------------

class RequestCreate(ApiModel):
    patient_name: str
    patient_phone: str
    emergency: str
    lat: Optional[Number] = None
    lng: Optional[Number] = None
    status: Optional[str] = None

    @field_validator("patient_name", "patient_phone", "emergency")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


class RequestRead(ApiModel):
    id: int
    patient_name: str
    patient_phone: str
    emergency: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    driver_id: Optional[str] = None
    status: RequestStatus
    created_at: datetime


class RequestStatusUpdate(ApiModel):
    status: StrictStr
    driver_id: Optional[StrictStr] = None


# Hospitals ------------------------------------------------------------------

class HospitalCreate(ApiModel):
    name: str
    address: str
    phone: str
    lat: Number
    lng: Number
    rating: Number
    specialties: List[str]
    type: str

    @field_validator("name", "address", "phone")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)

    @field_validator("rating")
    @classmethod
    def rating_in_range(cls, value: float) -> float:
        if not 0 <= value <= 5:
            raise ValueError("rating must be between 0 and 5")
        return value


class HospitalRead(ApiModel):
    id: int
    name: str
    address: str
    phone: str
    lat: float
    lng: float
    rating: float
    specialties: List[str]
    type: OwnershipType


class HospitalNearbyRead(ApiModel):
    hospital: HospitalRead
    distance_km: float


# Tracking -------------------------------------------------------------------

class RouteRead(ApiModel):
    path: List[Tuple[float, float]]
    distance_meters: float
    duration_seconds: float
    source: str


class TrackingRead(ApiModel):
    request_id: int
    request_status: str
    driver_id: Optional[str] = None
    ambulance_location: Optional[Tuple[float, float]] = None
    patient_location: Optional[Tuple[float, float]] = None
    location_status: LocationStatus
    route: Optional[RouteRead] = None
    remaining_meters: Optional[float] = None
    eta_seconds: Optional[float] = None
    eta_text: Optional[str] = None
    simulating: bool = False
    notice: Optional[str] = None
