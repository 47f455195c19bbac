# ambutrack/models.py
"""
Core domain models for the ambulance dispatch service.

This module defines the fundamental data structures used throughout the service:
- Ambulance: A driver/vehicle unit with live coordinates and availability
- EmergencyRequest: A patient's ask for an ambulance, with lifecycle status
- Hospital: A receiving facility with specialties
- Route: A computed path plus distance/duration between two points

The status enums carry their own transition tables so every state change
goes through the same guard.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .errors import ValidationError

Coordinate = Tuple[float, float]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _ClosedEnum(Enum):
    """Enum that parses raw strings and rejects anything outside its members."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(f"Invalid {cls.__name__} '{value}'. Expected one of: {allowed}")


class OwnershipType(_ClosedEnum):
    """Who operates an ambulance or hospital."""
    GOVERNMENT = "government"
    PRIVATE = "private"


class AmbulanceStatus(_ClosedEnum):
    """
    Availability states for an ambulance.

    The ambulance state machine:
    - AVAILABLE: On shift and can accept a request
    - BUSY: Assigned to exactly one accepted request
    - OFFLINE: Off shift. Reachable from any state, leaves only to AVAILABLE
    """
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class RequestStatus(_ClosedEnum):
    """Lifecycle states for a patient request."""
    PENDING = "pending"      # Created, waiting for a driver
    ACCEPTED = "accepted"    # A driver is on the way
    COMPLETED = "completed"  # Patient reached, terminal
    CANCELLED = "cancelled"  # Withdrawn, terminal


AMBULANCE_TRANSITIONS: Dict[AmbulanceStatus, FrozenSet[AmbulanceStatus]] = {
    AmbulanceStatus.AVAILABLE: frozenset({AmbulanceStatus.BUSY, AmbulanceStatus.OFFLINE}),
    AmbulanceStatus.BUSY: frozenset({AmbulanceStatus.AVAILABLE, AmbulanceStatus.OFFLINE}),
    AmbulanceStatus.OFFLINE: frozenset({AmbulanceStatus.AVAILABLE}),
}

REQUEST_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.ACCEPTED, RequestStatus.CANCELLED}),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}


def can_transition(current: _ClosedEnum, target: _ClosedEnum) -> bool:
    """Return True if ``current -> target`` is an edge of its state machine."""
    if isinstance(current, AmbulanceStatus):
        return target in AMBULANCE_TRANSITIONS[current]
    return target in REQUEST_TRANSITIONS[current]


@dataclass
class Ambulance:
    """
    Represents an ambulance unit and the driver operating it.

    Attributes:
        id: Store-allocated identifier
        driver_id: Natural key, one record per driver
        driver_name/driver_email/phone: Contact details
        lat/lng: Current position
        type: Government or private fleet
        status: Current availability
        last_updated: When position or status last changed
    """
    id: int
    driver_id: str
    driver_name: str
    driver_email: str
    phone: str
    lat: float
    lng: float
    type: OwnershipType
    status: AmbulanceStatus = AmbulanceStatus.AVAILABLE
    last_updated: datetime = field(default_factory=utc_now)

    @property
    def location(self) -> Coordinate:
        """Returns the current location as a (lat, lng) tuple."""
        return (self.lat, self.lng)

    def __repr__(self) -> str:
        return f"Ambulance({self.driver_id}, {self.status.value})"


@dataclass
class EmergencyRequest:
    """
    Represents a patient's request for an ambulance.

    Attributes:
        id: Store-allocated, monotonically increasing
        patient_name/patient_phone: Who to reach
        emergency: Free-text description
        lat/lng: Pickup location, if the patient shared one
        driver_id: Assigned driver, set together with ACCEPTED
        status: Current lifecycle state
        created_at: When the request was submitted
    """
    id: int
    patient_name: str
    patient_phone: str
    emergency: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    driver_id: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)

    @property
    def location(self) -> Optional[Coordinate]:
        if self.lat is None or self.lng is None:
            return None
        return (self.lat, self.lng)

    @property
    def is_terminal(self) -> bool:
        return not REQUEST_TRANSITIONS[self.status]

    def __repr__(self) -> str:
        return f"EmergencyRequest({self.id}, {self.status.value})"


@dataclass(frozen=True)
class Hospital:
    """A receiving hospital. Immutable once created."""
    id: int
    name: str
    address: str
    phone: str
    lat: float
    lng: float
    rating: float
    specialties: Tuple[str, ...]
    type: OwnershipType

    @property
    def location(self) -> Coordinate:
        return (self.lat, self.lng)


@dataclass
class Route:
    """
    A path between two points with its length and expected travel time.

    Attributes:
        path: Ordered (lat, lng) waypoints, first is the origin, last the destination
        distance_meters: Total route length
        duration_seconds: Expected travel time
        source: Provider that produced the route ('osrm' or 'straight_line')
    """
    path: List[Coordinate]
    distance_meters: float
    duration_seconds: float
    source: str = "straight_line"

    @property
    def origin(self) -> Coordinate:
        return self.path[0]

    @property
    def destination(self) -> Coordinate:
        return self.path[-1]

    @property
    def eta_minutes(self) -> float:
        return self.duration_seconds / 60

    @property
    def is_fallback(self) -> bool:
        return self.source == "straight_line"

    def __repr__(self) -> str:
        return f"Route({self.source}, {self.distance_meters:.0f}m, {self.duration_seconds:.0f}s)"


def to_payload(record) -> Dict[str, Any]:
    """Flatten a model instance into JSON-friendly primitives."""
    payload: Dict[str, Any] = {}
    for key, value in asdict(record).items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, tuple):
            value = list(value)
        payload[key] = value
    return payload
