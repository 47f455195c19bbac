# ambutrack/__init__.py

from .models import (
    Ambulance,
    AmbulanceStatus,
    EmergencyRequest,
    Hospital,
    OwnershipType,
    RequestStatus,
    Route,
)
from .config import (
    AVG_SPEED_KMH,
    OSRM_SERVER_URL,
    ROUTE_RECOMPUTE_THRESHOLD_METERS,
)
from .errors import DispatchError, InvalidTransitionError, ValidationError
from .store import DispatchStore
from .lifecycle import RequestLifecycle
from .routing import RouteEstimator
from .simulator import LocationSimulator, run_route_simulation
from .tracking import TrackingService
from .utils import haversine_distance

__version__ = "1.0.0"

__all__ = [
    # Models
    "Ambulance",
    "AmbulanceStatus",
    "EmergencyRequest",
    "Hospital",
    "OwnershipType",
    "RequestStatus",
    "Route",
    # Errors
    "DispatchError",
    "InvalidTransitionError",
    "ValidationError",
    # Core
    "DispatchStore",
    "RequestLifecycle",
    "RouteEstimator",
    "LocationSimulator",
    "TrackingService",
    # Functions
    "haversine_distance",
    "run_route_simulation",
    # Config
    "AVG_SPEED_KMH",
    "OSRM_SERVER_URL",
    "ROUTE_RECOMPUTE_THRESHOLD_METERS",
]
