# ambutrack/tracking.py
"""
Tracking sessions: route and ETA between an assigned ambulance and its patient.

A session is opened per request the first time it is tracked. It keeps the
last computed route and only asks the estimator for a new one when either
end has moved off it by more than ``ROUTE_RECOMPUTE_THRESHOLD_METERS``.
In between, the ETA is recomputed from the distance left along the cached
route, so a simulated ambulance sees its ETA count down without refetching.

Nothing here ever fails just because a collaborator is down: a missing
patient location or a routing outage produces a snapshot with a notice
instead of an error.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from . import config, utils
from .errors import ValidationError
from .models import Coordinate, EmergencyRequest, Route
from .routing import RouteEstimator
from .simulator import LocationSimulator
from .store import DispatchStore

logger = logging.getLogger(__name__)

GeolocationProvider = Callable[[], Union[Coordinate, Awaitable[Coordinate]]]


class LocationStatus(Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass
class LocationFix:
    """Result of asking a geolocation provider for a position."""
    status: LocationStatus
    lat: Optional[float] = None
    lng: Optional[float] = None
    error: Optional[str] = None

    @property
    def location(self) -> Optional[Coordinate]:
        if self.status != LocationStatus.AVAILABLE:
            return None
        return (self.lat, self.lng)


async def acquire_location(
    provider: GeolocationProvider,
    timeout: float = config.GEOLOCATION_TIMEOUT_SECONDS
) -> LocationFix:
    """
    Resolve a position from ``provider`` within ``timeout`` seconds.

    The provider may be a plain callable or return an awaitable. Errors and
    timeouts are reported as an UNAVAILABLE fix, never raised.
    """
    try:
        result = provider()
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout)
        lat, lng = result
        return LocationFix(LocationStatus.AVAILABLE, float(lat), float(lng))
    except asyncio.TimeoutError:
        logger.warning(f"Geolocation timed out after {timeout}s")
        return LocationFix(LocationStatus.UNAVAILABLE, error="timeout")
    except Exception as e:
        logger.warning(f"Geolocation failed: {e}")
        return LocationFix(LocationStatus.UNAVAILABLE, error=str(e))


def _to_plane(origin: Coordinate, point: Coordinate) -> Tuple[float, float]:
    """Equirectangular projection in meters around ``origin``. Fine at city scale."""
    k = config.EARTH_RADIUS_KM * 1000 * math.pi / 180
    x = (point[1] - origin[1]) * k * math.cos(math.radians(origin[0]))
    y = (point[0] - origin[0]) * k
    return x, y


def project_onto_path(path: List[Coordinate], position: Coordinate) -> Tuple[int, float, float]:
    """
    Find where ``position`` sits on ``path``.

    Returns:
        Tuple of (segment_index, fraction_along_segment, offset_meters) for the
        closest segment. A single-point path returns (0, 0.0, distance to it).
    """
    if len(path) == 1:
        return 0, 0.0, utils.haversine_distance(*path[0], *position) * 1000

    best = (0, 0.0, float('inf'))
    for index, (start, end) in enumerate(zip(path, path[1:])):
        ex, ey = _to_plane(start, end)
        px, py = _to_plane(start, position)
        length_sq = ex * ex + ey * ey
        fraction = 0.0 if length_sq == 0 else max(0.0, min(1.0, (px * ex + py * ey) / length_sq))
        offset = math.hypot(px - ex * fraction, py - ey * fraction)
        if offset < best[2]:
            best = (index, fraction, offset)
    return best


def remaining_distance_meters(path: List[Coordinate], position: Coordinate) -> float:
    """Distance left along ``path`` from the point closest to ``position``."""
    index, fraction, _ = project_onto_path(path, position)
    if len(path) == 1:
        return 0.0
    start, end = path[index], path[index + 1]
    remaining = utils.haversine_distance(*start, *end) * (1 - fraction)
    for a, b in zip(path[index + 1:], path[index + 2:]):
        remaining += utils.haversine_distance(*a, *b)
    return remaining * 1000


def remaining_path(path: List[Coordinate], position: Coordinate) -> List[Coordinate]:
    """The rest of ``path`` starting from ``position``."""
    if len(path) == 1:
        return [position, path[0]]
    index, _, _ = project_onto_path(path, position)
    return [position] + list(path[index + 1:])


@dataclass
class TrackingSnapshot:
    """What a patient sees on the tracking page."""
    request_id: int
    request_status: str
    driver_id: Optional[str] = None
    ambulance_location: Optional[Coordinate] = None
    patient_location: Optional[Coordinate] = None
    location_status: LocationStatus = LocationStatus.UNAVAILABLE
    route: Optional[Route] = None
    remaining_meters: Optional[float] = None
    eta_seconds: Optional[float] = None
    simulating: bool = False
    notice: Optional[str] = None

    @property
    def eta_text(self) -> Optional[str]:
        if self.eta_seconds is None:
            return None
        return utils.format_eta(self.eta_seconds)


class TrackingService:
    """
    Per-request tracking sessions over a store, a route estimator and a simulator.

    Args:
        store: The dispatch store
        estimator: Route estimator (primary + fallback)
        simulator: Location simulator owning the movement tasks
        geolocator: Optional provider used when a request has no coordinates
    """

    def __init__(
        self,
        store: DispatchStore,
        estimator: Optional[RouteEstimator] = None,
        simulator: Optional[LocationSimulator] = None,
        geolocator: Optional[GeolocationProvider] = None,
    ) -> None:
        self.store = store
        self.estimator = estimator or RouteEstimator()
        self.simulator = simulator or LocationSimulator()
        self.geolocator = geolocator
        self._routes: Dict[int, Route] = {}  # request id -> last route
        self._lock = threading.Lock()

    def snapshot(self, request_id: int, patient_location: Optional[Coordinate] = None) -> Optional[TrackingSnapshot]:
        """
        Current position, route and ETA for a request. None if the request is unknown.

        Blocks on the route estimator, so call it from a worker thread inside
        an event loop.
        """
        request = self.store.get_request(request_id)
        if request is None:
            return None

        snapshot = TrackingSnapshot(
            request_id=request.id,
            request_status=request.status.value,
            driver_id=request.driver_id,
            patient_location=patient_location or request.location,
        )
        if snapshot.patient_location is not None:
            snapshot.location_status = LocationStatus.AVAILABLE

        if request.is_terminal:
            self.end_session(request_id)
            snapshot.notice = f"Request is {request.status.value}"
            return snapshot
        if not request.driver_id:
            snapshot.notice = "Waiting for a driver to accept the request"
            return snapshot

        ambulance = self.store.get_ambulance_by_driver_id(request.driver_id)
        if ambulance is None:
            snapshot.notice = "Assigned ambulance is no longer registered"
            return snapshot
        snapshot.ambulance_location = ambulance.location
        snapshot.simulating = self.simulator.is_running(ambulance.driver_id)

        if snapshot.patient_location is None:
            snapshot.notice = "Patient location unavailable"
            return snapshot

        route = self._route_for(request, ambulance.location, snapshot.patient_location)
        snapshot.route = route
        snapshot.remaining_meters = remaining_distance_meters(route.path, ambulance.location)
        snapshot.eta_seconds = self._eta(route, snapshot.remaining_meters)
        if route.is_fallback:
            snapshot.notice = "Live routing unavailable, showing a straight-line estimate"
        return snapshot

    async def snapshot_async(self, request_id: int) -> Optional[TrackingSnapshot]:
        """
        Like :meth:`snapshot`, but runs the estimator in a worker thread and
        asks the geolocator for a patient position when the request has none.
        """
        patient_location = None
        if self.geolocator is not None:
            request = self.store.get_request(request_id)
            if request is not None and request.location is None:
                patient_location = (await acquire_location(self.geolocator)).location
        return await asyncio.to_thread(self.snapshot, request_id, patient_location)

    def _route_for(self, request: EmergencyRequest, ambulance: Coordinate, patient: Coordinate) -> Route:
        threshold = config.ROUTE_RECOMPUTE_THRESHOLD_METERS
        with self._lock:
            route = self._routes.get(request.id)
        # Fallback routes are never reused
        if route is not None and not route.is_fallback:
            patient_moved = utils.moved_more_than(route.destination, patient, threshold)
            off_route = project_onto_path(route.path, ambulance)[2] > threshold
            if not patient_moved and not off_route:
                return route

        route = self.estimator.compute_route(ambulance[0], ambulance[1], patient[0], patient[1])
        logger.debug(f"Route for request {request.id}: {route}")
        with self._lock:
            self._routes[request.id] = route
        return route

    @staticmethod
    def _eta(route: Route, remaining_meters: float) -> float:
        if route.distance_meters <= 0:
            return 0.0
        return route.duration_seconds * min(1.0, remaining_meters / route.distance_meters)

    # -------------------------------------------------------------------------
    # Simulation
    # -------------------------------------------------------------------------

    async def start_simulation(self, request_id: int) -> Optional[TrackingSnapshot]:
        """
        Drive the assigned ambulance along the current route to the patient.

        Positions are written to the store as they are emitted. Must be
        awaited on the event loop that owns the simulator.

        Raises:
            ValidationError: If the request has no route to follow yet
        """
        snapshot = await self.snapshot_async(request_id)
        if snapshot is None:
            return None
        if snapshot.route is None:
            raise ValidationError(snapshot.notice or "Nothing to simulate")

        driver_id = snapshot.driver_id

        def persist(lat: float, lng: float) -> None:
            self.store.update_ambulance_location(driver_id, lat, lng)

        path = remaining_path(snapshot.route.path, snapshot.ambulance_location)
        self.simulator.start_route(driver_id, path, persist)
        snapshot.simulating = True
        return snapshot

    def start_jitter(self, driver_id: str, max_ticks: Optional[int] = None) -> bool:
        """
        Jitter a driver's own position when they have no route. Returns False
        if the driver has no ambulance. Must be called on the event loop.
        """
        ambulance = self.store.get_ambulance_by_driver_id(driver_id)
        if ambulance is None:
            return False

        def persist(lat: float, lng: float) -> None:
            self.store.update_ambulance_location(driver_id, lat, lng)

        self.simulator.start_jitter(driver_id, ambulance.lat, ambulance.lng, persist, max_ticks=max_ticks)
        return True

    def stop_simulation(self, driver_id: str) -> bool:
        return self.simulator.stop(driver_id)

    def end_session(self, request_id: int) -> None:
        """Forget the cached route for a request."""
        with self._lock:
            self._routes.pop(request_id, None)
