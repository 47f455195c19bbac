# ambutrack/routing.py
"""
Route estimation for ambulance tracking.

Routes are produced by a two-tier provider chain:

1. **OSRM** (primary): real driving route with the road polyline, distance
   and duration reported by the routing service.
2. **Straight line** (fallback): a two-point path whose distance is the
   haversine distance and whose duration assumes the average urban speed.

A failure of the primary provider is logged and absorbed; callers always get
a ``Route`` back, degraded or not.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Protocol, Tuple

import requests

from . import config, utils
from .models import Coordinate, Route

logger = logging.getLogger(__name__)


class RouteProvider(Protocol):
    """Anything that can turn two points into a ``Route`` (or ``None`` on failure)."""

    name: str

    def fetch(self, origin: Coordinate, destination: Coordinate) -> Optional[Route]:
        ...


def _pin_endpoints(path: List[Coordinate], origin: Coordinate, destination: Coordinate) -> List[Coordinate]:
    """Make sure a snapped road polyline starts and ends at the requested points."""
    pinned = list(path)
    if not pinned or pinned[0] != origin:
        pinned.insert(0, origin)
    if pinned[-1] != destination:
        pinned.append(destination)
    return pinned


class OsrmRouteProvider:
    """
    Fetch driving routes from an OSRM server.

    Note:
        OSRM expects coordinates in lon,lat order (not lat,lon), and the
        GeoJSON geometry it returns is in the same order.
    """

    name = "osrm"

    def __init__(self, server_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.server_url = (server_url or config.OSRM_SERVER_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.OSRM_TIMEOUT_SECONDS

    def fetch(self, origin: Coordinate, destination: Coordinate) -> Optional[Route]:
        """
        Get the driving route between two points.

        Returns:
            A ``Route`` with the road polyline if successful, None if the
            request failed, timed out or returned something unusable
        """
        lat1, lon1 = origin
        lat2, lon2 = destination
        url = f"{self.server_url}/route/v1/driving/{lon1},{lat1};{lon2},{lat2}"

        try:
            response = requests.get(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout=self.timeout,
            )
            response.raise_for_status()

            data = response.json()

            if data.get("code") != "Ok" or not data.get("routes"):
                logger.warning(f"OSRM returned no route: {data.get('code')}")
                return None

            route = data["routes"][0]
            path = [(float(lat), float(lon)) for lon, lat in route["geometry"]["coordinates"]]
            if not path:
                logger.warning("OSRM returned an empty geometry")
                return None

            return Route(
                path=_pin_endpoints(path, origin, destination),
                distance_meters=float(route["distance"]),
                duration_seconds=float(route["duration"]),
                source=self.name,
            )

        except requests.exceptions.Timeout:
            logger.warning("OSRM request timed out")
            return None
        except requests.exceptions.RequestException as e:
            logger.warning(f"OSRM request failed: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"OSRM response parsing failed: {e}")
            return None


class StraightLineRouteProvider:
    """Straight-line estimate. Never fails."""

    name = "straight_line"

    def fetch(self, origin: Coordinate, destination: Coordinate) -> Route:
        distance_km = utils.haversine_distance(origin[0], origin[1], destination[0], destination[1])
        return Route(
            path=[origin, destination],
            distance_meters=distance_km * 1000,
            duration_seconds=utils.calculate_travel_time_seconds(distance_km),
            source=self.name,
        )


class RouteEstimator:
    """
    Compute routes with a primary provider and a deterministic fallback.

    Successful primary results are cached per rounded endpoint pair.
    Fallback results are not cached so the primary is retried next time.
    """

    def __init__(
        self,
        primary: Optional[RouteProvider] = None,
        fallback: Optional[StraightLineRouteProvider] = None,
        use_road_routing: Optional[bool] = None,
    ) -> None:
        if use_road_routing is None:
            use_road_routing = config.USE_ROAD_ROUTING
        self.primary: Optional[RouteProvider] = primary if primary is not None else (
            OsrmRouteProvider() if use_road_routing else None
        )
        self.fallback = fallback or StraightLineRouteProvider()
        self._cache: Dict[Tuple[float, float, float, float], Route] = {}
        self._cache_lock = threading.Lock()

    def compute_route(
        self,
        origin_lat: float, origin_lng: float,
        dest_lat: float, dest_lng: float
    ) -> Route:
        """
        Get a route between two points.

        Args:
            origin_lat: Latitude of origin in decimal degrees
            origin_lng: Longitude of origin in decimal degrees
            dest_lat: Latitude of destination in decimal degrees
            dest_lng: Longitude of destination in decimal degrees

        Returns:
            A route whose path starts at the origin and ends at the destination
        """
        origin = (origin_lat, origin_lng)
        destination = (dest_lat, dest_lng)

        cache_key = utils.get_cache_key(origin_lat, origin_lng, dest_lat, dest_lng)
        with self._cache_lock:
            cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        if self.primary is not None:
            route = self.primary.fetch(origin, destination)
            if route is not None:
                self._remember(cache_key, route)
                return route
            logger.debug("Falling back to straight-line route")

        return self.fallback.fetch(origin, destination)

    def _remember(self, key: Tuple[float, float, float, float], route: Route) -> None:
        with self._cache_lock:
            # Enforce cache size limit by dropping the oldest 10%
            if len(self._cache) >= config.OSRM_CACHE_SIZE:
                for old_key in list(self._cache.keys())[:max(1, config.OSRM_CACHE_SIZE // 10)]:
                    self._cache.pop(old_key, None)
            self._cache[key] = route

    def clear_cache(self) -> int:
        """Clear the route cache and return how many entries were dropped."""
        with self._cache_lock:
            count = len(self._cache)
            self._cache.clear()
        return count

    def cache_stats(self) -> dict:
        with self._cache_lock:
            size = len(self._cache)
        return {
            "size": size,
            "max_size": config.OSRM_CACHE_SIZE,
        }
