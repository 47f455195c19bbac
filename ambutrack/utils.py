# ambutrack/utils.py
"""
Utility functions for the ambulance dispatch service.

Provides geographic calculations and ETA formatting helpers.
"""

from __future__ import annotations

import math
from typing import Tuple

from . import config


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula to compute the distance between two GPS coordinates.
    Inputs are trusted; out-of-range latitudes or longitudes are not checked.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points

    Example:
        >>> haversine_distance(28.6139, 77.2090, 28.6200, 77.2100)
        0.685  # ~685 meters
    """
    # Convert decimal degrees to radians
    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    # Clamp guards against a > 1 from float rounding on antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return c * config.EARTH_RADIUS_KM


def get_cache_key(lat1: float, lon1: float, lat2: float, lon2: float) -> Tuple[float, float, float, float]:
    """Create a cache key with rounded coordinates (5 decimal places ≈ 1m precision)."""
    return (round(lat1, 5), round(lon1, 5), round(lat2, 5), round(lon2, 5))


def calculate_travel_time_seconds(distance_km: float) -> float:
    """
    Calculate estimated travel time for a given distance.

    Uses the average urban speed from config to estimate travel duration.

    Args:
        distance_km: Distance in kilometers

    Returns:
        Estimated travel time in seconds

    Example:
        >>> calculate_travel_time_seconds(5.0)  # 5km at 30km/h
        600.0
    """
    if config.AVG_SPEED_KMH <= 0:
        return float('inf')
    return (distance_km / config.AVG_SPEED_KMH) * 3600


def format_eta(seconds: float) -> str:
    """
    Format an ETA in seconds as a human-readable string.

    Returns:
        Formatted string like "45s", "7 min" or "1h 05m"
    """
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes = math.ceil(seconds / 60)
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins:02d}m"


def interpolate(
    start: Tuple[float, float],
    end: Tuple[float, float],
    fraction: float
) -> Tuple[float, float]:
    """Linear interpolation between two (lat, lng) points, ``fraction`` in [0, 1]."""
    return (
        start[0] + (end[0] - start[0]) * fraction,
        start[1] + (end[1] - start[1]) * fraction,
    )


def moved_more_than(
    a: Tuple[float, float],
    b: Tuple[float, float],
    threshold_meters: float
) -> bool:
    """True if the two points are further apart than ``threshold_meters``."""
    return haversine_distance(a[0], a[1], b[0], b[1]) * 1000 > threshold_meters
