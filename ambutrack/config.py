# ambutrack/config.py
"""
Configuration parameters for the ambulance dispatch and tracking service.

This module centralizes all tunable parameters, making it easy to:
- Point the route estimator at a different OSRM server
- Tune the location simulator's cadence
- Adjust server and logging settings per deployment

Deployment-specific values can be overridden with ``AMBUTRACK_*``
environment variables. All parameters are documented with their purpose
and typical value ranges.
"""

import os
from pathlib import Path
from typing import Final


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# PHYSICS AND GEO CONSTANTS
# =============================================================================

EARTH_RADIUS_KM: Final[float] = 6371.0
"""Mean Earth radius used by the haversine formula."""

AVG_SPEED_KMH: float = 30.0
"""Average urban ambulance speed in km/h. Used for straight-line ETA estimates."""

# =============================================================================
# ROUTING (OSRM) CONFIGURATION
# =============================================================================

USE_ROAD_ROUTING: bool = _env_flag("AMBUTRACK_USE_ROAD_ROUTING", True)
"""
Query the OSRM routing service for road routes.
When False, every route is the straight-line estimate.
"""

OSRM_SERVER_URL: str = os.getenv("AMBUTRACK_OSRM_SERVER_URL", "https://router.project-osrm.org")
"""
OSRM server URL. Options:
- "https://router.project-osrm.org" (public demo, rate-limited)
- "http://localhost:5000" (local Docker instance)
"""

OSRM_TIMEOUT_SECONDS: float = 5.0
"""Timeout for OSRM API requests. Tracking must never block on the router."""

OSRM_CACHE_SIZE: int = 1000
"""Maximum number of route results to cache."""

ROUTE_RECOMPUTE_THRESHOLD_METERS: float = 50.0
"""
Minimum endpoint movement before a tracking session refetches its route.
Smaller moves reuse the previous route and only refresh the ETA.
"""

# =============================================================================
# LOCATION SIMULATOR
# =============================================================================

INTERPOLATION_STEPS: int = 15
"""Number of equal interpolation sub-steps between two consecutive waypoints."""

STEP_DELAY_SECONDS: float = 0.05
"""Delay between interpolation sub-steps (tens of milliseconds)."""

WAYPOINT_TICK_SECONDS: float = 0.5
"""Delay between consecutive waypoints (hundreds of milliseconds)."""

JITTER_TICK_SECONDS: float = 2.0
"""Tick interval for the GPS jitter mode used when no route is known."""

JITTER_DEGREES: float = 0.001
"""
Width of the random jitter window in degrees (~110 m of latitude).
Each tick moves the position by up to half this value on each axis.
"""

GEOLOCATION_TIMEOUT_SECONDS: float = 10.0
"""Upper bound for acquiring a position from a geolocation provider."""

# =============================================================================
# SERVER
# =============================================================================

HOST: str = os.getenv("AMBUTRACK_HOST", "127.0.0.1")
"""Interface the HTTP server binds to."""

PORT: int = int(os.getenv("AMBUTRACK_PORT", "8000"))
"""Port the HTTP server listens on."""

LOG_LEVEL: str = os.getenv("AMBUTRACK_LOG_LEVEL", "INFO")
"""Root log level configured by the CLI."""

SEED_DATA: bool = _env_flag("AMBUTRACK_SEED_DATA", True)
"""Load the sample ambulances and hospitals when the app starts."""

DATA_DIR: Path = Path(__file__).resolve().parent / "data"
"""Directory holding the seed CSV files."""

AMBULANCE_SEED_FILE: Path = DATA_DIR / "ambulances.csv"
HOSPITAL_SEED_FILE: Path = DATA_DIR / "hospitals.csv"

NEARBY_HOSPITAL_LIMIT: int = 10
"""Default number of hospitals returned by the nearby search."""
