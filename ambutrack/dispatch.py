# ambutrack/dispatch.py
"""
Nearest-unit lookups for patients.

- ``find_nearest_ambulance``: nearest available ambulance to a patient,
  with a straight-line ETA so the booking screen can show something at once.
- ``rank_hospitals``: hospitals ordered by distance, optionally filtered by
  specialty.

Both are plain nearest-neighbour scans over the store; the fleet and the
hospital list are small enough that no spatial index is needed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from . import utils
from .models import Ambulance, AmbulanceStatus, Hospital
from .store import DispatchStore


@dataclass
class AmbulanceMatch:
    """An ambulance with its distance and rough ETA to the patient."""
    ambulance: Ambulance
    distance_km: float
    eta_seconds: float


@dataclass
class HospitalMatch:
    hospital: Hospital
    distance_km: float


def find_nearest_ambulance(
    store: DispatchStore,
    lat: float,
    lng: float,
    ambulance_type: Optional[str] = None
) -> Optional[AmbulanceMatch]:
    """
    Find the closest available ambulance to a patient.

    Args:
        store: Dispatch store to search
        lat: Patient latitude
        lng: Patient longitude
        ambulance_type: Restrict to 'government' or 'private' if given

    Returns:
        The best match, or None if no ambulance is available
    """
    best: Optional[Ambulance] = None
    min_dist: float = float('inf')

    for ambulance in store.list_ambulances():
        if ambulance.status != AmbulanceStatus.AVAILABLE:
            continue
        if ambulance_type and ambulance.type.value != ambulance_type.lower():
            continue
        dist = utils.haversine_distance(ambulance.lat, ambulance.lng, lat, lng)
        if dist < min_dist:
            min_dist = dist
            best = ambulance

    if best is None:
        return None
    return AmbulanceMatch(
        ambulance=best,
        distance_km=min_dist,
        eta_seconds=utils.calculate_travel_time_seconds(min_dist),
    )


def rank_hospitals(
    store: DispatchStore,
    lat: float,
    lng: float,
    specialty: Optional[str] = None,
    limit: Optional[int] = None
) -> List[HospitalMatch]:
    """Hospitals sorted nearest first, ties broken by higher rating."""
    matches = [
        HospitalMatch(hospital=h, distance_km=utils.haversine_distance(lat, lng, h.lat, h.lng))
        for h in store.search_hospitals_by_specialty(specialty)
    ]
    matches.sort(key=lambda m: (m.distance_km, -m.hospital.rating))
    if limit is not None:
        matches = matches[:limit]
    return matches
