# ambutrack/store.py
"""
In-memory dispatch store.

The store is the single authoritative repository for ambulances, requests and
hospitals. It allocates monotonically increasing integer ids per entity type,
keeps a secondary index from driver id to ambulance, and serialises every
mutation behind one re-entrant lock.

Conventions:
- "Not found" is a normal outcome and is returned as ``None``.
- Malformed input raises :class:`~ambutrack.errors.ValidationError`.
- Callers get copies; records are only ever changed through store methods.
- The request state machine is NOT enforced here, see ``lifecycle.py``.
"""

from __future__ import annotations

import csv
import logging
import os
import threading
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ValidationError
from .events import ChangeFeed
from .models import (
    Ambulance,
    AmbulanceStatus,
    EmergencyRequest,
    Hospital,
    OwnershipType,
    RequestStatus,
    to_payload,
    utc_now,
)

logger = logging.getLogger(__name__)

AMBULANCE_FIELDS = ("driver_id", "driver_name", "driver_email", "phone", "lat", "lng", "type", "status")
REQUEST_FIELDS = ("patient_name", "patient_phone", "emergency", "lat", "lng", "driver_id", "status")
HOSPITAL_FIELDS = ("name", "address", "phone", "lat", "lng", "rating", "specialties", "type")


def _require_text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{key}' is required")
    return value.strip()


def _coerce_coordinate(value: Any, key: str) -> float:
    # bool is an int subclass but never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"'{key}' must be a number")
    return float(value)


def _check_fields(data: Mapping[str, Any], allowed: Iterable[str], entity: str) -> None:
    unknown = set(data) - set(allowed)
    if unknown:
        raise ValidationError(f"Unknown {entity} field(s): {', '.join(sorted(unknown))}")


class DispatchStore:
    """
    Repository for ambulances, requests and hospitals.

    Attributes:
        feed: Change feed notified after every mutation
        lock: Re-entrant lock guarding all records. The lifecycle controller
            holds it to make multi-record transitions atomic.
    """

    def __init__(self, feed: Optional[ChangeFeed] = None) -> None:
        self.feed = feed or ChangeFeed()
        self.lock = threading.RLock()

        self._ambulances: Dict[int, Ambulance] = {}
        self._ambulance_ids: Dict[str, int] = {}  # driver_id -> ambulance id
        self._requests: Dict[int, EmergencyRequest] = {}
        self._hospitals: Dict[int, Hospital] = {}

        self._next_ambulance_id = 1
        self._next_request_id = 1
        self._next_hospital_id = 1

    def _publish(self, collection: str, action: str, record) -> None:
        self.feed.publish(collection, action, to_payload(record))

    # -------------------------------------------------------------------------
    # Ambulances
    # -------------------------------------------------------------------------

    def list_ambulances(self) -> List[Ambulance]:
        with self.lock:
            return [replace(a) for a in self._ambulances.values()]

    def get_ambulance_by_driver_id(self, driver_id: str) -> Optional[Ambulance]:
        with self.lock:
            ambulance_id = self._ambulance_ids.get(driver_id)
            if ambulance_id is None:
                return None
            return replace(self._ambulances[ambulance_id])

    def upsert_ambulance(self, data: Mapping[str, Any]) -> Ambulance:
        """
        Create an ambulance, or merge ``data`` into the existing record for its driver.

        Only the keys present in ``data`` are changed on an existing record.
        New records default to ``available``.

        Raises:
            ValidationError: On unknown fields, blank text or non-numeric coordinates
        """
        _check_fields(data, AMBULANCE_FIELDS, "ambulance")
        driver_id = _require_text(data, "driver_id")

        changes: Dict[str, Any] = {}
        for key in ("driver_name", "driver_email", "phone"):
            if key in data:
                changes[key] = _require_text(data, key)
        for key in ("lat", "lng"):
            if key in data:
                changes[key] = _coerce_coordinate(data[key], key)
        if "type" in data:
            changes["type"] = OwnershipType.parse(data["type"])
        if data.get("status") is not None:
            changes["status"] = AmbulanceStatus.parse(data["status"])

        with self.lock:
            ambulance_id = self._ambulance_ids.get(driver_id)
            if ambulance_id is not None:
                updated = replace(self._ambulances[ambulance_id], **changes, last_updated=utc_now())
                self._ambulances[ambulance_id] = updated
                self._publish("ambulances", "updated", updated)
                return replace(updated)

            missing = [k for k in ("driver_name", "driver_email", "phone", "lat", "lng", "type") if k not in changes]
            if missing:
                raise ValidationError(f"Missing ambulance field(s): {', '.join(missing)}")

            ambulance = Ambulance(
                id=self._next_ambulance_id,
                driver_id=driver_id,
                driver_name=changes["driver_name"],
                driver_email=changes["driver_email"],
                phone=changes["phone"],
                lat=changes["lat"],
                lng=changes["lng"],
                type=changes["type"],
                status=changes.get("status", AmbulanceStatus.AVAILABLE),
            )
            self._next_ambulance_id += 1
            self._ambulances[ambulance.id] = ambulance
            self._ambulance_ids[driver_id] = ambulance.id
            self._publish("ambulances", "created", ambulance)
            return replace(ambulance)

    def update_ambulance_location(self, driver_id: str, lat: float, lng: float) -> Optional[Ambulance]:
        """Move an ambulance. Returns None if the driver has no ambulance."""
        lat = _coerce_coordinate(lat, "lat")
        lng = _coerce_coordinate(lng, "lng")
        with self.lock:
            ambulance_id = self._ambulance_ids.get(driver_id)
            if ambulance_id is None:
                return None
            updated = replace(self._ambulances[ambulance_id], lat=lat, lng=lng, last_updated=utc_now())
            self._ambulances[ambulance_id] = updated
            self._publish("ambulances", "location", updated)
            return replace(updated)

    def update_ambulance_status(self, driver_id: str, status) -> Optional[Ambulance]:
        """
        Set an ambulance's status. Returns None if the driver has no ambulance.

        Raises:
            ValidationError: If ``status`` is not one of available/busy/offline
        """
        status = AmbulanceStatus.parse(status)
        with self.lock:
            ambulance_id = self._ambulance_ids.get(driver_id)
            if ambulance_id is None:
                return None
            updated = replace(self._ambulances[ambulance_id], status=status, last_updated=utc_now())
            self._ambulances[ambulance_id] = updated
            self._publish("ambulances", "status", updated)
            return replace(updated)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def list_requests(self, status=None) -> List[EmergencyRequest]:
        """All requests, optionally only those in ``status``."""
        wanted = RequestStatus.parse(status) if status else None
        with self.lock:
            return [
                replace(r) for r in self._requests.values()
                if wanted is None or r.status == wanted
            ]

    def get_request(self, request_id: int) -> Optional[EmergencyRequest]:
        with self.lock:
            request = self._requests.get(request_id)
            return replace(request) if request is not None else None

    def create_request(self, data: Mapping[str, Any]) -> EmergencyRequest:
        """
        Store a new patient request with status ``pending``.

        Raises:
            ValidationError: If patient name, phone or emergency is blank,
                or coordinates are not numeric
        """
        _check_fields(data, REQUEST_FIELDS, "request")
        patient_name = _require_text(data, "patient_name")
        patient_phone = _require_text(data, "patient_phone")
        emergency = _require_text(data, "emergency")

        lat = data.get("lat")
        lng = data.get("lng")
        if lat is not None:
            lat = _coerce_coordinate(lat, "lat")
        if lng is not None:
            lng = _coerce_coordinate(lng, "lng")

        status = RequestStatus.parse(data.get("status") or RequestStatus.PENDING)
        if status != RequestStatus.PENDING:
            raise ValidationError("New requests must start as 'pending'")

        with self.lock:
            request = EmergencyRequest(
                id=self._next_request_id,
                patient_name=patient_name,
                patient_phone=patient_phone,
                emergency=emergency,
                lat=lat,
                lng=lng,
                driver_id=data.get("driver_id") or None,
            )
            self._next_request_id += 1
            self._requests[request.id] = request
            self._publish("requests", "created", request)
            return replace(request)

    def update_request_status(
        self,
        request_id: int,
        status,
        driver_id: Optional[str] = None
    ) -> Optional[EmergencyRequest]:
        """
        Merge ``status`` (and ``driver_id`` if given) into a request.

        No transition rules are applied here.
        Returns None if the request does not exist.
        """
        status = RequestStatus.parse(status)
        with self.lock:
            request = self._requests.get(request_id)
            if request is None:
                return None
            changes: Dict[str, Any] = {"status": status}
            if driver_id:
                changes["driver_id"] = driver_id
            updated = replace(request, **changes)
            self._requests[request_id] = updated
            self._publish("requests", "status", updated)
            return replace(updated)

    # -------------------------------------------------------------------------
    # Hospitals
    # -------------------------------------------------------------------------

    def list_hospitals(self) -> List[Hospital]:
        with self.lock:
            return list(self._hospitals.values())

    def get_hospital(self, hospital_id: int) -> Optional[Hospital]:
        with self.lock:
            return self._hospitals.get(hospital_id)

    def create_hospital(self, data: Mapping[str, Any]) -> Hospital:
        _check_fields(data, HOSPITAL_FIELDS, "hospital")
        rating = data.get("rating")
        if isinstance(rating, bool) or not isinstance(rating, (int, float)) or not 0 <= rating <= 5:
            raise ValidationError("'rating' must be a number between 0 and 5")
        specialties = data.get("specialties") or []
        if isinstance(specialties, str) or not all(isinstance(s, str) for s in specialties):
            raise ValidationError("'specialties' must be a list of strings")

        fields = dict(
            name=_require_text(data, "name"),
            address=_require_text(data, "address"),
            phone=_require_text(data, "phone"),
            lat=_coerce_coordinate(data.get("lat"), "lat"),
            lng=_coerce_coordinate(data.get("lng"), "lng"),
            rating=float(rating),
            specialties=tuple(s.strip() for s in specialties if s.strip()),
            type=OwnershipType.parse(data.get("type")),
        )
        # Hospitals are frozen, so the stored instance can be shared
        with self.lock:
            hospital = Hospital(id=self._next_hospital_id, **fields)
            self._next_hospital_id += 1
            self._hospitals[hospital.id] = hospital
            self._publish("hospitals", "created", hospital)
            return hospital

    def search_hospitals_by_specialty(self, specialty: Optional[str]) -> List[Hospital]:
        """Case-insensitive substring match on specialty tags. Blank returns all."""
        if not specialty or not specialty.strip():
            return self.list_hospitals()
        needle = specialty.strip().lower()
        with self.lock:
            return [
                h for h in self._hospitals.values()
                if any(needle in s.lower() for s in h.specialties)
            ]

    # -------------------------------------------------------------------------
    # Seed data
    # -------------------------------------------------------------------------

    def load_seed_data(self, ambulance_file: str, hospital_file: str) -> Tuple[int, int]:
        """
        Load sample ambulances and hospitals from CSV files.

        Args:
            ambulance_file: Path to ambulances CSV
            hospital_file: Path to hospitals CSV (specialties separated by ';')

        Returns:
            Tuple of (ambulances_loaded, hospitals_loaded)

        Raises:
            FileNotFoundError: If files don't exist
            ValueError: If file format is invalid
        """
        if not os.path.exists(ambulance_file):
            raise FileNotFoundError(f"Ambulance file not found: {ambulance_file}")
        if not os.path.exists(hospital_file):
            raise FileNotFoundError(f"Hospital file not found: {hospital_file}")

        ambulances = 0
        with open(ambulance_file, 'r', newline='') as f:
            reader = csv.DictReader(f)
            for row in reader:
                try:
                    self.upsert_ambulance({
                        "driver_id": row['driver_id'],
                        "driver_name": row['driver_name'],
                        "driver_email": row['driver_email'],
                        "phone": row['phone'],
                        "lat": float(row['lat']),
                        "lng": float(row['lng']),
                        "type": row['type'],
                        "status": row.get('status') or None,
                    })
                except (KeyError, ValueError) as e:
                    raise ValueError(f"Invalid ambulance data in {ambulance_file}: {e}")
                ambulances += 1

        hospitals = 0
        with open(hospital_file, 'r', newline='') as f:
            reader = csv.DictReader(f)
            for row in reader:
                try:
                    self.create_hospital({
                        "name": row['name'],
                        "address": row['address'],
                        "phone": row['phone'],
                        "lat": float(row['lat']),
                        "lng": float(row['lng']),
                        "rating": float(row['rating']),
                        "specialties": row['specialties'].split(';'),
                        "type": row['type'],
                    })
                except (KeyError, ValueError) as e:
                    raise ValueError(f"Invalid hospital data in {hospital_file}: {e}")
                hospitals += 1

        logger.info(f"Loaded {ambulances} ambulances and {hospitals} hospitals")
        return ambulances, hospitals
