# ambutrack/lifecycle.py
"""
Request lifecycle controller.

All status changes for requests and ambulances go through guarded transition
functions here instead of free-form field assignment:

    pending --accept--> accepted --complete--> completed
       |                   |
       +------cancel-------+---------------> cancelled

Accepting a request marks the driver's ambulance ``busy`` in the same
transaction (both writes happen under the store lock), and completing or
cancelling an accepted request releases it back to ``available``.
Illegal moves raise :class:`~ambutrack.errors.InvalidTransitionError`;
unknown request ids return ``None``.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .errors import InvalidTransitionError, ValidationError
from .models import (
    Ambulance,
    AmbulanceStatus,
    EmergencyRequest,
    RequestStatus,
    can_transition,
)
from .store import DispatchStore

logger = logging.getLogger(__name__)


class RequestLifecycle:
    """Orchestrates request creation, acceptance and termination against a store."""

    def __init__(self, store: DispatchStore) -> None:
        self.store = store

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def create_request(self, data: Mapping[str, Any]) -> EmergencyRequest:
        if data.get("driver_id"):
            raise ValidationError("A driver can only be assigned by accepting the request")
        request = self.store.create_request(data)
        logger.info(f"Request {request.id} created for {request.patient_name}")
        return request

    def accept_request(self, request_id: int, driver_id: Optional[str]) -> Optional[EmergencyRequest]:
        """
        Assign a pending request to a driver and mark their ambulance busy.

        Raises:
            ValidationError: If no driver id is given or the driver has no ambulance
            InvalidTransitionError: If the request is not pending (double accept)
                or the ambulance is not available
        """
        if not driver_id or not driver_id.strip():
            raise ValidationError("A driver id is required to accept a request")

        with self.store.lock:
            request = self.store.get_request(request_id)
            if request is None:
                return None
            self._check_request(request, RequestStatus.ACCEPTED)

            ambulance = self.store.get_ambulance_by_driver_id(driver_id)
            if ambulance is None:
                raise ValidationError(f"No ambulance registered for driver '{driver_id}'")
            if ambulance.status != AmbulanceStatus.AVAILABLE or self.active_request_for(driver_id) is not None:
                raise InvalidTransitionError("ambulance", ambulance.status.value, AmbulanceStatus.BUSY.value)

            self.store.update_ambulance_status(driver_id, AmbulanceStatus.BUSY)
            accepted = self.store.update_request_status(request_id, RequestStatus.ACCEPTED, driver_id)

        logger.info(f"Request {request_id} accepted by {driver_id}")
        return accepted

    def complete_request(self, request_id: int) -> Optional[EmergencyRequest]:
        """Close an accepted request and free its ambulance."""
        return self._finish(request_id, RequestStatus.COMPLETED)

    def cancel_request(self, request_id: int) -> Optional[EmergencyRequest]:
        """Cancel a pending or accepted request, freeing the ambulance if one was assigned."""
        return self._finish(request_id, RequestStatus.CANCELLED)

    def transition(self, request_id: int, status, driver_id: Optional[str] = None) -> Optional[EmergencyRequest]:
        """Move a request to ``status`` using the matching guarded operation."""
        target = RequestStatus.parse(status)
        if target == RequestStatus.ACCEPTED:
            return self.accept_request(request_id, driver_id)
        if target in (RequestStatus.COMPLETED, RequestStatus.CANCELLED):
            return self._finish(request_id, target)

        # Nothing ever moves back to pending
        request = self.store.get_request(request_id)
        if request is None:
            return None
        raise InvalidTransitionError("request", request.status.value, target.value)

    def active_request_for(self, driver_id: str) -> Optional[EmergencyRequest]:
        """The accepted request currently assigned to ``driver_id``, if any."""
        for request in self.store.list_requests(RequestStatus.ACCEPTED):
            if request.driver_id == driver_id:
                return request
        return None

    def _finish(self, request_id: int, target: RequestStatus) -> Optional[EmergencyRequest]:
        with self.store.lock:
            request = self.store.get_request(request_id)
            if request is None:
                return None
            self._check_request(request, target)

            updated = self.store.update_request_status(request_id, target)
            if request.driver_id:
                self._release(request.driver_id)

        logger.info(f"Request {request_id} {target.value}")
        return updated

    def _release(self, driver_id: str) -> None:
        if self.active_request_for(driver_id) is not None:
            return
        ambulance = self.store.get_ambulance_by_driver_id(driver_id)
        # An ambulance that went offline mid-request stays offline
        if ambulance is not None and ambulance.status == AmbulanceStatus.BUSY:
            self.store.update_ambulance_status(driver_id, AmbulanceStatus.AVAILABLE)

    @staticmethod
    def _check_request(request: EmergencyRequest, target: RequestStatus) -> None:
        if not can_transition(request.status, target):
            raise InvalidTransitionError("request", request.status.value, target.value)

    # -------------------------------------------------------------------------
    # Ambulances
    # -------------------------------------------------------------------------

    def register_ambulance(self, data: Mapping[str, Any]) -> Ambulance:
        """
        Upsert an ambulance, applying the status rules when ``status`` is given.

        A new ambulance cannot start out busy, and an existing one can only
        change status along an allowed edge.
        """
        with self.store.lock:
            if data.get("status") is not None:
                target = AmbulanceStatus.parse(data["status"])
                existing = self.store.get_ambulance_by_driver_id(str(data.get("driver_id", "")))
                if existing is None:
                    if target == AmbulanceStatus.BUSY:
                        raise InvalidTransitionError("ambulance", "new", target.value)
                else:
                    self._check_ambulance(existing, target)
            return self.store.upsert_ambulance(data)

    def set_ambulance_status(self, driver_id: str, status) -> Optional[Ambulance]:
        """
        Change an ambulance's status by hand (driver going on or off shift).

        Returns None if the driver has no ambulance. Setting the current
        status again is a no-op that refreshes the timestamp.

        Raises:
            ValidationError: If ``status`` is not a known status
            InvalidTransitionError: If the move is not allowed
        """
        target = AmbulanceStatus.parse(status)
        with self.store.lock:
            ambulance = self.store.get_ambulance_by_driver_id(driver_id)
            if ambulance is None:
                return None
            self._check_ambulance(ambulance, target)
            updated = self.store.update_ambulance_status(driver_id, target)

        if ambulance.status != target:
            logger.info(f"Ambulance {driver_id} {ambulance.status.value} -> {target.value}")
        return updated

    def _check_ambulance(self, ambulance: Ambulance, target: AmbulanceStatus) -> None:
        if ambulance.status == target:
            return
        if not can_transition(ambulance.status, target):
            raise InvalidTransitionError("ambulance", ambulance.status.value, target.value)
        # busy is tied to an accepted request, so it is set and cleared by the request
        if target == AmbulanceStatus.BUSY:
            raise InvalidTransitionError("ambulance", ambulance.status.value, target.value)
        # an ambulance holding an accepted request only becomes available when it ends
        if target == AmbulanceStatus.AVAILABLE and self.active_request_for(ambulance.driver_id) is not None:
            raise InvalidTransitionError("ambulance", ambulance.status.value, target.value)
