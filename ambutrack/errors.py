# ambutrack/errors.py
"""Exception types shared by the store, the lifecycle controller and the API."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for errors raised by the dispatch service."""


class ValidationError(DispatchError, ValueError):
    """Raised when caller-supplied data is missing or malformed."""


class InvalidTransitionError(ValidationError):
    """Raised when a status change is not allowed from the current state."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")
        self.entity = entity
        self.current = current
        self.target = target
