# ambutrack/events.py
"""
In-process change feed.

Clients either poll the HTTP API or subscribe to a collection and get a
callback on every change. Both see the same events; the WebSocket endpoint
in ``api.py`` is a thin adapter over :class:`ChangeFeed`.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

COLLECTIONS = ("ambulances", "requests", "hospitals")

Subscriber = Callable[[Dict[str, Any]], None]


class ChangeFeed:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, collection: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register ``callback`` for changes to ``collection``.

        Returns:
            A function that removes the subscription. Calling it twice is harmless.
        """
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection '{collection}'")
        with self._lock:
            self._subscribers[collection].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[collection]:
                    self._subscribers[collection].remove(callback)

        return unsubscribe

    def publish(self, collection: str, action: str, payload: Dict[str, Any]) -> None:
        event = {"collection": collection, "action": action, "data": payload}
        with self._lock:
            subscribers = list(self._subscribers.get(collection, []))
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Subscriber for '{collection}' failed")

    def subscriber_count(self, collection: str) -> int:
        with self._lock:
            return len(self._subscribers.get(collection, []))
