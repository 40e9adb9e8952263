"""In-process event dispatcher."""

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from fnmatch import fnmatchcase
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict[str, Any]], None]


class InMemoryEventDispatcher:
    """EventDispatcherPort that calls subscribed listeners synchronously.

    Listeners subscribe to an event name or a glob such as ``monitoring.*``.
    A failing listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, pattern: str, listener: Listener) -> None:
        with self._lock:
            self._listeners[pattern].append(listener)

    def dispatch(self, event_name: str, payload: dict[str, Any]) -> None:
        with self._lock:
            listeners = [
                listener
                for pattern, group in self._listeners.items()
                if fnmatchcase(event_name, pattern)
                for listener in group
            ]
        for listener in listeners:
            try:
                listener(event_name, payload)
            except Exception as exc:
                logger.warning(
                    "Event listener failed for %s",
                    event_name,
                    extra={"event": event_name, "error": str(exc)},
                )
