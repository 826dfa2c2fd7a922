"""Event subscription primitives shared by builders and the orchestrator."""

import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

Listener = Callable[..., Any]

DOWNLOAD = "download"
COMPLETE = "complete"
STOPPED_AND_REMOVED = "stopped-and-removed"
ERROR = "error"
DATA = "data"
EVENTS = (DOWNLOAD, COMPLETE, STOPPED_AND_REMOVED, ERROR, DATA)


class Subscription:
    """Handle for one attached listener. Closing it more than once is a no-op."""

    def __init__(self, emitter: "EventEmitter", event: str, listener: Listener):
        self.emitter = emitter
        self.event = event
        self.listener = listener
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._closed = True

        self.emitter._remove(self.event, self.listener)
        return True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class EventEmitter:
    """Thread-safe named-event dispatcher.

    Listeners are snapshotted before dispatch, so a listener may detach itself
    (or others) while an event is being delivered.
    """

    def __init__(self):
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event: str, listener: Listener) -> Subscription:
        if event not in EVENTS:
            raise ValueError(f"Unknown builder event: {event}")

        with self._lock:
            self._listeners[event].append(listener)
        return Subscription(self, event, listener)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: Any = None) -> int:
        with self._lock:
            listeners = list(self._listeners.get(event, []))

        for listener in listeners:
            if payload is None:
                listener()
            else:
                listener(payload)
        return len(listeners)

    def _remove(self, event: str, listener: Listener):
        with self._lock:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)
