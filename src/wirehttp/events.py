"""
Structured server events.

The engine never formats log lines for what happens to requests. It emits
Event objects to an injected sink (any callable taking one Event) and the
sink decides what to do with them. The default sink hands each event to
the ``wirehttp.events`` logger so a plain ``logging`` setup still shows
them.

    server = HTTPServer(config, sink=my_sink)

    def my_sink(event):
        if event.name == ROUTE_MATCHED:
            metrics.count(event.fields["pattern"])
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable


SERVER_STARTED = "server.started"
SERVER_STOPPED = "server.stopped"
CONNECTION_OPENED = "connection.opened"
CONNECTION_CLOSED = "connection.closed"
REQUEST_RECEIVED = "request.received"
ROUTE_MATCHED = "route.matched"
RESPONSE_SENT = "response.sent"
ERROR = "error"


@dataclass(frozen=True)
class Event:
    """A single structured event: a dotted name plus free-form fields."""

    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, "timestamp": self.timestamp, **self.fields}


EventSink = Callable[[Event], None]


class LoggingSink:
    """
    Forward events to a stdlib logger.

    Errors are logged at WARNING, everything else at the configured level.
    The event itself is attached as ``extra={"event": ...}`` so formatters
    and filters can pick it apart.
    """

    def __init__(self, logger_name: str = "wirehttp.events", level: int = logging.DEBUG):
        self.logger = logging.getLogger(logger_name)
        self.level = level

    def __call__(self, event: Event) -> None:
        level = logging.WARNING if event.name == ERROR else self.level
        if not self.logger.isEnabledFor(level):
            return
        details = " ".join(f"{key}={value}" for key, value in event.fields.items())
        self.logger.log(level, f"{event.name} {details}".rstrip(), extra={"event": event.to_dict()})


class NullSink:
    """Drop every event."""

    def __call__(self, event: Event) -> None:
        return None


class EventRecorder:
    """
    Keep every event in memory.

    Thread-safe, since connection workers emit concurrently. Mostly useful
    in tests::

        recorder = EventRecorder()
        server = HTTPServer(config, sink=recorder)
        ...
        assert recorder.names().count(REQUEST_RECEIVED) == 2
    """

    def __init__(self):
        self._events: list[Event] = []
        self._lock = threading.Lock()

    def __call__(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def names(self) -> list[str]:
        return [event.name for event in self.events]

    def of(self, name: str) -> list[Event]:
        return [event for event in self.events if event.name == name]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
