"""Event sinks: where session events are published.

``publish`` is fire-and-forget: it returns nothing and must not block. Events
for one session are delivered in call order; there is no ordering across
sessions.
"""
import json
import logging
import threading
from collections.abc import Iterable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Event names published on a session channel
PROCESSING_PROGRESS = "processingProgress"
PROCESSING_WARNING = "processingWarning"
PROCESSING_ERROR = "processingError"
PROCESS_STATUS = "processStatus"
PROCESS_ERROR = "processError"
PROCESS_COMPLETE = "processComplete"


class EventSink(Protocol):
    def publish(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        ...


class InMemoryEventSink:
    """Records every published event; used by tests and the CLI summary."""

    def __init__(self) -> None:
        self._events: list[tuple[str, str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    @property
    def events(self) -> list[tuple[str, str, dict[str, Any]]]:
        with self._lock:
            return list(self._events)

    def for_session(self, session_id: str) -> list[tuple[str, dict[str, Any]]]:
        return [(name, payload) for sid, name, payload in self.events if sid == session_id]

    def names_for(self, session_id: str) -> list[str]:
        return [name for name, _ in self.for_session(session_id)]

    def publish(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._events.append((session_id, event_name, payload))


class LoggingEventSink:
    """Writes each event to the log as one JSON line."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def publish(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        level = logging.INFO
        if event_name in (PROCESSING_ERROR, PROCESS_ERROR) or event_name.endswith("Error"):
            level = logging.ERROR
        elif event_name == PROCESSING_WARNING:
            level = logging.WARNING
        self._log.log(level, "%s %s %s", session_id, event_name, json.dumps(payload, default=str))


class CompositeEventSink:
    """Forwards each event to several sinks in order."""

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self._sinks = list(sinks)

    def publish(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        for sink in self._sinks:
            sink.publish(session_id, event_name, payload)
