"""Event emitters for the deployment engine."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List

from deployment_engine.core.events_model import DeployEvent

logger = logging.getLogger(__name__)


ALLOWED_EVENTS = {
    "deploy.started",
    "deploy.validated",
    "deploy.rejected",
    "deploy.applied",
    "deploy.failed",
    "artifacts.uploaded",
}


def _check(event: DeployEvent) -> None:
    if event.event_type not in ALLOWED_EVENTS:
        raise ValueError(f"Invalid event type: {event.event_type}")
    if not event.deployment_id:
        raise ValueError("Event must have deployment_id")


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[DeployEvent]) -> None:
        """Emit one or more events."""
        pass


class LogEventEmitter(EventEmitter):
    """Writes events to the log and keeps them in memory."""

    def __init__(self):
        self.events: List[DeployEvent] = []

    def emit(self, events: Iterable[DeployEvent]) -> None:
        for event in events:
            _check(event)
            self.events.append(event)
            logger.info(f"[event] {event.event_type} | deployment={event.deployment_id}")


class MultiEventEmitter(EventEmitter):
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[DeployEvent]) -> None:
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)


class NullEventEmitter(EventEmitter):
    """No-op emitter (used when events are not needed)."""

    def emit(self, events: Iterable[DeployEvent]) -> None:
        for event in events:
            _check(event)
