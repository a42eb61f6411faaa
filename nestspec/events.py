"""
Events system: lifecycle notifications for example runs.

Ordering guarantees:
- Synchronous emission: events are emitted inline (the callback blocks the run)
- Best-effort delivery: if the callback raises, the exception is logged and the
  run continues
- Per-run ordering: for a single run, events are ordered
  (example_started < collaborator_* < example_passed/example_failed)
- Cross-run ordering: NOT guaranteed (a host may run examples concurrently)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Types of events emitted while running examples."""

    EXAMPLE_STARTED = "example_started"
    EXAMPLE_PASSED = "example_passed"
    EXAMPLE_FAILED = "example_failed"
    COLLABORATOR_RESOLVED = "collaborator_resolved"
    COLLABORATOR_RELEASED = "collaborator_released"


@dataclass(frozen=True)
class Event:
    """
    An event emitted during an example run.

    Attributes:
        kind: The type of event.
        example: Display name of the example this event relates to.
        timestamp: When the event occurred.
        payload: Event-specific data.
    """

    kind: EventKind
    example: str
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def example_started(cls, example: str, **extra: Any) -> Event:
        """Create an example_started event."""
        return cls(
            kind=EventKind.EXAMPLE_STARTED,
            example=example,
            timestamp=datetime.now(),
            payload=extra,
        )

    @classmethod
    def example_passed(cls, example: str, duration_ms: int, **extra: Any) -> Event:
        """Create an example_passed event."""
        return cls(
            kind=EventKind.EXAMPLE_PASSED,
            example=example,
            timestamp=datetime.now(),
            payload={"duration_ms": duration_ms, **extra},
        )

    @classmethod
    def example_failed(
        cls, example: str, error: str, duration_ms: int, **extra: Any
    ) -> Event:
        """Create an example_failed event."""
        return cls(
            kind=EventKind.EXAMPLE_FAILED,
            example=example,
            timestamp=datetime.now(),
            payload={"error": error, "duration_ms": duration_ms, **extra},
        )

    @classmethod
    def collaborator_resolved(cls, example: str, collaborator: str) -> Event:
        """Create a collaborator_resolved event."""
        return cls(
            kind=EventKind.COLLABORATOR_RESOLVED,
            example=example,
            timestamp=datetime.now(),
            payload={"collaborator": collaborator},
        )

    @classmethod
    def collaborator_released(cls, example: str, collaborator: str) -> Event:
        """Create a collaborator_released event."""
        return cls(
            kind=EventKind.COLLABORATOR_RELEASED,
            example=example,
            timestamp=datetime.now(),
            payload={"collaborator": collaborator},
        )


# Type alias for event callbacks
EventCallback = Callable[[Event], None]


def emit_event(callback: EventCallback | None, event: Event) -> None:
    """
    Emit an event to a callback, with best-effort delivery.

    If the callback raises an exception, it is logged but the run continues.

    Args:
        callback: The event callback (may be None).
        event: The event to emit.
    """
    if callback is None:
        return

    try:
        callback(event)
    except Exception as e:
        logger.warning(f"Event callback failed for {event.kind.value}: {e}")


class EventEmitter:
    """
    Helper class for emitting events about one example.

    Wraps a callback and provides convenience methods for each event kind.
    """

    def __init__(self, callback: EventCallback | None, example: str) -> None:
        """
        Initialize the emitter.

        Args:
            callback: The event callback (may be None for no-op).
            example: Display name of the example being run.
        """
        self._callback = callback
        self._example = example

    def emit(self, event: Event) -> None:
        """Emit an event."""
        emit_event(self._callback, event)

    def example_started(self, **extra: Any) -> None:
        if self._callback is not None:
            self.emit(Event.example_started(self._example, **extra))

    def example_passed(self, duration_ms: int, **extra: Any) -> None:
        if self._callback is not None:
            self.emit(Event.example_passed(self._example, duration_ms, **extra))

    def example_failed(self, error: str, duration_ms: int, **extra: Any) -> None:
        if self._callback is not None:
            self.emit(
                Event.example_failed(self._example, error, duration_ms, **extra)
            )

    def collaborator_resolved(self, collaborator: str) -> None:
        if self._callback is not None:
            self.emit(Event.collaborator_resolved(self._example, collaborator))

    def collaborator_released(self, collaborator: str) -> None:
        if self._callback is not None:
            self.emit(Event.collaborator_released(self._example, collaborator))
