"""Analytics event recording."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger("wedding_gallery.analytics")


class EventSink(Protocol):
    """Destination for analytics events."""

    def emit(self, event: str, params: dict[str, object]) -> None:
        """Record a single named event."""


class LoggingEventSink(EventSink):
    """Writes analytics events to the application log."""

    def emit(self, event: str, params: dict[str, object]) -> None:
        logger.info("event %s", event, extra={"event": event, "params": params})


@dataclass
class EventRecorder:
    """Records the gallery's analytics events."""

    sink: EventSink = field(default_factory=LoggingEventSink)

    def record(self, event: str, /, **params: object) -> None:
        """Record an event, dropping empty parameters."""
        self.sink.emit(
            event, {key: value for key, value in params.items() if value is not None}
        )

    def record_exception(
        self, exc: Exception, description: str, user: str | None = None
    ) -> None:
        """Record a failure the visitor was notified about."""
        self.record(
            "exception",
            description=description,
            error=f"{type(exc).__name__}: {exc}",
            user=user,
        )
