"""In-process publish/subscribe for recording lifecycle events.

The orchestrator publishes an event after every stage outcome so UI-facing
code can refresh without polling the store. Subscribers are awaited in
order; a failing subscriber is logged and never affects the pipeline.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

RECORDING_CREATED = "recording.created"
RECORDING_TRANSCRIBED = "recording.transcribed"
RECORDING_ANALYZED = "recording.analyzed"
RECORDING_FAILED = "recording.failed"
RECORDING_DELETED = "recording.deleted"


@dataclass(frozen=True)
class RecordingEvent:
    type: str
    recording_id: str
    project_id: str
    status: str
    stage: str | None = None
    error_message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    published_at: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat()
    )


Subscriber = Callable[[RecordingEvent], Awaitable[None]]


class EventBus:
    """Fan-out of RecordingEvents to async subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[str | None, Subscriber]] = []

    def subscribe(
        self, handler: Subscriber, event_type: str | None = None
    ) -> Callable[[], None]:
        """Register ``handler`` for one event type, or all when None.

        Returns:
            A callable that removes the subscription.
        """
        entry = (event_type, handler)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    async def publish(self, event: RecordingEvent) -> None:
        for event_type, handler in list(self._subscribers):
            if event_type is not None and event_type != event.type:
                continue
            try:
                await handler(event)
            except Exception:
                logger.error(
                    "Subscriber failed for %s",
                    event.type,
                    exc_info=True,
                    extra={"recording_id": event.recording_id},
                )
