"""In-memory queue of plan generation events.

Publish-subscribe mechanism for generation lifecycle and progress events
that are streamed to connected clients via SSE.
"""
import asyncio
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, AsyncIterator


class GenerationEventType(str, Enum):
    """Types of generation events."""
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    RESET = "reset"


@dataclass
class GenerationEvent:
    """One event of a plan generation attempt."""

    event_type: GenerationEventType
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    session_id: Optional[str] = None

    # Progress snapshot for progress and terminal events
    current_step: Optional[int] = None
    total_steps: Optional[int] = None
    percent_complete: Optional[int] = None
    estimated_time_remaining: Optional[float] = None
    error_code: Optional[str] = None
    plan_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "id": self.id,
            "event_type": self.event_type.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

        # Add optional fields if present
        if self.session_id:
            result["session_id"] = self.session_id
        if self.current_step is not None:
            result["current_step"] = self.current_step
        if self.total_steps is not None:
            result["total_steps"] = self.total_steps
        if self.percent_complete is not None:
            result["percent_complete"] = self.percent_complete
        if self.estimated_time_remaining is not None:
            result["estimated_time_remaining"] = self.estimated_time_remaining
        if self.error_code:
            result["error_code"] = self.error_code
        if self.plan_id:
            result["plan_id"] = self.plan_id

        return result


class GenerationEventQueue:
    """In-memory fan-out of generation events to SSE subscribers.

    Publishing and subscribing both happen on the event loop. New
    subscribers are replayed the events of the current attempt, starting
    at its ``started`` event. A slow subscriber loses its oldest pending
    event rather than the connection, since progress events supersede
    each other.
    """

    def __init__(self, max_history: int = 100, subscriber_buffer: int = 100):
        self._history: deque[GenerationEvent] = deque(maxlen=max_history)
        self._subscribers: list[asyncio.Queue] = []
        self._subscriber_buffer = subscriber_buffer
        self._published: Counter = Counter()
        self._total_subscribers = 0

    def publish(self, event: GenerationEvent) -> None:
        self._history.append(event)
        self._published[event.event_type.value] += 1
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

    def current_attempt(self) -> list[GenerationEvent]:
        """Events since the latest ``started`` event, oldest first."""
        events = list(self._history)
        for index in range(len(events) - 1, -1, -1):
            if events[index].event_type is GenerationEventType.STARTED:
                return events[index:]
        return events

    async def subscribe(
        self,
        include_history: bool = True,
        history_count: int = 10
    ) -> AsyncIterator[GenerationEvent]:
        """Yield events as they are published until the consumer disconnects.

        Args:
            include_history: Replay the current attempt's events first.
            history_count: Maximum number of replayed events.
        """
        queue: asyncio.Queue[GenerationEvent] = asyncio.Queue(maxsize=self._subscriber_buffer)
        if include_history and history_count > 0:
            for event in self.current_attempt()[-history_count:]:
                queue.put_nowait(event)

        self._subscribers.append(queue)
        self._total_subscribers += 1
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)

    def get_history(self, count: int = 50) -> list[GenerationEvent]:
        """Get recent events, newest first."""
        return list(self._history)[-count:][::-1]

    def get_stats(self) -> dict:
        return {
            "total_published": sum(self._published.values()),
            "total_subscribers": self._total_subscribers,
            "events_by_type": dict(self._published),
            "current_subscribers": len(self._subscribers),
            "history_size": len(self._history),
        }


# Global singleton instance
generation_events = GenerationEventQueue()
