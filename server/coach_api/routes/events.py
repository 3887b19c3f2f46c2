"""Generation event routes.

Real-time plan generation progress via SSE, plus the recent event history.
"""
import json
from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from ..services.generation_events import generation_events

router = APIRouter(prefix="/api/coach/events", tags=["Events"])


@router.get("/stream")
async def stream_generation_events(
    include_history: bool = Query(True, description="Replay the current attempt's events first"),
    history_count: int = Query(10, ge=0, le=50, description="Number of events to replay"),
):
    """
    Stream plan generation events via Server-Sent Events (SSE).

    Event types: started, progress, completed, failed, timed_out,
    cancelled and reset. The stream never closes; clients should handle
    reconnection.

    Usage with curl:
        curl -N http://localhost:8083/api/coach/events/stream
    """
    async def event_generator():
        async for event in generation_events.subscribe(
            include_history=include_history,
            history_count=history_count
        ):
            data = json.dumps(event.to_dict())
            yield f"event: {event.event_type.value}\ndata: {data}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        }
    )


@router.get("/history")
async def get_event_history(
    count: int = Query(50, ge=1, le=100, description="Number of events to return")
):
    """Get recent generation events, newest first."""
    return [event.to_dict() for event in generation_events.get_history(count)]


@router.get("/stats")
async def get_event_stats():
    """Get counts of published events and current subscribers."""
    return generation_events.get_stats()
