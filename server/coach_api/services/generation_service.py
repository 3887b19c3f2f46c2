"""Plan generation service.

Owns the single StepPoller of this process, runs its poll loop as a
background task and turns its lifecycle into generation events.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Optional

import httpx

from plan_generation import (
    CoachInput,
    EligibilityGate,
    EligibilityResult,
    FitnessPlan,
    GenerationCancelledError,
    GenerationMutex,
    GenerationTimeoutError,
    InMemoryLeaseStore,
    PlanGenerationError,
    ProgressView,
    SQLiteLeaseStore,
    StepCoachClient,
    StepPoller,
)
from plan_generation.lease import LeaseStore
from plan_generation.models import GenerationSession

from ..config import Settings, get_settings
from .generation_events import (
    GenerationEvent,
    GenerationEventQueue,
    GenerationEventType,
    generation_events,
)

logger = logging.getLogger(__name__)


class GenerationService:
    """
    Process-wide plan generation manager.

    Features:
    - Eligibility pre-check exposed for the UI
    - Starts attempts and polls them in the background
    - Cancel, reset and resume of the current attempt
    - Progress and lifecycle events for SSE subscribers
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        store: Optional[LeaseStore] = None,
        events: Optional[GenerationEventQueue] = None,
    ):
        """
        Initialize the service.

        Args:
            settings: Application settings (default from env)
            transport: Optional httpx transport for the job API (tests)
            store: Lease store (default SQLite when configured, else in-memory)
            events: Event queue (default global queue)
        """
        settings = settings or get_settings()
        headers = {}
        if settings.auth_token:
            headers["Authorization"] = f"Bearer {settings.auth_token}"

        budget = timedelta(minutes=settings.stale_after_minutes)
        if store is None:
            store = (
                SQLiteLeaseStore(settings.lease_db_path)
                if settings.lease_db_path
                else InMemoryLeaseStore()
            )

        self.client = StepCoachClient(
            base_url=settings.coach_api_url,
            timeout=settings.request_timeout,
            headers=headers,
            transport=transport,
        )
        self.mutex = GenerationMutex(store, ttl=budget)
        self.gate = EligibilityGate(
            self.client, cache_ttl=settings.eligibility_cache_seconds
        )
        self.poller = StepPoller(
            self.client,
            self.mutex,
            gate=self.gate,
            poll_interval=settings.poll_interval_seconds,
            max_duration=budget,
            on_progress=self._on_progress,
        )
        self.events = events or generation_events
        self._task: Optional[asyncio.Task] = None

        logger.info(
            f"[GENERATION] Initialized with coach_api={settings.coach_api_url}, "
            f"poll_interval={settings.poll_interval_seconds}s"
        )

    def _session_id(self) -> Optional[str]:
        return self.poller.session.session_id if self.poller.session else None

    def _publish(self, event_type: GenerationEventType, message: str, **fields) -> GenerationEvent:
        event = GenerationEvent(
            event_type=event_type,
            message=message,
            session_id=fields.pop("session_id", None) or self._session_id(),
            **fields,
        )
        self.events.publish(event)
        return event

    def _on_progress(self, view: ProgressView) -> None:
        self._publish(
            GenerationEventType.PROGRESS,
            view.message,
            current_step=view.current_step,
            total_steps=view.total_steps,
            percent_complete=view.percent_complete,
            estimated_time_remaining=view.estimated_time_remaining,
        )

    async def _drive(self, attempt: Awaitable[Optional[FitnessPlan]], session_id: Optional[str]) -> None:
        try:
            plan = await attempt
        except GenerationCancelledError:
            return
        except GenerationTimeoutError as e:
            self._publish(
                GenerationEventType.TIMED_OUT,
                e.message,
                session_id=session_id,
                error_code=e.code,
            )
            return
        except PlanGenerationError as e:
            self._publish(
                GenerationEventType.FAILED,
                e.message,
                session_id=session_id,
                error_code=e.code,
            )
            return

        if plan is not None:
            self._publish(
                GenerationEventType.COMPLETED,
                "Your fitness plan is ready",
                session_id=session_id,
                plan_id=plan.id,
                percent_complete=100,
            )

    def _spawn(self, attempt: Awaitable[Optional[FitnessPlan]], session_id: Optional[str]) -> None:
        self._task = asyncio.create_task(self._drive(attempt, session_id))

    async def check_eligibility(self) -> EligibilityResult:
        """Fresh eligibility answer from the job API."""
        return await self.gate.check_eligibility(refresh=True)

    async def generate(self, coach_input: CoachInput) -> GenerationSession:
        """
        Start a new attempt and poll it in the background.

        Raises:
            IneligibleError / RateLimitedError / AlreadyGeneratingError /
            TransientNetworkError: The attempt could not start
            GenerationCancelledError: Cancelled before polling started
        """
        session = await self.poller.begin(coach_input)
        self._publish(
            GenerationEventType.STARTED,
            "Plan generation started",
            session_id=session.session_id,
            current_step=session.current_step,
            total_steps=session.total_steps,
        )
        self._spawn(self.poller.poll(), session.session_id)
        return session

    async def resume(self) -> bool:
        """
        Re-attach to a job the server is already running.

        Returns:
            True if a server job was found and is being polled
        """
        if self.poller.is_active:
            return True
        if not await self.poller.reconcile():
            return False

        self._spawn(self.poller.resume(), None)
        # Let the resume coroutine attach before reporting back
        await asyncio.sleep(0)
        return True

    def cancel(self) -> bool:
        """Stop polling the current attempt. The server job keeps running."""
        session_id = self._session_id()
        cancelled = self.poller.cancel()
        if cancelled:
            self._publish(
                GenerationEventType.CANCELLED,
                "Plan generation cancelled",
                session_id=session_id,
            )
        return cancelled

    async def reset(self) -> None:
        """Clear server and local generation state."""
        session_id = self._session_id()
        try:
            await self.poller.reset()
        finally:
            self._publish(
                GenerationEventType.RESET,
                "Generation state reset",
                session_id=session_id,
            )

    def snapshot(self) -> dict:
        return self.poller.snapshot()

    @property
    def plan(self) -> Optional[FitnessPlan]:
        return self.poller.plan

    def recover(self) -> bool:
        """Clear a marker orphaned by a previous process."""
        recovered = self.poller.recover_orphaned_session()
        if recovered:
            logger.info("[GENERATION] Cleared orphaned generation marker")
        return recovered

    async def shutdown(self) -> None:
        """Stop the background poll task, if any."""
        self.poller.cancel()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None


# Global singleton instance
generation_service = GenerationService()
