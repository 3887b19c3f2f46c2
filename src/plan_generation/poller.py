"""
Step Poller.

Drives one plan generation attempt against the server-side job:

    idle -> checking_eligibility -> starting -> polling -> completing -> done
                                                       \\-> error | timed_out

Each poll tick issues GET status and, when the job has reached a step that
has not been advanced yet, exactly one POST continue for that step. The
lease taken before the start call is released on every exit path.
"""

import uuid
import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .adapter import ResponseAdapter
from .client import StepCoachClient
from .eligibility import EligibilityGate
from .errors import (
    AlreadyGeneratingError,
    GenerationCancelledError,
    GenerationTimeoutError,
    JobError,
    PlanGenerationError,
    TransientNetworkError,
)
from .lease import STALE_AFTER, GenerationMutex, utc_now
from .models import CoachInput, FitnessPlan, GenerationSession, StepStatus
from .progress import PlanGenerationStep, ProgressProjector, ProgressView

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
INITIAL_STATUS_MESSAGE = "Analyzing your preferences..."
INITIAL_TIME_ESTIMATE = 60


class GenerationState(str, Enum):
    """Lifecycle of a generation attempt."""

    IDLE = "idle"
    CHECKING_ELIGIBILITY = "checking_eligibility"
    STARTING = "starting"
    POLLING = "polling"
    COMPLETING = "completing"
    DONE = "done"
    ERROR = "error"
    TIMED_OUT = "timed_out"


ACTIVE_STATES = (
    GenerationState.CHECKING_ELIGIBILITY,
    GenerationState.STARTING,
    GenerationState.POLLING,
    GenerationState.COMPLETING,
)


class CancellationToken:
    """Stops a poll loop; waiting on it doubles as the poll interval sleep."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. True if cancelled meanwhile."""
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class StepPoller:
    """
    Client-side driver of the stepwise generation job.

    Features:
    - Eligibility pre-check and single-flight lease before starting
    - Sequential status-then-continue polling, one continue per step
    - Time budget and stale-lease detection
    - Cancellation, resume after reload, reconcile with the server, reset
    """

    def __init__(
        self,
        client: StepCoachClient,
        mutex: GenerationMutex,
        gate: Optional[EligibilityGate] = None,
        adapter: Optional[ResponseAdapter] = None,
        projector: Optional[ProgressProjector] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_duration: timedelta = STALE_AFTER,
        on_progress: Optional[Callable[[ProgressView], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the poller.

        Args:
            client: Job API client
            mutex: Durable single-flight guard
            gate: Eligibility pre-check (built from the client by default)
            adapter: Maps the raw result to a FitnessPlan
            projector: Maps status payloads to progress views
            poll_interval: Seconds between status polls
            max_duration: Job time budget
            on_progress: Called with every published progress view
            clock: Returns the current timezone-aware UTC time
        """
        self.client = client
        self.mutex = mutex
        self.gate = gate or EligibilityGate(client)
        self.adapter = adapter or ResponseAdapter()
        self.projector = projector or ProgressProjector()
        self.poll_interval = poll_interval
        self.max_duration = max_duration
        self.on_progress = on_progress
        self._clock = clock or utc_now

        self.state = GenerationState.IDLE
        self.session: Optional[GenerationSession] = None
        self.last_view: Optional[ProgressView] = None
        self.last_error: Optional[PlanGenerationError] = None
        self.plan: Optional[FitnessPlan] = None

        self._coach_input: Optional[CoachInput] = None
        self._last_advanced_step = -1
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    def now(self) -> datetime:
        return self._clock()

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    # ========================================================================
    # Progress publishing
    # ========================================================================

    def _publish(self, view: ProgressView) -> None:
        self.last_view = view
        if self.on_progress is None:
            return
        try:
            self.on_progress(view)
        except Exception as e:
            logger.error(f"[POLLER] Progress callback failed: {e}")

    def _apply_status(self, session: GenerationSession, status: StepStatus) -> ProgressView:
        view = self.projector.project(
            status,
            now=self.now(),
            started_at=session.started_at,
            floor_step=session.current_step,
        )
        session.current_step = view.current_step
        session.total_steps = view.total_steps
        session.status_message = view.message
        session.estimated_time_remaining = view.estimated_time_remaining
        session.elapsed_time = view.elapsed_time
        session.is_generating = status.is_generating
        return view

    def _final_view(
        self, session: GenerationSession, error: Optional[PlanGenerationError] = None
    ) -> ProgressView:
        status = StepStatus(
            is_generating=False,
            current_step=session.current_step,
            total_steps=session.total_steps,
            step_message=error.message if error else None,
            error_message=error.message if error else None,
            is_complete=error is None,
        )
        return self.projector.project(
            status, now=self.now(), started_at=session.started_at
        )

    # ========================================================================
    # Teardown
    # ========================================================================

    def _teardown(
        self,
        session: Optional[GenerationSession],
        state: GenerationState,
        error: Optional[PlanGenerationError] = None,
    ) -> None:
        """Release the lease and drop the session. No-op if already torn down."""
        if session is not None and self.session is not session:
            return

        self.mutex.release_if_owned()
        if isinstance(error, TransientNetworkError):
            self.gate.invalidate()

        if session is not None:
            session.is_generating = False
            session.error_message = error.message if error else None
            if state is not GenerationState.IDLE:
                self._publish(self._final_view(session, error))

        self.last_error = error
        self.state = state
        self.session = None
        self._last_advanced_step = -1

        if error is not None:
            logger.warning(f"[POLLER] Attempt ended in {state.value}: {error.message}")
        else:
            logger.info(f"[POLLER] Attempt ended in {state.value}")

    def _refuse(self, error: PlanGenerationError) -> None:
        # Lease never taken here, so a live record belongs to someone else
        if isinstance(error, TransientNetworkError):
            self.gate.invalidate()
        self.last_error = error
        self.state = GenerationState.ERROR
        logger.warning(f"[POLLER] Attempt refused: {error.message}")

    def _abandon_if_cancelled(
        self, token: CancellationToken, session: Optional[GenerationSession]
    ) -> None:
        """Stop ``begin`` if the attempt was cancelled while it awaited."""
        if not token.cancelled and self.session is session:
            return
        if self.session is session and self._token is token:
            # Token cancelled directly, without cancel()
            self._teardown(session, GenerationState.IDLE)
            self.last_error = GenerationCancelledError("Plan generation was cancelled")
        logger.info("[POLLER] Attempt cancelled before polling started")
        raise GenerationCancelledError("Plan generation was cancelled")

    # ========================================================================
    # Attempt lifecycle
    # ========================================================================

    async def begin(
        self, coach_input: CoachInput, token: Optional[CancellationToken] = None
    ) -> GenerationSession:
        """
        Check eligibility, take the lease and start the server job.

        The token is registered before any await, so a cancel issued before
        polling starts still reaches the poll loop.

        Returns:
            The new session, with the poller in the polling state

        Raises:
            IneligibleError / RateLimitedError: Refused by the eligibility check
            AlreadyGeneratingError: Another attempt holds the lease
            TransientNetworkError: A job API call failed
            GenerationCancelledError: Cancelled before polling started
        """
        if self.is_active:
            raise AlreadyGeneratingError(
                "A plan is already being generated. Please wait for it to complete."
            )

        token = token or CancellationToken()
        self._token = token
        self._coach_input = coach_input
        self.last_error = None
        self.state = GenerationState.CHECKING_ELIGIBILITY
        logger.info("[POLLER] Checking eligibility")

        try:
            await self.gate.ensure_eligible()
        except PlanGenerationError as e:
            if self._token is token and not token.cancelled:
                self._refuse(e)
            raise
        self._abandon_if_cancelled(token, None)

        try:
            lease = self.mutex.acquire()
        except PlanGenerationError as e:
            self._refuse(e)
            raise

        self.state = GenerationState.STARTING
        session = GenerationSession(
            session_id=uuid.uuid4().hex,
            started_at=lease.started_at,
            status_message=INITIAL_STATUS_MESSAGE,
            estimated_time_remaining=INITIAL_TIME_ESTIMATE,
        )
        self.session = session
        self._last_advanced_step = -1

        try:
            ack = await self.client.start(coach_input)
        except PlanGenerationError as e:
            self._teardown(session, GenerationState.ERROR, e)
            raise
        self._abandon_if_cancelled(token, session)

        acked_step = ack.get("step")
        if isinstance(acked_step, int) and acked_step > session.current_step:
            session.current_step = acked_step

        self.state = GenerationState.POLLING
        logger.info(f"[POLLER] Job started (session {session.session_id})")
        self._publish(
            self._apply_status(
                session,
                StepStatus(
                    is_generating=True,
                    current_step=session.current_step,
                    step_message=INITIAL_STATUS_MESSAGE,
                    estimated_time_remaining=INITIAL_TIME_ESTIMATE,
                ),
            )
        )
        return session

    def _check_budget(self, session: GenerationSession) -> None:
        elapsed = self.now() - session.started_at
        if elapsed > self.max_duration:
            raise GenerationTimeoutError(
                f"generation timed out after {elapsed.total_seconds():.0f}s"
            )
        if not self.mutex.owns():
            raise GenerationTimeoutError("generation timed out (lease went stale)")

    async def _advance(self, session: GenerationSession, step: int) -> None:
        self._last_advanced_step = step
        logger.info(f"[POLLER] Advancing job past step {step}")
        ack = await self.client.continue_generation()
        acked_step = ack.get("step")
        if isinstance(acked_step, int) and acked_step > session.current_step:
            session.current_step = acked_step

    async def _complete(
        self, session: GenerationSession, token: CancellationToken
    ) -> FitnessPlan:
        self.state = GenerationState.COMPLETING
        session.is_complete = True
        session.is_generating = False
        logger.info("[POLLER] Job complete, fetching result")

        raw = await self.client.result()
        if token.cancelled:
            raise GenerationCancelledError("Plan generation was cancelled")

        plan = self.adapter.adapt(raw, coach_input=self._coach_input, now=self.now())
        self.plan = plan
        self._teardown(session, GenerationState.DONE)
        return plan

    async def poll(self, token: Optional[CancellationToken] = None) -> FitnessPlan:
        """
        Poll the started job to completion.

        Returns:
            The adapted plan

        Raises:
            JobError: The status payload reported an error
            TransientNetworkError: A job API call failed
            GenerationTimeoutError: Time budget exceeded or lease lost
            GenerationCancelledError: The token was cancelled
        """
        session = self.session
        token = token or self._token or CancellationToken()
        self._token = token
        if session is None:
            if self.state in (GenerationState.POLLING, GenerationState.COMPLETING):
                self.state = GenerationState.IDLE
            if token.cancelled:
                raise GenerationCancelledError("Plan generation was cancelled")
            raise PlanGenerationError("No generation in progress")

        try:
            while True:
                if await token.wait(self.poll_interval):
                    raise GenerationCancelledError("Plan generation was cancelled")
                self._check_budget(session)

                status = await self.client.status()
                if token.cancelled:
                    raise GenerationCancelledError("Plan generation was cancelled")

                if status.error_message:
                    raise JobError(status.error_message)

                view = self._apply_status(session, status)
                if (
                    not status.is_generating
                    or status.is_complete
                    or status.current_step >= PlanGenerationStep.COMPLETE
                ):
                    return await self._complete(session, token)

                if status.current_step > self._last_advanced_step:
                    await self._advance(session, status.current_step)

                if self.session is session:
                    self._publish(view)
        except GenerationCancelledError as e:
            current = self.session is session
            self._teardown(session, GenerationState.IDLE)
            if current:
                self.last_error = e
            raise
        except GenerationTimeoutError as e:
            self._teardown(session, GenerationState.TIMED_OUT, e)
            raise
        except PlanGenerationError as e:
            self._teardown(session, GenerationState.ERROR, e)
            raise
        except asyncio.CancelledError:
            self._teardown(session, GenerationState.IDLE)
            raise
        except Exception as e:
            logger.error(f"[POLLER] Unexpected error while polling: {e}")
            error = PlanGenerationError(f"Plan generation failed: {e}")
            self._teardown(session, GenerationState.ERROR, error)
            raise error from e

    async def run(
        self, coach_input: CoachInput, token: Optional[CancellationToken] = None
    ) -> FitnessPlan:
        """Drive one attempt from eligibility check to adapted plan."""
        await self.begin(coach_input, token)
        return await self.poll()

    def spawn(
        self, coroutine: Awaitable[Any], token: Optional[CancellationToken] = None
    ) -> CancellationToken:
        """Run a poller coroutine as a background task."""
        self._token = token or self._token or CancellationToken()
        self._task = asyncio.ensure_future(coroutine)
        self._task.add_done_callback(self._log_task_outcome)
        return self._token

    def start(self, coach_input: CoachInput) -> CancellationToken:
        """Run one attempt as an asyncio task. Returns its cancellation token."""
        token = CancellationToken()
        return self.spawn(self.run(coach_input, token), token)

    @staticmethod
    def _log_task_outcome(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.info(f"[POLLER] Background attempt finished with {type(error).__name__}")

    def cancel(self) -> bool:
        """
        Stop client-side polling. The server job is not cancelled.

        Returns:
            True if an active attempt was cancelled
        """
        if not self.is_active:
            return False
        if self._token is not None:
            self._token.cancel()
        logger.info("[POLLER] Generation cancelled")
        self._teardown(self.session, GenerationState.IDLE)
        self.last_error = GenerationCancelledError("Plan generation was cancelled")
        return True

    async def resume(self, token: Optional[CancellationToken] = None) -> Optional[FitnessPlan]:
        """
        Re-attach to a job the server is already running (page reload).

        Returns:
            The adapted plan, or None when the server has no job running
        """
        if self.is_active:
            raise AlreadyGeneratingError("Already attached to a generation")

        status = await self.client.status()
        if not status.is_generating:
            self.mutex.release_if_owned()
            self.state = GenerationState.IDLE
            return None

        lease = self.mutex.adopt()
        started_at = status.started_at or lease.started_at
        session = GenerationSession(
            session_id=uuid.uuid4().hex,
            started_at=started_at,
            current_step=status.current_step,
        )
        self.session = session
        self._last_advanced_step = -1
        self.last_error = None
        self._token = token or CancellationToken()
        self.state = GenerationState.POLLING
        self._publish(self._apply_status(session, status))
        logger.info(f"[POLLER] Resumed server job at step {status.current_step}")
        return await self.poll()

    async def reconcile(self) -> bool:
        """
        Align the durable marker with the server, which is the source of truth.

        Returns:
            Whether the server reports a job in progress
        """
        if self.is_active:
            return True

        status = await self.client.status()
        record = self.mutex.current()
        if not status.is_generating and record is not None:
            logger.info("[POLLER] Server idle; clearing local marker")
            self.mutex.release()
        elif status.is_generating and record is None:
            logger.info("[POLLER] Server generating; writing local marker")
            self.mutex.adopt()
        return status.is_generating

    async def reset(self) -> None:
        """Clear server-side and local generation state."""
        if self._token is not None:
            self._token.cancel()
        try:
            await self.client.reset()
        finally:
            self.mutex.release()
            self.gate.invalidate()
            self.session = None
            self.last_error = None
            self._last_advanced_step = -1
            self.state = GenerationState.IDLE
            logger.info("[POLLER] Generation state reset")

    def recover_orphaned_session(self) -> bool:
        """
        Self-heal after a restart: clear a stale marker and force idle.

        Returns:
            True if a stale marker was cleared
        """
        cleared = self.mutex.clear_if_stale()
        if not self.is_active or cleared:
            self.session = None
            self.state = GenerationState.IDLE
        return cleared

    def snapshot(self) -> dict:
        """Current attempt state for serialization."""
        return {
            "state": self.state.value,
            "session": self.session.to_dict() if self.session else None,
            "progress": self.last_view.to_dict() if self.last_view else None,
            "error": self.last_error.to_dict() if self.last_error else None,
            "has_plan": self.plan is not None,
        }
