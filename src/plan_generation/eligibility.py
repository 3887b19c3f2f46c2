"""
Eligibility Gate.

Decides whether the current user may start a new plan generation job.
The gate itself only reads: it asks the job API and turns a refusal into
the matching error. The policy the server applies is available as the pure
function ``evaluate_eligibility``.
"""

import time
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .client import StepCoachClient
from .errors import AlreadyGeneratingError, IneligibleError, RateLimitedError
from .models import EligibilityResult

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_DAYS = 30
SECONDS_PER_DAY = 24 * 60 * 60

GLOBALLY_DISABLED_MESSAGE = (
    "The fitness coach feature is currently disabled by the administrator."
)
HAS_TRAINER_MESSAGE = (
    "You are assigned to a personal trainer. "
    "Please consult with your trainer for fitness plans."
)
IN_PROGRESS_MESSAGE = (
    "You already have a plan generation in progress. "
    "Please wait for it to complete before starting a new one."
)


def format_cooldown_message(days_remaining: int) -> str:
    """Countdown message shown when a plan was generated recently."""
    unit = "day" if days_remaining == 1 else "days"
    return f"You can create a new plan in {days_remaining} {unit}."


def evaluate_eligibility(
    *,
    is_admin: bool = False,
    is_trainer: bool = False,
    globally_disabled: bool = False,
    has_trainer: bool = False,
    generation_in_progress: bool = False,
    last_plan_created_at: Optional[datetime] = None,
    cooldown_days: int = DEFAULT_COOLDOWN_DAYS,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    """
    Apply the plan generation eligibility policy.

    Admins and trainers may always create a plan. Everyone else is refused
    when the feature is switched off, when a trainer manages their plans,
    when a generation is already running, or when their last plan is
    younger than the cooldown.

    Returns:
        EligibilityResult with ``can_create`` and the refusal details
    """
    if is_admin or is_trainer:
        return EligibilityResult(can_create=True)

    if globally_disabled:
        return EligibilityResult(
            can_create=False,
            globally_disabled=True,
            message=GLOBALLY_DISABLED_MESSAGE,
        )

    if has_trainer:
        return EligibilityResult(
            can_create=False, has_trainer=True, message=HAS_TRAINER_MESSAGE
        )

    if generation_in_progress:
        return EligibilityResult(
            can_create=False, status="in_progress", message=IN_PROGRESS_MESSAGE
        )

    if last_plan_created_at is None:
        return EligibilityResult(can_create=True)

    now = now or datetime.now(timezone.utc)
    days_since_last_plan = int(
        (now - last_plan_created_at).total_seconds() // SECONDS_PER_DAY
    )
    if days_since_last_plan < cooldown_days:
        return EligibilityResult(
            can_create=False,
            days_remaining=cooldown_days - days_since_last_plan,
            message=f"You can only generate a new fitness plan every {cooldown_days} days",
        )

    return EligibilityResult(can_create=True)


def refusal_status_code(result: EligibilityResult) -> int:
    """HTTP status the eligibility endpoint uses for a result."""
    if result.can_create:
        return 200
    if result.globally_disabled or result.has_trainer:
        return 403
    return 429


class EligibilityGate:
    """
    Pre-flight check run before every generation attempt.

    The last answer is cached for display purposes; ``ensure_eligible``
    always re-queries. ``invalidate`` drops the cache after a failed attempt
    so the next read reflects the server.
    """

    def __init__(
        self,
        client: StepCoachClient,
        cache_ttl: float = 60.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.client = client
        self.cache_ttl = cache_ttl
        self._clock = clock or time.monotonic
        self._cached: Optional[EligibilityResult] = None
        self._cached_at: float = 0.0

    @property
    def cached(self) -> Optional[EligibilityResult]:
        """Last known answer, if still fresh."""
        if self._cached is None:
            return None
        if self._clock() - self._cached_at > self.cache_ttl:
            return None
        return self._cached

    async def check_eligibility(self, refresh: bool = False) -> EligibilityResult:
        """
        Get the eligibility answer.

        Args:
            refresh: Bypass the cache and ask the server

        Raises:
            TransientNetworkError: The eligibility call failed
        """
        cached = None if refresh else self.cached
        if cached is not None:
            return cached

        result = await self.client.eligibility()
        if (
            not result.can_create
            and result.days_remaining
            and result.days_remaining > 0
            and not result.message
        ):
            result = result.model_copy(
                update={"message": format_cooldown_message(result.days_remaining)}
            )

        self._cached = result
        self._cached_at = self._clock()
        logger.info(
            f"[ELIGIBILITY] can_create={result.can_create}, "
            f"days_remaining={result.days_remaining}"
        )
        return result

    async def ensure_eligible(self) -> EligibilityResult:
        """
        Re-check eligibility and raise if a new plan is not allowed.

        Raises:
            IneligibleError: Trainer-managed plans or feature disabled
            RateLimitedError: Last plan is inside the cooldown window
            AlreadyGeneratingError: Server reports a job in progress
        """
        result = await self.check_eligibility(refresh=True)
        if result.can_create:
            return result

        if result.globally_disabled or result.has_trainer:
            raise IneligibleError(
                result.message or "You are not eligible to create a fitness plan",
                has_trainer=result.has_trainer,
                globally_disabled=result.globally_disabled,
            )
        if result.days_remaining and result.days_remaining > 0:
            raise RateLimitedError(
                result.message or format_cooldown_message(result.days_remaining),
                days_remaining=result.days_remaining,
            )
        if result.status == "in_progress":
            raise AlreadyGeneratingError(result.message or IN_PROGRESS_MESSAGE)
        raise IneligibleError(
            result.message or "You are not eligible to create a fitness plan"
        )

    def invalidate(self) -> None:
        """Forget the cached answer."""
        self._cached = None
        self._cached_at = 0.0
