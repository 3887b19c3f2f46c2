"""Fitness Plan Generation Module.

Drives the server-side stepwise coach job from eligibility check to a
canonical fitness plan, guarded by a durable single-flight lease.
"""

from .adapter import ResponseAdapter, weekly_meals
from .client import StepCoachClient
from .eligibility import EligibilityGate, evaluate_eligibility
from .errors import (
    AlreadyGeneratingError,
    GenerationCancelledError,
    GenerationTimeoutError,
    IneligibleError,
    JobError,
    PlanGenerationError,
    RateLimitedError,
    TransientNetworkError,
)
from .lease import GenerationMutex, InMemoryLeaseStore, SQLiteLeaseStore
from .models import CoachInput, EligibilityResult, FitnessPlan, StepStatus
from .poller import CancellationToken, GenerationState, StepPoller
from .progress import PlanGenerationStep, ProgressProjector, ProgressView

__all__ = [
    "ResponseAdapter",
    "weekly_meals",
    "StepCoachClient",
    "EligibilityGate",
    "evaluate_eligibility",
    "AlreadyGeneratingError",
    "GenerationCancelledError",
    "GenerationTimeoutError",
    "IneligibleError",
    "JobError",
    "PlanGenerationError",
    "RateLimitedError",
    "TransientNetworkError",
    "GenerationMutex",
    "InMemoryLeaseStore",
    "SQLiteLeaseStore",
    "CoachInput",
    "EligibilityResult",
    "FitnessPlan",
    "StepStatus",
    "CancellationToken",
    "GenerationState",
    "StepPoller",
    "PlanGenerationStep",
    "ProgressProjector",
    "ProgressView",
]
