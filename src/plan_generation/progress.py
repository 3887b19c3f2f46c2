"""
Progress Projection.

Turns raw job status payloads into the simplified view the UI shows:
step N of M, a message, and an estimate of the time left.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional

from .models import DEFAULT_TOTAL_STEPS, StepStatus


class PlanGenerationStep(IntEnum):
    """Steps of the server-side generation job."""

    INITIALIZE = 0
    NUTRITION_CALCULATION = 1
    WORKOUT_PLAN = 2
    MEAL_PLAN = 3
    EXTRACT_INGREDIENTS = 4
    SHOPPING_LIST = 5
    COMPLETE = 6


STEP_DESCRIPTIONS = {
    PlanGenerationStep.INITIALIZE: "Initializing plan generation",
    PlanGenerationStep.NUTRITION_CALCULATION: "Calculating nutritional requirements",
    PlanGenerationStep.WORKOUT_PLAN: "Generating workout plan",
    PlanGenerationStep.MEAL_PLAN: "Creating meal plan based on nutritional needs",
    PlanGenerationStep.EXTRACT_INGREDIENTS: "Extracting ingredients from meal plan",
    PlanGenerationStep.SHOPPING_LIST: "Building shopping list",
    PlanGenerationStep.COMPLETE: "Plan generation complete",
}

# Seconds
STEP_TIME_ESTIMATES = {
    PlanGenerationStep.INITIALIZE: 5,
    PlanGenerationStep.NUTRITION_CALCULATION: 15,
    PlanGenerationStep.WORKOUT_PLAN: 60,
    PlanGenerationStep.MEAL_PLAN: 90,
    PlanGenerationStep.EXTRACT_INGREDIENTS: 45,
    PlanGenerationStep.SHOPPING_LIST: 30,
    PlanGenerationStep.COMPLETE: 0,
}

FALLBACK_MESSAGE = "Processing your request..."


def format_time_remaining(estimated_seconds: float) -> str:
    """Human-readable remaining time."""
    if estimated_seconds <= 0:
        return "Almost done..."
    if estimated_seconds < 60:
        return f"{int(estimated_seconds)} seconds remaining"
    minutes = math.ceil(estimated_seconds / 60)
    return f"About {minutes} {'minute' if minutes == 1 else 'minutes'} remaining"


def progress_percentage(
    current_step: int, total_steps: int, is_complete: bool = False
) -> int:
    """Percent complete; capped at 99 until the job reports completion."""
    if is_complete:
        return 100
    if total_steps <= 0:
        return 0
    return max(0, min(math.floor(current_step / total_steps * 100), 99))


def remaining_estimate(step: int) -> float:
    """Sum of the time estimates of this step and every later one."""
    return float(
        sum(
            seconds
            for candidate, seconds in STEP_TIME_ESTIMATES.items()
            if candidate >= step
        )
    )


@dataclass
class ProgressView:
    """What the user sees while a plan is being generated."""

    current_step: int
    total_steps: int
    message: str
    estimated_time_remaining: float
    elapsed_time: float
    percent_complete: int
    time_remaining_text: str
    is_complete: bool = False
    has_failed: bool = False
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "message": self.message,
            "estimated_time_remaining": self.estimated_time_remaining,
            "elapsed_time": self.elapsed_time,
            "percent_complete": self.percent_complete,
            "time_remaining_text": self.time_remaining_text,
            "is_complete": self.is_complete,
            "has_failed": self.has_failed,
            "error_message": self.error_message,
        }


class ProgressProjector:
    """Maps StepStatus payloads to ProgressView snapshots."""

    def __init__(self, default_total_steps: int = DEFAULT_TOTAL_STEPS):
        self.default_total_steps = default_total_steps

    def project(
        self,
        status: StepStatus,
        now: Optional[datetime] = None,
        started_at: Optional[datetime] = None,
        floor_step: int = 0,
    ) -> ProgressView:
        """
        Project one status payload.

        Args:
            status: Latest status from the job API
            now: Current time (for elapsed time)
            started_at: Local start time, used when the payload has none
            floor_step: Lowest step to display, so progress never goes back
        """
        now = now or datetime.now(timezone.utc)
        step = max(status.current_step, floor_step)
        total_steps = status.total_steps or self.default_total_steps
        has_failed = bool(status.error_message)
        is_complete = not has_failed and (
            bool(status.is_complete)
            or step >= PlanGenerationStep.COMPLETE
            or not status.is_generating
        )

        if status.step_message:
            message = status.step_message
        else:
            message = STEP_DESCRIPTIONS.get(step, FALLBACK_MESSAGE)

        if is_complete:
            estimate = 0.0
        elif status.estimated_time_remaining is not None:
            estimate = float(status.estimated_time_remaining)
        else:
            estimate = remaining_estimate(step)

        origin = status.started_at or started_at
        elapsed = 0.0
        if origin is not None:
            if origin.tzinfo is None:
                origin = origin.replace(tzinfo=timezone.utc)
            elapsed = float(max(0, math.floor((now - origin).total_seconds())))

        return ProgressView(
            current_step=step,
            total_steps=total_steps,
            message=message,
            estimated_time_remaining=estimate,
            elapsed_time=elapsed,
            percent_complete=progress_percentage(step, total_steps, is_complete),
            time_remaining_text=format_time_remaining(estimate),
            is_complete=is_complete,
            has_failed=has_failed,
            error_message=status.error_message,
        )
