"""Data models for plan generation.

Wire models (job API payloads, the canonical plan) are pydantic models that
read and write camelCase. In-process state owned by the poller is a plain
dataclass.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_TOTAL_STEPS = 5


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


Sex = Literal["male", "female"]
ActivityLevel = Literal["sedentary", "light", "moderate", "very_active", "extra_active"]
FitnessGoal = Literal["weight_loss", "muscle_gain", "strength", "stamina", "endurance"]


class CoachInput(BaseModel):
    """Everything the coach needs to know about the user for one attempt."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    age: int = Field(ge=13, le=100)
    sex: Sex
    height: float = Field(gt=0, description="Height in cm")
    weight: float = Field(gt=0, description="Weight in kg")
    activity_level: ActivityLevel
    fitness_goal: FitnessGoal
    dietary_preferences: tuple[str, ...] = ()
    weekly_budget: float = Field(default=50.0, ge=0)
    workout_days_per_week: int = Field(default=4, ge=1, le=7)
    preferred_workout_days: tuple[str, ...] = ()
    workout_duration: int = Field(default=60, gt=0, description="Minutes")
    workout_names: Optional[dict[str, str]] = None
    notify_by_email: bool = False
    email: Optional[str] = None
    preferred_store: Optional[str] = None

    def to_payload(self) -> dict:
        """Serialize for the job API start call."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EligibilityResult(BaseModel):
    """Pre-flight answer from the eligibility endpoint."""

    model_config = ConfigDict(
        populate_by_name=True, alias_generator=to_camel, extra="ignore"
    )

    can_create: bool = False
    days_remaining: Optional[int] = None
    has_trainer: bool = False
    globally_disabled: bool = False
    message: Optional[str] = None
    status: Optional[str] = None


class StepStatus(BaseModel):
    """One status poll of the server-side job."""

    model_config = ConfigDict(
        populate_by_name=True, alias_generator=to_camel, extra="ignore"
    )

    is_generating: bool = False
    # Older servers report the step as "step"
    current_step: int = Field(
        default=0,
        validation_alias=AliasChoices("currentStep", "step", "current_step"),
    )
    step_message: Optional[str] = None
    estimated_time_remaining: Optional[float] = None
    total_steps: Optional[int] = None
    started_at: Optional[datetime] = None
    error_message: Optional[str] = None
    is_complete: Optional[bool] = None

    @field_validator("started_at", mode="before")
    @classmethod
    def _tolerate_bad_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return value

    @field_validator("started_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Offset-less timestamps from the job API are UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("current_step", mode="before")
    @classmethod
    def _null_step(cls, value: Any) -> Any:
        return 0 if value is None else value


@dataclass
class GenerationSession:
    """Mutable state of one generation attempt, owned by StepPoller."""

    session_id: str
    started_at: datetime
    current_step: int = 1
    total_steps: int = DEFAULT_TOTAL_STEPS
    is_generating: bool = True
    status_message: str = "Analyzing your preferences..."
    estimated_time_remaining: float = 60
    elapsed_time: float = 0.0
    error_message: Optional[str] = None
    is_complete: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "is_generating": self.is_generating,
            "status_message": self.status_message,
            "estimated_time_remaining": self.estimated_time_remaining,
            "elapsed_time": self.elapsed_time,
            "error_message": self.error_message,
            "is_complete": self.is_complete,
        }


class NutritionGoal(BaseModel):
    """Daily macro targets."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    calories_target: float = 0
    protein_target: float = 0
    carbs_target: float = 0
    fat_target: float = 0


class WeeklySchedule(BaseModel):
    """Day name -> plan entries for that day."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    weekly_schedule: dict[str, Any] = Field(default_factory=dict)


class FitnessPlan(BaseModel):
    """Canonical plan shape consumed by the rest of the application."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: str
    preferences: dict[str, Any] = Field(default_factory=dict)
    nutrition_goal: NutritionGoal = Field(default_factory=NutritionGoal)
    workout_plan: WeeklySchedule = Field(default_factory=WeeklySchedule)
    meal_plan: WeeklySchedule = Field(default_factory=WeeklySchedule)
    shopping_list: Union[list, dict] = Field(default_factory=list)
    created_at: datetime
    active: bool = True
    schema_version: str = "stepwise"
