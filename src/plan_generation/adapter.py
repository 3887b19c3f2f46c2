"""
Response Adapter.

Normalizes the raw payload of a finished job into the canonical
FitnessPlan. Plans generated by older server versions come in different
shapes; each one is listed here with the rule used to read it.

    stepwise  {"nutritionData": {"calorieTarget", "proteinTarget",
              "carbsTarget", "fatTarget"}, "workoutPlan": {...},
              "mealPlan": {...}, "shoppingList": ...}
              Plans are bare day -> entries maps, or the meal plan keeps
              them under "dailyMeals".
    legacy    {"nutritionGoal": {"caloriesTarget", ...}, "workoutPlan":
              {"weeklySchedule": ...}, "mealPlan": {"weeklyMeals" or
              "weeklyMealPlan": ...}}
    flat      targets at the top level ("calorieTarget", ...), bare plans.

Weekly schedule lookup order: "weeklySchedule", "weeklyMeals",
"weeklyMealPlan", "dailyMeals"; a plan with none of these is itself the
schedule.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .models import CoachInput, FitnessPlan, NutritionGoal, WeeklySchedule

logger = logging.getLogger(__name__)

SCHEDULE_KEYS = ("weeklySchedule", "weeklyMeals", "weeklyMealPlan", "dailyMeals")

# Canonical field -> accepted source keys, in priority order
TARGET_KEYS = {
    "calories_target": ("calorieTarget", "caloriesTarget"),
    "protein_target": ("proteinTarget",),
    "carbs_target": ("carbsTarget", "carbTarget"),
    "fat_target": ("fatTarget",),
}

DEFAULT_PREFERRED_STORE = "aldi"
DEFAULT_WORKOUT_DAYS = 4
DEFAULT_WORKOUT_DURATION = 60


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0  # NaN


def detect_schema(raw: Dict[str, Any]) -> str:
    """Name the payload shape a raw job result uses."""
    if isinstance(raw.get("nutritionData"), dict):
        return "stepwise"
    if isinstance(raw.get("nutritionGoal"), dict):
        return "legacy"
    if any(key in raw for keys in TARGET_KEYS.values() for key in keys):
        return "flat"
    return "unknown"


def extract_nutrition_goal(raw: Dict[str, Any]) -> NutritionGoal:
    """Read macro targets from whichever shape the payload uses."""
    source = raw.get("nutritionData")
    if not isinstance(source, dict):
        source = raw.get("nutritionGoal")
    if not isinstance(source, dict):
        source = raw

    values = {}
    for field, keys in TARGET_KEYS.items():
        values[field] = next(
            (_number(source[key]) for key in keys if source.get(key) is not None),
            0.0,
        )
    return NutritionGoal(**values)


def weekly_schedule(plan: Any) -> Dict[str, Any]:
    """Day -> entries map of a workout or meal plan in any known shape."""
    if not isinstance(plan, dict):
        return {}
    for key in SCHEDULE_KEYS:
        if isinstance(plan.get(key), dict):
            return plan[key]
    return plan


def weekly_meals(meal_plan: Any) -> Dict[str, Any]:
    """Read helper for meal plans stored under either legacy key."""
    return weekly_schedule(meal_plan)


def build_preferences(coach_input: Optional[CoachInput]) -> Dict[str, Any]:
    """Plan preferences echoed back from the request that produced it."""
    if coach_input is None:
        return {}
    return {
        "goal": coach_input.fitness_goal,
        "currentWeight": coach_input.weight,
        "unit": "kg",
        "age": coach_input.age,
        "gender": coach_input.sex,
        "dietaryRestrictions": list(coach_input.dietary_preferences),
        "preferredStore": coach_input.preferred_store or DEFAULT_PREFERRED_STORE,
        "weeklyBudget": coach_input.weekly_budget,
        "workoutDaysPerWeek": coach_input.workout_days_per_week or DEFAULT_WORKOUT_DAYS,
        "preferredWorkoutDays": list(coach_input.preferred_workout_days),
        "workoutDuration": coach_input.workout_duration or DEFAULT_WORKOUT_DURATION,
        "workoutNames": dict(coach_input.workout_names or {}),
    }


class ResponseAdapter:
    """Builds canonical plans from raw job results. Never raises on bad input."""

    def __init__(
        self,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._id_factory = id_factory or (lambda: f"tmp-{uuid.uuid4().hex[:12]}")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def adapt(
        self,
        raw: Any,
        coach_input: Optional[CoachInput] = None,
        now: Optional[datetime] = None,
    ) -> FitnessPlan:
        """
        Normalize a raw job result.

        Args:
            raw: Payload of the result call
            coach_input: Request that produced the plan (for preferences)
            now: Creation timestamp (defaults to the adapter clock)

        Returns:
            Canonical FitnessPlan with a temporary client-side id
        """
        if not isinstance(raw, dict):
            logger.warning(
                f"[ADAPTER] Expected an object, got {type(raw).__name__}; "
                "building an empty plan"
            )
            raw = {}

        schema = detect_schema(raw)
        shopping_list = raw.get("shoppingList")
        if not isinstance(shopping_list, (list, dict)):
            shopping_list = []

        plan = FitnessPlan(
            id=self._id_factory(),
            preferences=build_preferences(coach_input),
            nutrition_goal=extract_nutrition_goal(raw),
            workout_plan=WeeklySchedule(
                weekly_schedule=weekly_schedule(raw.get("workoutPlan"))
            ),
            meal_plan=WeeklySchedule(
                weekly_schedule=weekly_meals(raw.get("mealPlan"))
            ),
            shopping_list=shopping_list,
            created_at=now or self._clock(),
            active=True,
            schema_version=schema,
        )

        logger.info(
            f"[ADAPTER] Adapted {schema} payload: "
            f"{plan.nutrition_goal.calories_target:.0f} kcal, "
            f"{len(plan.workout_plan.weekly_schedule)} workout days, "
            f"{len(plan.meal_plan.weekly_schedule)} meal days"
        )
        return plan
