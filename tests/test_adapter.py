"""
Unit tests for the response adapter.

These tests verify:
1. Nutrition targets read from the stepwise, legacy and flat shapes
2. Weekly schedules read from every known key
3. Preferences echoed back from the coach input
4. Missing or invalid fields never raise

Usage:
    pytest tests/test_adapter.py -v
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from plan_generation.adapter import (
    ResponseAdapter,
    build_preferences,
    detect_schema,
    weekly_meals,
    weekly_schedule,
)


NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def make_adapter():
    return ResponseAdapter(id_factory=lambda: "tmp-test", clock=lambda: NOW)


STEPWISE_PAYLOAD = {
    "nutritionData": {
        "calorieTarget": 2000,
        "proteinTarget": 160,
        "carbsTarget": 214,
        "fatTarget": 56,
    },
    "workoutPlan": {
        "weeklySchedule": {
            "monday": {"name": "Upper Body", "duration": 60},
            "thursday": {"name": "Lower Body", "duration": 60},
        }
    },
    "mealPlan": {
        "dailyMeals": {
            "monday": {"meals": [{"mealType": "breakfast", "calories": 500}]},
        }
    },
    "shoppingList": {"categories": {"protein": [{"name": "Eggs", "estimatedCost": 2.5}]}},
}


# ============================================================================
# Nutrition targets
# ============================================================================


class TestNutritionTargets:
    """Test macro target extraction across payload shapes."""

    def test_stepwise_targets(self):
        plan = make_adapter().adapt(STEPWISE_PAYLOAD)

        assert plan.nutrition_goal.calories_target == 2000
        assert plan.nutrition_goal.protein_target == 160
        assert plan.nutrition_goal.carbs_target == 214
        assert plan.nutrition_goal.fat_target == 56
        assert plan.schema_version == "stepwise"

    def test_legacy_nutrition_goal(self):
        """Legacy plans keep caloriesTarget under nutritionGoal."""
        plan = make_adapter().adapt(
            {"nutritionGoal": {"caloriesTarget": 1800, "proteinTarget": 120, "carbTarget": 150}}
        )

        assert plan.nutrition_goal.calories_target == 1800
        assert plan.nutrition_goal.carbs_target == 150
        assert plan.nutrition_goal.fat_target == 0
        assert plan.schema_version == "legacy"

    def test_flat_targets(self):
        plan = make_adapter().adapt({"calorieTarget": "2200", "fatTarget": "abc"})

        assert plan.nutrition_goal.calories_target == 2200
        assert plan.nutrition_goal.fat_target == 0
        assert plan.schema_version == "flat"

    def test_missing_targets_default_to_zero(self):
        plan = make_adapter().adapt({"nutritionData": {}})

        assert plan.nutrition_goal.calories_target == 0
        assert plan.nutrition_goal.protein_target == 0


# ============================================================================
# Weekly schedules
# ============================================================================


class TestWeeklySchedules:
    """Test schedule lookup across the legacy keys."""

    def test_lookup_keys(self):
        days = {"monday": ["Oats"]}

        assert weekly_schedule({"weeklySchedule": days}) == days
        assert weekly_schedule({"weeklyMeals": days}) == days
        assert weekly_schedule({"weeklyMealPlan": days}) == days
        assert weekly_schedule({"dailyMeals": days}) == days

    def test_bare_plan_is_its_own_schedule(self):
        assert weekly_meals({"tuesday": ["Rice"]}) == {"tuesday": ["Rice"]}

    def test_invalid_plan_gives_empty_schedule(self):
        assert weekly_schedule(None) == {}
        assert weekly_schedule(["monday"]) == {}

    def test_stepwise_schedules(self):
        plan = make_adapter().adapt(STEPWISE_PAYLOAD)

        assert set(plan.workout_plan.weekly_schedule) == {"monday", "thursday"}
        assert list(plan.meal_plan.weekly_schedule) == ["monday"]

    def test_legacy_meal_plan_key(self):
        plan = make_adapter().adapt(
            {"mealPlan": {"weeklyMealPlan": {"friday": {"meals": []}}}}
        )
        assert list(plan.meal_plan.weekly_schedule) == ["friday"]


# ============================================================================
# Canonical plan
# ============================================================================


class TestAdapt:
    """Test the canonical plan fields."""

    def test_identity_fields(self):
        plan = make_adapter().adapt(STEPWISE_PAYLOAD)

        assert plan.id == "tmp-test"
        assert plan.active is True
        assert plan.created_at == NOW

    def test_default_id_is_temporary(self):
        plan = ResponseAdapter().adapt({})
        assert plan.id.startswith("tmp-")

    def test_non_object_payload(self):
        """Garbage input should produce an empty plan, not an exception."""
        for raw in (None, "oops", 42, ["a"]):
            plan = make_adapter().adapt(raw)

            assert plan.nutrition_goal.calories_target == 0
            assert plan.workout_plan.weekly_schedule == {}
            assert plan.shopping_list == []
            assert plan.schema_version == "unknown"

    def test_invalid_shopping_list(self):
        plan = make_adapter().adapt({"shoppingList": "none"})
        assert plan.shopping_list == []

    def test_shopping_list_passed_through(self):
        plan = make_adapter().adapt(STEPWISE_PAYLOAD)
        assert plan.shopping_list == STEPWISE_PAYLOAD["shoppingList"]

    def test_serializes_camel_case(self):
        plan = make_adapter().adapt(STEPWISE_PAYLOAD)
        data = plan.model_dump(mode="json", by_alias=True)

        assert data["nutritionGoal"]["caloriesTarget"] == 2000
        assert "weeklySchedule" in data["workoutPlan"]
        assert data["schemaVersion"] == "stepwise"
        assert data["createdAt"].startswith("2025-03-03T09:00:00")

    def test_detect_schema(self):
        assert detect_schema({"nutritionData": {}}) == "stepwise"
        assert detect_schema({"nutritionGoal": {}}) == "legacy"
        assert detect_schema({"caloriesTarget": 1}) == "flat"
        assert detect_schema({}) == "unknown"


class TestPreferences:
    """Test preferences derived from the coach input."""

    def test_preferences_from_input(self, coach_input):
        prefs = build_preferences(coach_input)

        assert prefs["goal"] == "muscle_gain"
        assert prefs["currentWeight"] == 80
        assert prefs["unit"] == "kg"
        assert prefs["gender"] == "male"
        assert prefs["dietaryRestrictions"] == ["high_protein"]
        assert prefs["preferredStore"] == "aldi"
        assert prefs["workoutDaysPerWeek"] == 4
        assert prefs["workoutDuration"] == 60
        assert prefs["workoutNames"] == {}

    def test_preferences_without_input(self):
        assert build_preferences(None) == {}
        assert make_adapter().adapt({}).preferences == {}

    def test_adapt_carries_preferences(self, coach_input):
        plan = make_adapter().adapt(STEPWISE_PAYLOAD, coach_input=coach_input)
        assert plan.preferences["weeklyBudget"] == 50
