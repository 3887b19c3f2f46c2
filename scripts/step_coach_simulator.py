#!/usr/bin/env python3
"""
Step-Coach Job API Simulator for the Fitness Coach.

Serves the server-side plan generation job (start / status / continue /
result / reset) and the eligibility endpoint with canned plan content, so
the generation flow can be exercised without the real coach backend.

Each continue call advances the job by exactly one step. The final payload
uses the stepwise shape (nutritionData, workoutPlan.weeklySchedule,
mealPlan.dailyMeals, shoppingList.categories).

Usage:
    python scripts/step_coach_simulator.py
    python scripts/step_coach_simulator.py --calorie-target 2400 --port 5000
    python scripts/step_coach_simulator.py --fail-at-step 3
    python scripts/step_coach_simulator.py --last-plan-days-ago 10
"""

import sys
import argparse
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

SRC = Path(__file__).resolve().parent.parent / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from plan_generation.eligibility import evaluate_eligibility, refusal_status_code  # noqa: E402
from plan_generation.progress import (  # noqa: E402
    STEP_DESCRIPTIONS,
    PlanGenerationStep,
    remaining_estimate,
)


# Load environment variables
load_dotenv()

TOTAL_STEPS = 5

STEP_FAILURES = {
    PlanGenerationStep.NUTRITION_CALCULATION: "Failed to calculate nutrition targets",
    PlanGenerationStep.WORKOUT_PLAN: "Failed to generate workout plan",
    PlanGenerationStep.MEAL_PLAN: "Failed to generate meal plan",
    PlanGenerationStep.EXTRACT_INGREDIENTS: "Failed to extract ingredients",
    PlanGenerationStep.SHOPPING_LIST: "Failed to build shopping list",
}

WORKOUT_DAYS = ["monday", "tuesday", "thursday", "friday", "saturday", "wednesday", "sunday"]
ALL_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# Shopping list template: category -> (name, quantity, unit, price, meals)
SHOPPING_TEMPLATE = {
    "protein": [
        ("Chicken Breast", "1", "kg", 6.49, ["Monday Lunch", "Wednesday Dinner"]),
        ("Greek Yogurt", "2", "tubs", 2.30, ["Tuesday Breakfast"]),
        ("Salmon Fillets", "4", "fillets", 7.99, ["Friday Dinner"]),
    ],
    "produce": [
        ("Broccoli", "2", "heads", 1.20, ["Monday Dinner", "Thursday Lunch"]),
        ("Bananas", "6", "pieces", 0.95, ["Daily Snack"]),
        ("Spinach", "1", "bag", 1.49, ["Saturday Lunch"]),
    ],
    "grains": [
        ("Rolled Oats", "1", "kg", 1.85, ["Monday Breakfast", "Thursday Breakfast"]),
        ("Brown Rice", "1", "kg", 3.00, ["Tuesday Dinner"]),
    ],
}


@dataclass
class SimulatorScenario:
    """Behaviour of the simulated backend."""

    calorie_target: int = 2000
    fail_at_step: Optional[int] = None
    stall: bool = False
    globally_disabled: bool = False
    has_trainer: bool = False
    is_admin: bool = False
    last_plan_days_ago: Optional[int] = None
    cooldown_days: int = 30


@dataclass
class SimulatedJob:
    """Server-side state of one generation job."""

    coach_input: dict
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    step: int = PlanGenerationStep.NUTRITION_CALCULATION
    is_generating: bool = True
    is_complete: bool = False
    error_message: Optional[str] = None
    continue_calls: int = 0

    def status(self) -> dict:
        return {
            "isGenerating": self.is_generating,
            "step": int(self.step),
            "stepMessage": self.error_message or STEP_DESCRIPTIONS.get(self.step),
            "estimatedTimeRemaining": 0 if self.is_complete else remaining_estimate(self.step),
            "totalSteps": TOTAL_STEPS,
            "startedAt": self.started_at.isoformat(),
            "errorMessage": self.error_message,
            "isComplete": self.is_complete,
        }


def macro_targets(calories: int, weight: float) -> dict:
    """Protein at 2 g/kg, fat at 25% of calories, carbs fill the rest."""
    protein = round(weight * 2)
    fat = round(calories * 0.25 / 9)
    carbs = max(0, round((calories - protein * 4 - fat * 9) / 4))
    return {
        "calorieTarget": calories,
        "proteinTarget": protein,
        "carbsTarget": carbs,
        "fatTarget": fat,
    }


def build_plan_payload(coach_input: dict, scenario: SimulatorScenario) -> dict:
    """Final job result in the stepwise server shape."""
    days_per_week = int(coach_input.get("workoutDaysPerWeek") or 4)
    preferred = [day.lower() for day in coach_input.get("preferredWorkoutDays") or []]
    workout_days = (preferred or WORKOUT_DAYS)[:days_per_week]
    duration = int(coach_input.get("workoutDuration") or 60)
    names = coach_input.get("workoutNames") or {}

    weekly_schedule = {
        day: {
            "name": names.get(day, f"Workout {index + 1}"),
            "duration": duration,
            "exercises": [
                {"name": "Squat", "sets": 3, "reps": 10},
                {"name": "Push-up", "sets": 3, "reps": 12},
            ],
        }
        for index, day in enumerate(workout_days)
    }

    nutrition = macro_targets(scenario.calorie_target, float(coach_input.get("weight") or 70))
    daily_meals = {
        day: {
            "meals": [
                {"mealType": "breakfast", "name": "Oats with yogurt",
                 "calories": round(nutrition["calorieTarget"] * 0.25)},
                {"mealType": "lunch", "name": "Chicken and rice",
                 "calories": round(nutrition["calorieTarget"] * 0.35)},
                {"mealType": "dinner", "name": "Salmon and greens",
                 "calories": round(nutrition["calorieTarget"] * 0.40)},
            ]
        }
        for day in ALL_DAYS
    }

    categories = {
        category: {
            "items": [
                {
                    "itemName": name,
                    "quantity": quantity,
                    "unit": unit,
                    "estimated_price": price,
                    "meals": meals,
                }
                for name, quantity, unit, price, meals in items
            ]
        }
        for category, items in SHOPPING_TEMPLATE.items()
    }
    total = round(
        sum(item[3] for items in SHOPPING_TEMPLATE.values() for item in items), 2
    )
    budget = float(coach_input.get("weeklyBudget") or 50)

    return {
        "nutritionData": nutrition,
        "workoutPlan": {"weeklySchedule": weekly_schedule},
        "mealPlan": {"dailyMeals": daily_meals},
        "shoppingList": {
            "categories": categories,
            "totalCost": total,
            "budgetStatus": "under_budget" if total <= budget * 1.1 else "over_budget",
        },
    }


def create_app(scenario: Optional[SimulatorScenario] = None) -> FastAPI:
    """Build a simulator app with its own in-memory job state."""
    scenario = scenario or SimulatorScenario()
    state: dict[str, Any] = {
        "job": None,
        "result": None,
        "last_plan_created_at": (
            datetime.now(timezone.utc) - timedelta(days=scenario.last_plan_days_ago)
            if scenario.last_plan_days_ago is not None
            else None
        ),
    }

    app = FastAPI(title="Step-Coach Simulator", version="1.0.0")
    app.state.scenario = scenario
    app.state.simulator = state

    def eligibility():
        job = state["job"]
        return evaluate_eligibility(
            is_admin=scenario.is_admin,
            globally_disabled=scenario.globally_disabled,
            has_trainer=scenario.has_trainer,
            generation_in_progress=bool(job and job.is_generating),
            last_plan_created_at=state["last_plan_created_at"],
            cooldown_days=scenario.cooldown_days,
        )

    @app.get("/api/fitness-plans/eligibility")
    async def get_eligibility():
        result = eligibility()
        return JSONResponse(
            status_code=refusal_status_code(result),
            content=result.model_dump(mode="json", by_alias=True),
        )

    @app.post("/api/step-coach/start")
    async def start(coach_input: dict):
        result = eligibility()
        if not result.can_create:
            return JSONResponse(
                status_code=refusal_status_code(result),
                content=result.model_dump(mode="json", by_alias=True),
            )

        job = SimulatedJob(coach_input=coach_input)
        state["job"] = job
        state["result"] = None
        print(f"[SIMULATOR] Started job for {coach_input.get('fitnessGoal')}")
        return {
            "message": "Plan generation started",
            "step": int(job.step),
            "stepMessage": STEP_DESCRIPTIONS[job.step],
            "estimatedTimeRemaining": remaining_estimate(job.step),
            "totalSteps": TOTAL_STEPS,
        }

    @app.get("/api/step-coach/status")
    async def status():
        job = state["job"]
        if job is None:
            return {"isGenerating": False, "step": 0, "totalSteps": TOTAL_STEPS}
        return job.status()

    @app.post("/api/step-coach/continue")
    async def continue_generation():
        job = state["job"]
        if job is None:
            raise HTTPException(status_code=404, detail="No active plan generation found")
        if job.is_complete:
            return {"message": "Plan generation is already complete", "isComplete": True}
        if not job.is_generating:
            raise HTTPException(status_code=400, detail="Plan generation is not in progress")

        job.continue_calls += 1
        if not scenario.stall:
            job.step += 1
            if scenario.fail_at_step is not None and job.step >= scenario.fail_at_step:
                job.error_message = STEP_FAILURES.get(job.step, "Plan generation failed")
                job.is_generating = False
                print(f"[SIMULATOR] Job failed at step {job.step}")
            elif job.step >= PlanGenerationStep.COMPLETE:
                job.step = PlanGenerationStep.COMPLETE
                job.is_generating = False
                job.is_complete = True
                state["result"] = build_plan_payload(job.coach_input, scenario)
                state["last_plan_created_at"] = datetime.now(timezone.utc)
                print("[SIMULATOR] Job complete")

        return {
            "message": "Plan generation continued to next step",
            "step": int(job.step),
            "stepMessage": job.error_message or STEP_DESCRIPTIONS.get(job.step),
            "estimatedTimeRemaining": remaining_estimate(job.step),
            "totalSteps": TOTAL_STEPS,
            "isComplete": job.is_complete,
        }

    @app.get("/api/step-coach/result")
    async def result():
        if state["result"] is None:
            raise HTTPException(status_code=404, detail="No completed plan found")
        return state["result"]

    @app.post("/api/step-coach/reset")
    async def reset():
        state["job"] = None
        state["result"] = None
        print("[SIMULATOR] Job state reset")
        return {"message": "Plan generation state reset"}

    return app


def main():
    parser = argparse.ArgumentParser(
        description="Step-Coach Job API Simulator for the Fitness Coach",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Successful generation with a 2000 kcal target
  python scripts/step_coach_simulator.py

  # Job fails once it reaches the meal plan step
  python scripts/step_coach_simulator.py --fail-at-step 3

  # User generated a plan 10 days ago (cooldown refusal)
  python scripts/step_coach_simulator.py --last-plan-days-ago 10
        """,
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port to bind (default: 5000)",
    )
    parser.add_argument(
        "--calorie-target",
        type=int,
        default=2000,
        help="Daily calorie target of the generated plan (default: 2000)",
    )
    parser.add_argument(
        "--fail-at-step",
        type=int,
        choices=[1, 2, 3, 4, 5],
        help="Report a job error when the job reaches this step",
    )
    parser.add_argument(
        "--stall",
        action="store_true",
        help="Never advance past the first step (exercises the timeout)",
    )
    parser.add_argument(
        "--last-plan-days-ago",
        type=int,
        help="Pretend the user's last plan is this many days old",
    )
    parser.add_argument(
        "--globally-disabled",
        action="store_true",
        help="Refuse generation as if the feature were switched off",
    )
    parser.add_argument(
        "--has-trainer",
        action="store_true",
        help="Refuse generation as if the user had a personal trainer",
    )

    args = parser.parse_args()

    scenario = SimulatorScenario(
        calorie_target=args.calorie_target,
        fail_at_step=args.fail_at_step,
        stall=args.stall,
        globally_disabled=args.globally_disabled,
        has_trainer=args.has_trainer,
        last_plan_days_ago=args.last_plan_days_ago,
    )

    print("=" * 60)
    print("Step-Coach Job API Simulator")
    print("=" * 60)

    import uvicorn

    try:
        uvicorn.run(create_app(scenario), host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user")


if __name__ == "__main__":
    main()
