"""Pydantic models for the coach API."""
from .generation import ActionResult, GenerationStarted, GenerationStatus, ProgressSnapshot
from .nutrition import DailyTotalsRequest, WeeklyNutritionRequest
from .shopping import BudgetRequest, ShoppingByDayRequest

__all__ = [
    "ActionResult",
    "GenerationStarted",
    "GenerationStatus",
    "ProgressSnapshot",
    "DailyTotalsRequest",
    "WeeklyNutritionRequest",
    "BudgetRequest",
    "ShoppingByDayRequest",
]
