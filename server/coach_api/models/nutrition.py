"""Nutrition analytics request models."""
from pydantic import BaseModel, Field
from typing import Any, Optional


class DailyTotalsRequest(BaseModel):
    """Logged meals to aggregate, optionally limited to a date range."""

    meals: list[Any] = Field(default_factory=list)
    goal: Optional[dict[str, Any]] = None
    start: Optional[str] = None
    end: Optional[str] = None


class WeeklyNutritionRequest(BaseModel):
    """Logged meals and the week to show."""

    meals: list[Any] = Field(default_factory=list)
    week_of: str = Field(description="Any date inside the requested week (YYYY-MM-DD)")
    goal: Optional[dict[str, Any]] = None
