"""
Nutrition Aggregation.

Sums logged meal nutrition into per-meal, per-day and per-range totals and
measures them against the plan's daily macro targets.
"""

import math
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

MACROS = ("calories", "protein", "carbs", "fat")

# Accepted source keys per macro, in priority order
MACRO_KEYS = {
    "calories": ("calories", "kcal"),
    "protein": ("protein", "protein_g"),
    "carbs": ("carbs", "carbs_g", "carbohydrates"),
    "fat": ("fat", "fat_g"),
}

DATE_KEYS = ("date", "createdAt", "created_at")

# Used by the weekly view when the plan has no targets
DEFAULT_DAILY_GOALS = {"calories": 2000.0, "protein": 150.0, "carbs": 200.0, "fat": 70.0}

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class DailyTotals:
    """Macro totals for one meal, day or range."""

    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0

    def add(self, other: "DailyTotals") -> "DailyTotals":
        """Accumulate ``other`` in place."""
        self.calories += other.calories
        self.protein += other.protein
        self.carbs += other.carbs
        self.fat += other.fat
        return self

    def scaled(self, factor: float) -> "DailyTotals":
        return DailyTotals(
            calories=self.calories * factor,
            protein=self.protein * factor,
            carbs=self.carbs * factor,
            fat=self.fat * factor,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "calories": round(self.calories, 2),
            "protein": round(self.protein, 2),
            "carbs": round(self.carbs, 2),
            "fat": round(self.fat, 2),
        }


def normalize_date(value: Any) -> Optional[str]:
    """
    Calendar date (YYYY-MM-DD) of a meal timestamp.

    Strings carrying a time component are truncated at the "T". Returns None
    for anything that does not name a valid date.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        return None
    day = value.strip().split("T")[0]
    try:
        return date.fromisoformat(day).isoformat()
    except ValueError:
        return None


def _read_macros(source: Mapping[str, Any]) -> DailyTotals:
    values = {}
    for macro, keys in MACRO_KEYS.items():
        values[macro] = next(
            (_number(source[key]) for key in keys if source.get(key) is not None), 0.0
        )
    return DailyTotals(**values)


def meal_totals(meal: Mapping[str, Any]) -> DailyTotals:
    """
    Nutrition of one meal.

    Read from a ``nutrition`` object, flat fields on the meal, or the sum
    of its ``items``, whichever is present first.
    """
    nutrition = meal.get("nutrition")
    if isinstance(nutrition, Mapping):
        return _read_macros(nutrition)

    if any(meal.get(key) is not None for keys in MACRO_KEYS.values() for key in keys):
        return _read_macros(meal)

    totals = DailyTotals()
    items = meal.get("items")
    if isinstance(items, list):
        for item in items:
            if isinstance(item, Mapping):
                totals.add(meal_totals(item))
    return totals


def _meal_date(meal: Mapping[str, Any]) -> Optional[str]:
    for key in DATE_KEYS:
        if meal.get(key) is not None:
            return normalize_date(meal[key])
    return None


def aggregate(meals: Iterable[Any]) -> Dict[str, DailyTotals]:
    """
    Group meals by calendar date and sum their nutrition.

    Malformed meals (not an object, missing or invalid date) are skipped
    with a warning.

    Returns:
        Date string -> DailyTotals, for dates with at least one meal, sorted
    """
    daily: Dict[str, DailyTotals] = {}
    skipped = 0

    for meal in meals or []:
        if not isinstance(meal, Mapping):
            logger.warning(f"[NUTRITION] Skipping non-object meal entry: {meal!r}")
            skipped += 1
            continue
        day = _meal_date(meal)
        if day is None:
            logger.warning(
                f"[NUTRITION] Skipping meal without a valid date: {meal.get('id', meal.get('name'))}"
            )
            skipped += 1
            continue
        daily.setdefault(day, DailyTotals()).add(meal_totals(meal))

    if skipped:
        logger.info(f"[NUTRITION] Aggregated {len(daily)} days, skipped {skipped} meals")
    return dict(sorted(daily.items()))


def adherence(actual: Any, target: Any) -> int:
    """
    Percent of a target reached, in [0, 100].

    Zero or missing targets give 0. Exceeding the target still gives 100.
    """
    target = _number(target)
    if target <= 0:
        return 0
    return max(0, min(100, _round_half_up(_number(actual) / target * 100)))


def goal_targets(goal: Any) -> Dict[str, float]:
    """Macro targets from a NutritionGoal, a plan-style dict or a plain dict."""
    targets = {}
    for macro in MACROS:
        if isinstance(goal, Mapping):
            value = next(
                (
                    goal[key]
                    for key in (macro, f"{macro}Target", f"{macro}_target")
                    if goal.get(key) is not None
                ),
                None,
            )
        else:
            value = getattr(goal, f"{macro}_target", None)
        targets[macro] = _number(value)
    return targets


def goal_adherence(totals: DailyTotals, goal: Any) -> Dict[str, int]:
    """Adherence per macro."""
    targets = goal_targets(goal)
    return {macro: adherence(getattr(totals, macro), targets[macro]) for macro in MACROS}


@dataclass
class RangeSummary:
    """Totals and per-logged-day averages over a date range."""

    start: Optional[str]
    end: Optional[str]
    days_logged: int = 0
    totals: DailyTotals = field(default_factory=DailyTotals)
    averages: DailyTotals = field(default_factory=DailyTotals)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "start": self.start,
            "end": self.end,
            "days_logged": self.days_logged,
            "totals": self.totals.to_dict(),
            "averages": self.averages.to_dict(),
        }


def summarize_range(
    daily: Mapping[str, DailyTotals],
    start: Optional[Union[str, date]] = None,
    end: Optional[Union[str, date]] = None,
) -> RangeSummary:
    """
    Total and average daily nutrition between two dates (inclusive).

    Averages divide by the number of days that have entries, not by the
    number of calendar days in the range.
    """
    start_key = normalize_date(start) if start is not None else None
    end_key = normalize_date(end) if end is not None else None

    summary = RangeSummary(start=start_key, end=end_key)
    for day, totals in daily.items():
        if start_key and day < start_key:
            continue
        if end_key and day > end_key:
            continue
        summary.totals.add(totals)
        summary.days_logged += 1

    if summary.days_logged:
        summary.averages = summary.totals.scaled(1 / summary.days_logged)
    return summary


@dataclass
class DayNutrition:
    """One day of the weekly view."""

    date: str
    day_name: str
    totals: DailyTotals
    adherence: Dict[str, int]
    has_entries: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "date": self.date,
            "day_name": self.day_name,
            "totals": self.totals.to_dict(),
            "adherence": self.adherence,
            "has_entries": self.has_entries,
        }


@dataclass
class WeeklyNutritionView:
    """Monday-to-Sunday nutrition with goal adherence per day."""

    week_start: str
    week_end: str
    goals: Dict[str, float]
    days: List[DayNutrition]
    summary: RangeSummary

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "week_start": self.week_start,
            "week_end": self.week_end,
            "goals": self.goals,
            "days": [day.to_dict() for day in self.days],
            "summary": self.summary.to_dict(),
        }


def week_bounds(day: Union[str, date]) -> tuple[date, date]:
    """Monday and Sunday of the week containing ``day``."""
    if isinstance(day, datetime):
        day = day.date()
    elif isinstance(day, str):
        normalized = normalize_date(day)
        if normalized is None:
            raise ValueError(f"Invalid date: {day!r}")
        day = date.fromisoformat(normalized)
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def weekly_view(
    meals: Iterable[Any],
    week_of: Union[str, date],
    goal: Any = None,
) -> WeeklyNutritionView:
    """
    Build the seven-day view for the week containing ``week_of``.

    Days without meals are present with zero totals. Missing goal targets
    fall back to the default daily goals.
    """
    monday, sunday = week_bounds(week_of)
    daily = aggregate(meals)

    targets = goal_targets(goal) if goal is not None else {}
    goals = {
        macro: targets.get(macro) or DEFAULT_DAILY_GOALS[macro] for macro in MACROS
    }

    days = []
    for offset, name in enumerate(WEEKDAYS):
        key = (monday + timedelta(days=offset)).isoformat()
        totals = daily.get(key, DailyTotals())
        days.append(
            DayNutrition(
                date=key,
                day_name=name.title(),
                totals=totals,
                adherence=goal_adherence(totals, goals),
                has_entries=key in daily,
            )
        )

    return WeeklyNutritionView(
        week_start=monday.isoformat(),
        week_end=sunday.isoformat(),
        goals=goals,
        days=days,
        summary=summarize_range(daily, monday, sunday),
    )
