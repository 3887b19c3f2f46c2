"""Plan Analytics Module.

Derived figures computed from a canonical fitness plan: daily nutrition
totals with goal adherence and shopping-list budget tiers.
"""

from .budget import (
    BudgetStatus,
    BudgetTier,
    ShoppingItem,
    classify,
    classify_cost,
    fill_missing_costs,
    group_by_day,
)
from .nutrition import (
    DailyTotals,
    adherence,
    aggregate,
    goal_adherence,
    summarize_range,
    weekly_view,
)

__all__ = [
    "BudgetStatus",
    "BudgetTier",
    "ShoppingItem",
    "classify",
    "classify_cost",
    "fill_missing_costs",
    "group_by_day",
    "DailyTotals",
    "adherence",
    "aggregate",
    "goal_adherence",
    "summarize_range",
    "weekly_view",
]
