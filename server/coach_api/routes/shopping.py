"""Shopping list analytics API routes."""
from fastapi import APIRouter

from plan_analytics.budget import classify, group_by_day, parse_items

from ..models.shopping import BudgetRequest, ShoppingByDayRequest

router = APIRouter(prefix="/api/shopping", tags=["Shopping"])


@router.post("/budget")
async def get_budget_classification(request: BudgetRequest):
    """Classify items into value, standard and premium tiers and summarize the budget."""
    result = classify(request.shopping_list, request.budget, request.upstream_status)
    return result.to_dict()


@router.post("/by-day")
async def get_shopping_by_day(request: ShoppingByDayRequest):
    """
    Group shopping items by the first weekday named in their meals.

    Items without a day go to "shared". Missing prices get a default
    estimate before totals are computed.
    """
    groups = group_by_day(parse_items(request.items))
    return {
        "by_day": {day: group.to_dict() for day, group in groups.items()},
        "daily_groups": [group.to_dict() for group in groups.values() if group.items],
        "total_cost": round(sum(group.total_cost for group in groups.values()), 2),
    }
