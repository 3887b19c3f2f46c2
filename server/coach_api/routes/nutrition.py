"""Nutrition analytics API routes."""
from fastapi import APIRouter, HTTPException

from plan_analytics.nutrition import aggregate, goal_adherence, summarize_range, weekly_view

from ..models.nutrition import DailyTotalsRequest, WeeklyNutritionRequest

router = APIRouter(prefix="/api/nutrition", tags=["Nutrition"])


@router.post("/daily-totals")
async def get_daily_totals(request: DailyTotalsRequest):
    """
    Aggregate logged meals into per-day totals.

    Days outside the optional range are left out. With a goal, each day
    carries its adherence per macro.
    """
    daily = aggregate(request.meals)
    summary = summarize_range(daily, request.start, request.end)

    days = {}
    for day, totals in daily.items():
        if summary.start and day < summary.start:
            continue
        if summary.end and day > summary.end:
            continue
        entry = {"totals": totals.to_dict()}
        if request.goal:
            entry["adherence"] = goal_adherence(totals, request.goal)
        days[day] = entry

    return {"days": days, "summary": summary.to_dict()}


@router.post("/weekly")
async def get_weekly_nutrition(request: WeeklyNutritionRequest):
    """Seven-day nutrition view (Monday to Sunday) with goal adherence."""
    try:
        view = weekly_view(request.meals, request.week_of, request.goal)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return view.to_dict()
