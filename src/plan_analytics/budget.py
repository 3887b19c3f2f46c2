"""
Budget Classification.

Sorts shopping-list items into cost tiers and summarizes spend against the
weekly budget. Shopping lists come in several shapes depending on the
server version that generated the plan:

    [item, ...]                              flat list
    {"items": [item, ...]}                   wrapped list
    {"categories": {name: [item, ...]}}      items per category
    {"categories": {name: {"estimatedCost": 12.5}}}
    {"categories": {name: {"items": [item, ...]}}}

Item cost keys: estimatedCost, estimated_cost, estimatedPrice, estimated_price.
"""

import re
import math
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from plan_generation.models import to_camel

logger = logging.getLogger(__name__)

VALUE_MAX = 3.0
STANDARD_MAX = 7.0
NEAR_BUDGET_RATIO = 0.75

DEFAULT_ITEM_PRICE = 2.50
MAX_QUANTITY_MULTIPLIER = 3

COST_KEYS = ("estimatedCost", "estimated_cost", "estimatedPrice", "estimated_price")
CATEGORY_COST_KEYS = ("estimatedCost", "estimated_cost", "totalCost", "total_cost")

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
SHARED_GROUP = "shared"

_LEADING_NUMBER = re.compile(r"^(\d+(\.\d+)?)")


class BudgetTier(str, Enum):
    """Cost tier of a single item."""

    VALUE = "value"
    STANDARD = "standard"
    PREMIUM = "premium"


class BudgetStatus(str, Enum):
    """Spend relative to the weekly budget."""

    UNDER_BUDGET = "under_budget"
    NEAR_BUDGET = "near_budget"
    OVER_BUDGET = "over_budget"


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ShoppingItem(BaseModel):
    """One shopping-list line, read from any known item shape."""

    model_config = ConfigDict(
        populate_by_name=True, alias_generator=to_camel, extra="ignore"
    )

    name: str = Field(
        default="Unknown Item",
        validation_alias=AliasChoices("name", "itemName", "item_name"),
        serialization_alias="name",
    )
    quantity: str = ""
    unit: Optional[str] = None
    estimated_cost: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices(*COST_KEYS),
        serialization_alias="estimatedCost",
    )
    category: Optional[str] = None
    meal_associations: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("mealAssociations", "meal_associations", "meals"),
        serialization_alias="mealAssociations",
    )

    @field_validator("name", mode="before")
    @classmethod
    def _name_or_default(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value.strip() else "Unknown Item"

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("estimated_cost", mode="before")
    @classmethod
    def _cost_or_none(cls, value: Any) -> Optional[float]:
        return _number(value)

    @field_validator("meal_associations", mode="before")
    @classmethod
    def _associations(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [str(meal) for meal in value if meal is not None]

    @property
    def cost(self) -> float:
        return self.estimated_cost or 0.0

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


def classify_cost(cost: Any) -> BudgetTier:
    """Tier for one item cost: value < 3, standard 3-7 inclusive, premium > 7."""
    cost = _number(cost) or 0.0
    if cost < VALUE_MAX:
        return BudgetTier.VALUE
    if cost <= STANDARD_MAX:
        return BudgetTier.STANDARD
    return BudgetTier.PREMIUM


def parse_items(raw_items: Iterable[Any], category: Optional[str] = None) -> List[ShoppingItem]:
    """Validate raw item dicts; anything that is not an item is skipped."""
    items = []
    for raw in raw_items or []:
        if not isinstance(raw, Mapping):
            logger.warning(f"[BUDGET] Skipping non-object shopping item: {raw!r}")
            continue
        try:
            item = ShoppingItem.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[BUDGET] Skipping malformed shopping item: {e}")
            continue
        if category and not item.category:
            item = item.model_copy(update={"category": category})
        items.append(item)
    return items


def _categories(shopping_list: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(shopping_list, Mapping):
        return None
    categories = shopping_list.get("categories")
    if isinstance(categories, Mapping):
        return dict(categories)
    if isinstance(categories, list):
        return {
            entry.get("name") or f"category-{index}": entry
            for index, entry in enumerate(categories)
            if isinstance(entry, Mapping)
        }
    return None


def _category_items(name: str, value: Any) -> List[ShoppingItem]:
    if isinstance(value, list):
        return parse_items(value, category=name)
    if isinstance(value, Mapping) and isinstance(value.get("items"), list):
        return parse_items(value["items"], category=name)
    return []


def extract_items(shopping_list: Any) -> List[ShoppingItem]:
    """All items of a shopping list in any supported shape."""
    if isinstance(shopping_list, list):
        return parse_items(shopping_list)

    categories = _categories(shopping_list)
    if categories is not None:
        items = []
        for name, value in categories.items():
            items.extend(_category_items(name, value))
        return items

    if isinstance(shopping_list, Mapping) and isinstance(shopping_list.get("items"), list):
        return parse_items(shopping_list["items"])
    return []


def category_cost(name: str, value: Any) -> float:
    """Explicit category-level cost, else the sum of the category's items."""
    if isinstance(value, Mapping):
        explicit = next(
            (_number(value[key]) for key in CATEGORY_COST_KEYS if value.get(key) is not None),
            None,
        )
        if explicit is not None:
            return explicit
    return sum(item.cost for item in _category_items(name, value))


def total_cost(shopping_list: Any) -> float:
    """Sum of category costs when categories are present, else of item costs."""
    categories = _categories(shopping_list)
    if categories is not None:
        return sum(category_cost(name, value) for name, value in categories.items())
    return sum(item.cost for item in extract_items(shopping_list))


def budget_percentage(total: float, budget: float) -> int:
    """Share of the budget used, capped at 100 for display."""
    if budget <= 0:
        return 100 if total > 0 else 0
    return max(0, min(100, _round_half_up(total / budget * 100)))


def budget_status(total: float, budget: float) -> BudgetStatus:
    """Status from the uncapped spend ratio."""
    if budget <= 0:
        return BudgetStatus.OVER_BUDGET if total > 0 else BudgetStatus.UNDER_BUDGET
    ratio = total / budget
    if ratio > 1.0:
        return BudgetStatus.OVER_BUDGET
    if ratio >= NEAR_BUDGET_RATIO:
        return BudgetStatus.NEAR_BUDGET
    return BudgetStatus.UNDER_BUDGET


@dataclass
class BudgetSummary:
    """Spend against budget. Derived on demand, never stored."""

    total_cost: float
    budget: float
    budget_percentage: int
    status: BudgetStatus
    remaining_budget: float
    upstream_status: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "total_cost": round(self.total_cost, 2),
            "budget": self.budget,
            "budget_percentage": self.budget_percentage,
            "status": self.status.value,
            "remaining_budget": round(self.remaining_budget, 2),
            "upstream_status": self.upstream_status,
        }


def summarize_budget(
    total: float, budget: float, upstream_status: Optional[str] = None
) -> BudgetSummary:
    """
    Build the budget summary.

    The locally computed status always wins; a differing status sent by the
    plan generator is kept for display only.
    """
    status = budget_status(total, budget)
    if upstream_status and upstream_status != status.value:
        logger.info(
            f"[BUDGET] Upstream status {upstream_status} disagrees with "
            f"computed {status.value} ({total:.2f} of {budget:.2f})"
        )
    return BudgetSummary(
        total_cost=total,
        budget=budget,
        budget_percentage=budget_percentage(total, budget),
        status=status,
        remaining_budget=max(0.0, budget - total),
        upstream_status=upstream_status,
    )


@dataclass
class BudgetClassification:
    """Items per tier plus the budget summary."""

    tiers: Dict[BudgetTier, List[ShoppingItem]]
    summary: BudgetSummary

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "tiers": {
                tier.value: [item.to_dict() for item in items]
                for tier, items in self.tiers.items()
            },
            "tier_counts": {tier.value: len(items) for tier, items in self.tiers.items()},
            "summary": self.summary.to_dict(),
        }


def classify(
    shopping_list: Any, budget: float, upstream_status: Optional[str] = None
) -> BudgetClassification:
    """
    Classify every item into exactly one tier and summarize the budget.

    Args:
        shopping_list: Shopping list in any supported shape
        budget: Weekly budget
        upstream_status: budgetStatus sent by the generator (read from the
            list itself when not given)
    """
    if upstream_status is None and isinstance(shopping_list, Mapping):
        upstream_status = shopping_list.get("budgetStatus")

    tiers: Dict[BudgetTier, List[ShoppingItem]] = {tier: [] for tier in BudgetTier}
    for item in extract_items(shopping_list):
        tiers[classify_cost(item.cost)].append(item)

    summary = summarize_budget(total_cost(shopping_list), budget, upstream_status)
    logger.info(
        f"[BUDGET] {sum(len(items) for items in tiers.values())} items, "
        f"{summary.total_cost:.2f} of {budget:.2f} ({summary.status.value})"
    )
    return BudgetClassification(tiers=tiers, summary=summary)


def default_cost(quantity: str) -> float:
    """Placeholder price for an item with no cost, scaled by its leading quantity."""
    price = DEFAULT_ITEM_PRICE
    match = _LEADING_NUMBER.match((quantity or "").strip())
    if match:
        amount = float(match.group(1))
        if amount > 0:
            price = price * (1 + min(amount / 2, MAX_QUANTITY_MULTIPLIER))
    return price


def fill_missing_costs(items: Iterable[ShoppingItem]) -> List[ShoppingItem]:
    """Give zero or missing costs a default price; sort by category then name."""
    filled = []
    for item in items:
        if not item.estimated_cost or item.estimated_cost <= 0:
            item = item.model_copy(update={"estimated_cost": default_cost(item.quantity)})
        filled.append(item)
    return sorted(filled, key=lambda item: (item.category or "", item.name.lower()))


@dataclass
class DayGroup:
    """Shopping items needed for one day's meals."""

    day: str
    day_name: str
    items: List[ShoppingItem] = field(default_factory=list)
    total_cost: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "day": self.day,
            "day_name": self.day_name,
            "items": [item.to_dict() for item in self.items],
            "total_cost": round(self.total_cost, 2),
        }


def _first_weekday(associations: List[str]) -> Optional[str]:
    for association in associations:
        lowered = association.lower()
        for day in WEEKDAYS:
            if day in lowered:
                return day
    return None


def group_by_day(items: Iterable[ShoppingItem]) -> Dict[str, DayGroup]:
    """
    Group items by the first weekday named in their meal associations.

    Items naming no weekday go to the "shared" group. Costs are filled in
    first. Every weekday plus "shared" is present, in week order.
    """
    groups = {day: DayGroup(day=day, day_name=day.title()) for day in WEEKDAYS}
    groups[SHARED_GROUP] = DayGroup(day=SHARED_GROUP, day_name="Shared Items")

    for item in fill_missing_costs(items):
        group = groups[_first_weekday(item.meal_associations) or SHARED_GROUP]
        group.items.append(item)
        group.total_cost += item.cost
    return groups
