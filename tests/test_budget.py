"""
Unit tests for shopping-list budget classification.

These tests verify:
1. Cost tier boundaries (value < 3, standard 3-7, premium > 7)
2. Budget status and capped percentage
3. Every supported shopping-list shape
4. Default pricing and grouping by day

Usage:
    pytest tests/test_budget.py -v
"""
import sys
import pytest
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from plan_analytics.budget import (
    SHARED_GROUP,
    BudgetStatus,
    BudgetTier,
    ShoppingItem,
    budget_percentage,
    budget_status,
    classify,
    classify_cost,
    default_cost,
    extract_items,
    fill_missing_costs,
    group_by_day,
    parse_items,
    total_cost,
)


def items_costing(*costs):
    return [{"name": f"Item {index}", "estimatedCost": cost} for index, cost in enumerate(costs)]


# ============================================================================
# Tiers
# ============================================================================


class TestClassifyCost:
    """Test tier boundaries."""

    @pytest.mark.parametrize(
        "cost, tier",
        [
            (0, BudgetTier.VALUE),
            (2.99, BudgetTier.VALUE),
            (3.00, BudgetTier.STANDARD),
            (7.00, BudgetTier.STANDARD),
            (7.01, BudgetTier.PREMIUM),
        ],
    )
    def test_boundaries(self, cost, tier):
        assert classify_cost(cost) == tier

    def test_missing_cost_is_value(self):
        assert classify_cost(None) == BudgetTier.VALUE
        assert classify_cost("n/a") == BudgetTier.VALUE

    def test_every_item_in_exactly_one_tier(self):
        result = classify(items_costing(1, 2.99, 3, 5, 7, 7.01, 12), budget=50)

        counts = {tier.value: len(items) for tier, items in result.tiers.items()}
        assert counts == {"value": 2, "standard": 3, "premium": 2}
        assert sum(counts.values()) == 7


# ============================================================================
# Budget status
# ============================================================================


class TestBudgetStatus:
    """Test status thresholds against a 50.00 budget."""

    def test_under_budget(self):
        assert budget_status(36, 50) == BudgetStatus.UNDER_BUDGET
        assert budget_percentage(36, 50) == 72

    def test_near_budget(self):
        assert budget_status(40, 50) == BudgetStatus.NEAR_BUDGET
        assert budget_status(37.5, 50) == BudgetStatus.NEAR_BUDGET
        assert budget_percentage(40, 50) == 80

    def test_exactly_on_budget_is_near(self):
        assert budget_status(50, 50) == BudgetStatus.NEAR_BUDGET

    def test_over_budget_percentage_capped(self):
        """Status uses the uncapped ratio; the percentage stops at 100."""
        assert budget_status(55, 50) == BudgetStatus.OVER_BUDGET
        assert budget_percentage(55, 50) == 100

    def test_zero_budget(self):
        assert budget_status(10, 0) == BudgetStatus.OVER_BUDGET
        assert budget_percentage(10, 0) == 100
        assert budget_status(0, 0) == BudgetStatus.UNDER_BUDGET
        assert budget_percentage(0, 0) == 0

    def test_summary(self):
        summary = classify(items_costing(20, 35), budget=50).summary

        assert summary.total_cost == 55
        assert summary.status == BudgetStatus.OVER_BUDGET
        assert summary.remaining_budget == 0
        assert summary.to_dict()["budget_percentage"] == 100

    def test_upstream_status_is_only_a_hint(self):
        """A disagreeing budgetStatus from the generator should not win."""
        shopping_list = {"items": items_costing(20, 20), "budgetStatus": "under_budget"}

        summary = classify(shopping_list, budget=50).summary

        assert summary.status == BudgetStatus.NEAR_BUDGET
        assert summary.upstream_status == "under_budget"
        assert summary.remaining_budget == 10


# ============================================================================
# Shopping-list shapes
# ============================================================================


class TestShoppingListShapes:
    """Test item extraction and total cost for every shape."""

    def test_flat_list(self):
        assert total_cost(items_costing(1.5, 2.5)) == 4

    def test_wrapped_items(self):
        assert total_cost({"items": items_costing(1.5, 2.5)}) == 4

    def test_categories_with_item_lists(self):
        shopping_list = {"categories": {"produce": items_costing(1, 2), "dairy": items_costing(4)}}

        items = extract_items(shopping_list)

        assert total_cost(shopping_list) == 7
        assert {item.category for item in items} == {"produce", "dairy"}

    def test_category_estimated_cost_wins_over_items(self):
        shopping_list = {
            "categories": {
                "protein": {"estimatedCost": 12.5},
                "produce": {"items": items_costing(1, 2)},
                "grains": {"estimatedCost": 4, "items": items_costing(100)},
            }
        }

        assert total_cost(shopping_list) == 12.5 + 3 + 4

    def test_categories_as_list(self):
        shopping_list = {
            "categories": [
                {"name": "snacks", "items": items_costing(2)},
                {"name": "drinks", "totalCost": 6},
            ]
        }

        assert total_cost(shopping_list) == 8
        assert extract_items(shopping_list)[0].category == "snacks"

    def test_unknown_shape(self):
        assert total_cost("nothing") == 0
        assert extract_items({"foo": "bar"}) == []

    def test_legacy_item_fields(self):
        """itemName, estimated_price and meals should map onto the item."""
        item = parse_items(
            [{"itemName": "Oats", "quantity": 1, "estimated_price": "1.85", "meals": ["Monday Breakfast"]}]
        )[0]

        assert item.name == "Oats"
        assert item.quantity == "1"
        assert item.estimated_cost == 1.85
        assert item.meal_associations == ["Monday Breakfast"]
        assert item.to_dict()["estimatedCost"] == 1.85
        assert item.to_dict()["mealAssociations"] == ["Monday Breakfast"]

    def test_bad_items_skipped_or_defaulted(self):
        items = parse_items([None, "eggs", {"name": "", "estimatedCost": "free"}])

        assert len(items) == 1
        assert items[0].name == "Unknown Item"
        assert items[0].estimated_cost is None
        assert items[0].cost == 0


# ============================================================================
# Default pricing and grouping
# ============================================================================


class TestFillMissingCosts:
    """Test default prices for items without a cost."""

    def test_default_cost_scales_with_quantity(self):
        assert default_cost("") == 2.5
        assert default_cost("1") == 2.5 * 1.5
        assert default_cost("4 pieces") == 2.5 * 3
        assert default_cost("10") == 2.5 * 4
        assert default_cost("0") == 2.5
        assert default_cost("a dozen") == 2.5

    def test_only_missing_costs_filled(self):
        items = [
            ShoppingItem(name="Milk", quantity="2", category="dairy"),
            ShoppingItem(name="Cheese", estimated_cost=0, category="dairy"),
            ShoppingItem(name="apples", estimated_cost=3.2, category="produce"),
        ]

        filled = fill_missing_costs(items)

        assert [item.name for item in filled] == ["Cheese", "Milk", "apples"]
        assert filled[0].estimated_cost == 2.5
        assert filled[1].estimated_cost == 5.0
        assert filled[2].estimated_cost == 3.2

    def test_input_items_not_mutated(self):
        item = ShoppingItem(name="Milk")
        fill_missing_costs([item])
        assert item.estimated_cost is None


class TestGroupByDay:
    """Test grouping items by the weekday of their meals."""

    def test_groups(self):
        items = parse_items(
            [
                {"name": "Chicken", "estimatedCost": 6.49, "mealAssociations": ["Monday Lunch", "Wednesday Dinner"]},
                {"name": "Yogurt", "estimatedCost": 2.30, "mealAssociations": ["tuesday breakfast"]},
                {"name": "Bananas", "estimatedCost": 0.95, "mealAssociations": ["Daily Snack"]},
                {"name": "Rice", "quantity": "1"},
            ]
        )

        groups = group_by_day(items)

        assert list(groups) == [
            "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday", SHARED_GROUP,
        ]
        assert [item.name for item in groups["monday"].items] == ["Chicken"]
        assert groups["wednesday"].items == []
        assert [item.name for item in groups["tuesday"].items] == ["Yogurt"]
        assert {item.name for item in groups[SHARED_GROUP].items} == {"Bananas", "Rice"}
        assert groups[SHARED_GROUP].total_cost == pytest.approx(0.95 + 3.75)
        assert groups[SHARED_GROUP].day_name == "Shared Items"
        assert groups["monday"].to_dict()["total_cost"] == 6.49
