"""Shopping list analytics request models."""
from pydantic import BaseModel, Field
from typing import Any, Optional, Union


class BudgetRequest(BaseModel):
    """Shopping list to classify against a weekly budget."""

    shopping_list: Union[list[Any], dict[str, Any]] = Field(default_factory=list)
    budget: float = Field(ge=0)
    upstream_status: Optional[str] = None


class ShoppingByDayRequest(BaseModel):
    """Shopping items to group by the day of the meals that need them."""

    items: list[Any] = Field(default_factory=list)
