"""API route modules."""
from .generation import router as generation_router
from .events import router as events_router
from .nutrition import router as nutrition_router
from .shopping import router as shopping_router

__all__ = [
    "generation_router",
    "events_router",
    "nutrition_router",
    "shopping_router",
]
