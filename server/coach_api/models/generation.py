"""Plan generation API models."""
from pydantic import BaseModel
from typing import Optional


class GenerationStarted(BaseModel):
    """Response to a generation request."""

    status: str = "started"
    session_id: str
    current_step: int
    total_steps: int
    started_at: str
    message: str


class ProgressSnapshot(BaseModel):
    """Latest progress view of the current or last attempt."""

    current_step: int
    total_steps: int
    message: str
    estimated_time_remaining: float
    elapsed_time: float
    percent_complete: int
    time_remaining_text: str
    is_complete: bool = False
    has_failed: bool = False
    error_message: Optional[str] = None


class GenerationStatus(BaseModel):
    """State of the plan generation service."""

    state: str
    session: Optional[dict] = None
    progress: Optional[ProgressSnapshot] = None
    error: Optional[dict] = None
    has_plan: bool = False


class ActionResult(BaseModel):
    """Result of a cancel, reset or resume request."""

    status: str
    message: str
