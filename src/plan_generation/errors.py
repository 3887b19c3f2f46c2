"""Plan generation error taxonomy.

Every error carries a stable ``code`` so the API layer and the event stream
can report failures without matching on message text.
"""

from typing import Optional


class PlanGenerationError(Exception):
    """Base class for all plan generation failures."""

    code = "generation_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class IneligibleError(PlanGenerationError):
    """The eligibility check refused a new plan (trainer, kill-switch, ...)."""

    code = "ineligible"

    def __init__(
        self,
        message: str,
        has_trainer: bool = False,
        globally_disabled: bool = False,
    ):
        super().__init__(message)
        self.has_trainer = has_trainer
        self.globally_disabled = globally_disabled


class RateLimitedError(IneligibleError):
    """A plan was generated within the cooldown window."""

    code = "rate_limited"

    def __init__(self, message: str, days_remaining: int):
        super().__init__(message)
        self.days_remaining = days_remaining

    def to_dict(self) -> dict:
        return {**super().to_dict(), "days_remaining": self.days_remaining}


class AlreadyGeneratingError(PlanGenerationError):
    """A non-stale generation lease is already held."""

    code = "already_generating"


class TransientNetworkError(PlanGenerationError):
    """A job API call failed at the transport level or returned non-2xx."""

    code = "network_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {**super().to_dict(), "status_code": self.status_code}


class JobError(PlanGenerationError):
    """The job status payload reported an error."""

    code = "job_error"


class GenerationTimeoutError(PlanGenerationError):
    """The job exceeded its time budget or its lease went stale."""

    code = "timeout"


class GenerationCancelledError(PlanGenerationError):
    """Client-side polling was cancelled."""

    code = "cancelled"
