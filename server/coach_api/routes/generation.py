"""Plan generation API routes.

Start, observe, cancel and reset plan generation; fetch the finished plan.
"""
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from plan_generation import (
    AlreadyGeneratingError,
    CoachInput,
    GenerationCancelledError,
    IneligibleError,
    PlanGenerationError,
    RateLimitedError,
    TransientNetworkError,
)
from plan_generation.eligibility import refusal_status_code

from ..models.generation import ActionResult, GenerationStarted, GenerationStatus
from ..services import generation_service as service_module

router = APIRouter(prefix="/api/coach", tags=["Generation"])


def _service():
    return service_module.generation_service


def _http_error(error: PlanGenerationError) -> HTTPException:
    """Map a generation error to the HTTP status the UI expects."""
    if isinstance(error, RateLimitedError):
        status_code = 429
    elif isinstance(error, IneligibleError):
        status_code = 403
    elif isinstance(error, (AlreadyGeneratingError, GenerationCancelledError)):
        status_code = 409
    elif isinstance(error, TransientNetworkError):
        status_code = 502
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=error.to_dict())


# ============================================================================
# Eligibility
# ============================================================================


@router.get("/eligibility")
async def get_eligibility():
    """
    Check whether the user may generate a new plan.

    Refusals keep the job API's status codes: 403 for trainer-managed or
    disabled, 429 for the cooldown and for a generation in progress.
    """
    try:
        result = await _service().check_eligibility()
    except TransientNetworkError as e:
        raise _http_error(e)

    return JSONResponse(
        status_code=refusal_status_code(result),
        content=result.model_dump(mode="json", by_alias=True),
    )


# ============================================================================
# Generation Lifecycle
# ============================================================================


@router.post("/generate", response_model=GenerationStarted, status_code=202)
async def generate_plan(coach_input: CoachInput):
    """
    Start generating a plan.

    Returns as soon as the job is started; progress is available from
    GET /api/coach/generation and the event stream.
    """
    try:
        session = await _service().generate(coach_input)
    except PlanGenerationError as e:
        raise _http_error(e)

    return GenerationStarted(
        session_id=session.session_id,
        current_step=session.current_step,
        total_steps=session.total_steps,
        started_at=session.started_at.isoformat(),
        message=session.status_message,
    )


@router.get("/generation", response_model=GenerationStatus)
async def get_generation_status():
    """Get the state and latest progress of the current or last attempt."""
    return GenerationStatus(**_service().snapshot())


@router.post("/generation/cancel", response_model=ActionResult)
async def cancel_generation():
    """
    Stop polling the current attempt.

    The server-side job is not cancelled; it can be picked up again with
    POST /api/coach/generation/resume.
    """
    if _service().cancel():
        return ActionResult(status="cancelled", message="Plan generation cancelled")
    return ActionResult(status="idle", message="No generation in progress")


@router.post("/generation/resume", response_model=ActionResult)
async def resume_generation():
    """Re-attach to a job the server is still running (after a reload or restart)."""
    try:
        resumed = await _service().resume()
    except PlanGenerationError as e:
        raise _http_error(e)

    if resumed:
        return ActionResult(status="polling", message="Resumed plan generation")
    return ActionResult(status="idle", message="No generation in progress on the server")


@router.post("/generation/reset", response_model=ActionResult)
async def reset_generation():
    """Clear generation state on the server and locally."""
    try:
        await _service().reset()
    except PlanGenerationError as e:
        raise _http_error(e)

    return ActionResult(status="reset", message="Generation state reset")


# ============================================================================
# Plan Retrieval
# ============================================================================


@router.get("/plan")
async def get_plan():
    """Get the plan produced by the last completed attempt."""
    plan = _service().plan
    if plan is None:
        raise HTTPException(status_code=404, detail="No plan has been generated yet")
    return plan.model_dump(mode="json", by_alias=True)
