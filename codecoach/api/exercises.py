"""Exercise API routes — problem registration, stage progress, guidance cache.

- PUT /{exercise_id}: the editor registers the problem text of the exercise
  the user opened (the guidance panel looks it up by id)
- GET /{exercise_id}/progress: unlocked stages and the current stage
- POST /{exercise_id}/current-step: move among unlocked stages
- DELETE /{exercise_id}/cache[?stage=]: invalidate generated guidance

Stage content itself is delivered over the panel channel (api/panel.py).

Tier 3 orchestration module: imports from deps (Tier 2), schemas (Tier 1).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from codecoach.api.deps import Services, get_services
from codecoach.schemas import ApiError, ApiResponse, Stage

logger = logging.getLogger(__name__)

router = APIRouter()


class RegisterExerciseRequest(BaseModel):
    """Request body for PUT /exercises/{id}."""

    problem_text: str = Field(min_length=1)


class CurrentStepRequest(BaseModel):
    """Request body for POST /exercises/{id}/current-step."""

    stage: Stage


def _progress_data(services: Services, exercise_id: str) -> dict:
    progress = services.guide.get_progress(exercise_id)
    data = progress.model_dump(mode="json")
    data["cached_stages"] = [stage.value for stage in services.guide.cache.stages(exercise_id)]
    return data


@router.put("/{exercise_id}")
async def register_exercise(
    exercise_id: str,
    body: RegisterExerciseRequest,
    services: Services = Depends(get_services),
) -> dict:
    services.catalog.register(exercise_id, body.problem_text)
    logger.info("Registered problem text for exercise %s", exercise_id)
    return ApiResponse(ok=True, data={"exercise_id": exercise_id}).model_dump()


@router.get("/{exercise_id}/progress")
async def get_progress(
    exercise_id: str,
    services: Services = Depends(get_services),
) -> dict:
    return ApiResponse(ok=True, data=_progress_data(services, exercise_id)).model_dump()


@router.post("/{exercise_id}/current-step")
async def set_current_step(
    exercise_id: str,
    body: CurrentStepRequest,
    services: Services = Depends(get_services),
) -> dict:
    """Moves the current stage. 409 STAGE_LOCKED for a stage not yet unlocked."""
    if not services.guide.set_current_step(exercise_id, body.stage):
        raise HTTPException(
            status_code=409,
            detail=ApiResponse(
                ok=False,
                error=ApiError(
                    code="STAGE_LOCKED",
                    message=f"Stage {body.stage.value} is not unlocked yet.",
                ),
            ).model_dump(),
        )
    return ApiResponse(ok=True, data=_progress_data(services, exercise_id)).model_dump()


@router.delete("/{exercise_id}/cache")
async def clear_guidance_cache(
    exercise_id: str,
    stage: Stage | None = None,
    services: Services = Depends(get_services),
) -> dict:
    """Drops cached guidance for one stage, or for every stage of the exercise."""
    if stage is None:
        services.guide.clear_cache(exercise_id)
    else:
        services.guide.clear_step_cache(exercise_id, stage)
    return ApiResponse(ok=True, data=_progress_data(services, exercise_id)).model_dump()
