"""HTTP routes for generation jobs."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..auth.auth_dependencies import require_user_id
from ..exceptions import RepositoryError
from .generation_errors import GenerationValidationError, JobNotFoundError
from .generation_models import FailureKind
from .generation_schemas import (
    GenerationAccepted,
    GenerationCreateRequest,
    GenerationStatusResponse,
)
from .generation_service import GenerationOrchestrator

router = APIRouter(prefix="/api/generations", tags=["generations"])
logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    """Fetch orchestrator from application state."""
    try:
        return request.app.state.orchestrator  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("GenerationOrchestrator is not configured") from exc


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"status": "error", "failure_reason": "job_not_found"},
    )


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=GenerationAccepted)
async def create_generation(
    payload: GenerationCreateRequest,
    user_id: str = Depends(require_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationAccepted:
    """Create a job; dispatch continues in the background.

    The body reports ``status: "pending"`` rather than ``"processing"``: the job
    row exists but no provider has accepted it yet. It turns ``processing``
    once dispatch stores the provider task id.
    """
    try:
        job = await orchestrator.submit(user_id, payload.to_domain())
    except GenerationValidationError as exc:
        logger.info(
            "generation.request.invalid", extra={"user_id": user_id, "error": str(exc)}
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "status": "error",
                "failure_reason": FailureKind.INVALID_REQUEST.value,
                "details": str(exc),
            },
        ) from exc
    except RepositoryError as exc:
        logger.exception("generation.request.storage_error", extra={"user_id": user_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"status": "error", "failure_reason": FailureKind.INTERNAL.value},
        ) from exc
    return GenerationAccepted.from_job(job)


@router.get("", response_model=list[GenerationStatusResponse])
async def list_generations(
    user_id: str = Depends(require_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[GenerationStatusResponse]:
    jobs = orchestrator.list_jobs(user_id)
    return [
        GenerationStatusResponse.from_job(
            job, orchestrator.get_artifact(job.artifact_id) if job.artifact_id else None
        )
        for job in jobs
    ]


@router.get("/{job_id}", response_model=GenerationStatusResponse)
async def get_generation(
    job_id: str,
    user_id: str = Depends(require_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationStatusResponse:
    try:
        job = orchestrator.get_status(job_id, user_id=user_id)
    except JobNotFoundError:
        raise _not_found() from None
    artifact = orchestrator.get_artifact(job.artifact_id) if job.artifact_id else None
    return GenerationStatusResponse.from_job(job, artifact)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_generation(
    job_id: str,
    user_id: str = Depends(require_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Advisory cancel: the job leaves the user's list, provider work continues."""
    try:
        orchestrator.cancel(job_id, user_id=user_id)
    except JobNotFoundError:
        raise _not_found() from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)
