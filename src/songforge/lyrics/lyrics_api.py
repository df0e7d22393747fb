"""HTTP routes for standalone lyrics requests."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..auth.auth_dependencies import require_user_id
from ..generation.generation_errors import (
    GenerationValidationError,
    JobNotFoundError,
    ProviderError,
)
from ..generation.generation_models import FailureKind
from .lyrics_schemas import LyricsCreateRequest, LyricsResponse
from .lyrics_service import LyricsService, LyricsUnavailableError

router = APIRouter(prefix="/api/lyrics", tags=["lyrics"])
logger = logging.getLogger(__name__)


def get_lyrics_service(request: Request) -> LyricsService:
    try:
        return request.app.state.lyrics_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("LyricsService is not configured") from exc


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=LyricsResponse)
async def create_lyrics(
    payload: LyricsCreateRequest,
    user_id: str = Depends(require_user_id),
    service: LyricsService = Depends(get_lyrics_service),
) -> LyricsResponse:
    try:
        record = await service.request_lyrics(user_id, payload.prompt)
    except GenerationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "status": "error",
                "failure_reason": FailureKind.INVALID_REQUEST.value,
                "details": str(exc),
            },
        ) from exc
    except LyricsUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "error", "failure_reason": "provider_unavailable"},
        ) from exc
    except ProviderError as exc:
        logger.warning("lyrics.request.provider_error", extra={"error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "status": "error",
                "failure_reason": exc.kind.value,
                "message": str(exc),
            },
        ) from exc
    return LyricsResponse.from_record(record)


@router.get("/{lyrics_id}", response_model=LyricsResponse)
async def get_lyrics(
    lyrics_id: str,
    user_id: str = Depends(require_user_id),
    service: LyricsService = Depends(get_lyrics_service),
) -> LyricsResponse:
    try:
        record = await service.refresh(lyrics_id, user_id=user_id)
    except JobNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"status": "error", "failure_reason": "lyrics_not_found"},
        ) from None
    return LyricsResponse.from_record(record)
