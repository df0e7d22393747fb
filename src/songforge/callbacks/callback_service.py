"""Correlate Suno push notifications with jobs and lyrics records."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..generation.generation_errors import (
    ContentPolicyError,
    CorrelationNotFoundError,
    GenerationFailedError,
    NoArtifactError,
)
from ..generation.generation_models import (
    GenerationFailed,
    GenerationJob,
    GenerationSucceeded,
    LyricsRecord,
    utcnow,
)
from ..generation.generation_service import GenerationOrchestrator
from ..providers.providers_suno import extract_lyrics_text, first_playable
from ..repositories.job_repository import JobRepository
from ..repositories.lyrics_repository import LyricsRepository
from .callback_schemas import CallbackAck, SunoCallbackPayload

logger = logging.getLogger(__name__)

# callbackType -> (progress, note)
_PROGRESS_TYPES = {
    "processing": (50, "Generating"),
    "text": (60, "Lyrics and arrangement ready"),
    "first": (85, "First track ready"),
}


class MalformedCallbackError(ValueError):
    """Raised when a callback carries no task id."""


@dataclass(slots=True)
class CallbackReceiver:
    """Drive orchestrator operations from inbound callbacks."""

    orchestrator: GenerationOrchestrator
    job_repo: JobRepository
    lyrics_repo: LyricsRepository
    recent_window: timedelta = timedelta(hours=24)
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)

    async def handle(self, payload: SunoCallbackPayload) -> CallbackAck:
        token = payload.task_id
        if not token:
            raise MalformedCallbackError("Callback payload carries no task id")

        job = self.correlate(token)
        if job is not None:
            return await self._handle_generation(job, payload)

        lyrics = self.lyrics_repo.find_by_task(token)
        if lyrics is not None:
            return self._handle_lyrics(lyrics, payload)

        error = CorrelationNotFoundError(f"No job or lyrics record for task '{token}'")
        self.log.warning(
            "callback.unmatched",
            extra={"task_id": token, "callback_type": payload.callback_type, "error": str(error)},
        )
        return CallbackAck(status="ignored", action="unmatched")

    def correlate(self, token: str) -> GenerationJob | None:
        """Exact lookup on the stored token, then a scan of recent jobs."""
        job = self.job_repo.find_by_provider_task(token)
        if job is not None:
            return job
        since = self.clock() - self.recent_window
        for candidate in self.job_repo.query_recent(since):
            if _mentions(candidate, token):
                self.log.warning(
                    "callback.correlated_by_scan",
                    extra={"task_id": token, "job_id": candidate.id},
                )
                return candidate
        return None

    async def _handle_generation(
        self, job: GenerationJob, payload: SunoCallbackPayload
    ) -> CallbackAck:
        kind = payload.callback_type
        self.log.info(
            "callback.received",
            extra={"job_id": job.id, "callback_type": kind, "code": payload.code},
        )
        if job.is_terminal:
            return CallbackAck(status="processed", job_id=job.id, action="already_terminal")

        if payload.is_error:
            message = (payload.msg or "").strip() or "Suno reported a generation error"
            if "sensitive" in message.lower():
                error: Exception = ContentPolicyError(f"Suno rejected the prompt: {message}")
            else:
                error = GenerationFailedError(f"Suno generation failed: {message}")
            await self.orchestrator.fail_or_fallback(job.id, error)
            return CallbackAck(status="processed", job_id=job.id, action="failed")

        if kind == "complete":
            result = first_playable(payload.entries)
            if result is None:
                await self.orchestrator.finalize(
                    job.id,
                    GenerationFailed.from_error(
                        NoArtifactError("Suno callback carried no playable audio URL")
                    ),
                )
                return CallbackAck(status="processed", job_id=job.id, action="no_artifact")
            await self.orchestrator.finalize(job.id, GenerationSucceeded(result))
            return CallbackAck(status="processed", job_id=job.id, action="completed")

        if kind in _PROGRESS_TYPES:
            progress, note = _PROGRESS_TYPES[kind]
            await self.orchestrator.record_progress(job.id, progress, note)
            return CallbackAck(status="processed", job_id=job.id, action="progress")

        self.log.info(
            "callback.unknown_type", extra={"job_id": job.id, "callback_type": kind}
        )
        return CallbackAck(status="ignored", job_id=job.id, action="unknown_type")

    def _handle_lyrics(self, record: LyricsRecord, payload: SunoCallbackPayload) -> CallbackAck:
        if payload.is_error:
            self.lyrics_repo.fail(
                record.id, message=payload.msg or "Lyrics generation failed", now=self.clock()
            )
            return CallbackAck(status="processed", lyrics_id=record.id, action="failed")

        for entry in payload.entries:
            text = extract_lyrics_text(entry)
            if text:
                self.lyrics_repo.complete(
                    record.id, content=text, title=entry.get("title"), now=self.clock()
                )
                self.log.info(
                    "callback.lyrics.completed",
                    extra={"lyrics_id": record.id, "job_id": record.job_id},
                )
                return CallbackAck(status="processed", lyrics_id=record.id, action="completed")

        if payload.callback_type == "complete":
            self.lyrics_repo.fail(
                record.id, message="Lyrics callback carried no text", now=self.clock()
            )
            return CallbackAck(status="processed", lyrics_id=record.id, action="failed")
        return CallbackAck(status="processed", lyrics_id=record.id, action="progress")


_ID_KEYS = ("taskId", "task_id", "id")


def _mentions(job: GenerationJob, token: str) -> bool:
    """True when the stored provider receipt carries ``token`` as an id value."""
    return _has_id(job.response_data, token)


def _has_id(node: Any, token: str) -> bool:
    if isinstance(node, dict):
        for key, value in node.items():
            if key in _ID_KEYS and isinstance(value, str) and value.strip() == token:
                return True
            if isinstance(value, (dict, list)) and _has_id(value, token):
                return True
        return False
    if isinstance(node, list):
        return any(_has_id(item, token) for item in node)
    return False
