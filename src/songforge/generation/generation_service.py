"""Job orchestrator: the only writer of generation job status."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..config import PollingPolicy
from ..exceptions import NotFoundError
from ..media.blob_store import BlobStoreError, LocalBlobStore
from ..notifications.notifier import NullNotifier, ProgressEvent, ProgressNotifier
from ..providers.providers_base import ProviderAdapter
from ..repositories.artifact_repository import ArtifactRepository
from ..repositories.job_repository import JobRepository, NewArtifact
from ..repositories.lyrics_repository import LyricsRepository
from .generation_errors import (
    DispatchError,
    GenerationValidationError,
    JobNotFoundError,
    NoArtifactError,
    PollingTimeoutError,
    ProviderError,
)
from .generation_models import (
    FailureKind,
    GeneratedArtifact,
    GenerationFailed,
    GenerationJob,
    GenerationOutcome,
    GenerationRequest,
    ProviderName,
    ProviderRequest,
    utcnow,
)
from .pricing import DEFAULT_DURATION_SECONDS, default_model, derive_title, estimate_credits
from .selector import DEFAULT_LONG_PROMPT_THRESHOLD, fallback_for, select_for_request

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 3000


@dataclass(slots=True)
class GenerationOrchestrator:
    """Coordinates submission, dispatch, progress and finalization of jobs."""

    job_repo: JobRepository
    artifact_repo: ArtifactRepository
    lyrics_repo: LyricsRepository
    blob_store: LocalBlobStore
    adapters: Mapping[ProviderName, ProviderAdapter]
    polling: PollingPolicy = field(default_factory=PollingPolicy)
    notifier: ProgressNotifier = field(default_factory=NullNotifier)
    callback_url: str | None = None
    baseline_provider: ProviderName = ProviderName.SUNO
    long_prompt_threshold: int = DEFAULT_LONG_PROMPT_THRESHOLD
    fallback_enabled: bool = True
    mirror_audio: bool = False
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)
    _tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    # ------------------------------------------------------------------
    # Submission and dispatch
    # ------------------------------------------------------------------

    def validate(self, request: GenerationRequest) -> None:
        if not request.prompt or not request.prompt.strip():
            raise GenerationValidationError("Prompt must not be empty")
        if len(request.prompt) > MAX_PROMPT_LENGTH:
            raise GenerationValidationError(
                f"Prompt must be at most {MAX_PROMPT_LENGTH} characters"
            )
        if request.duration is not None and request.duration <= 0:
            raise GenerationValidationError("Duration must be positive")

    async def submit(self, user_id: str, request: GenerationRequest) -> GenerationJob:
        """Create a pending job and schedule its dispatch in the background."""
        self.validate(request)
        provider = select_for_request(
            request,
            baseline=self.baseline_provider,
            long_prompt_threshold=self.long_prompt_threshold,
        )
        model = request.model or default_model(provider)
        job = self.job_repo.insert(
            user_id=user_id,
            provider=provider,
            model=model,
            request=request,
            credits_estimate=estimate_credits(provider, request.duration),
            created_at=self.clock(),
        )
        self.log.info(
            "generation.job.created",
            extra={
                "job_id": job.id,
                "user_id": user_id,
                "provider": provider.value,
                "requested_provider": request.provider.value,
                "model": model,
            },
        )
        await self._notify(job.id, event="created")
        self._spawn(self.dispatch(job.id))
        return job

    async def dispatch(self, job_id: str) -> None:
        """Send the job to its current provider; failures never propagate."""
        job = self.job_repo.get(job_id)
        if job is None or job.is_terminal:
            return
        adapter = self.adapters.get(job.provider)
        if adapter is None:
            await self.fail_or_fallback(
                job_id, DispatchError(f"Provider '{job.provider.value}' is not configured")
            )
            return

        callback_url = self.callback_url if adapter.supports_callbacks else None
        try:
            receipt = await adapter.dispatch(self._provider_request(job), callback_url=callback_url)
        except ProviderError as exc:
            self.log.warning(
                "generation.dispatch.failed",
                extra={
                    "job_id": job_id,
                    "provider": job.provider.value,
                    "kind": exc.kind.value,
                    "error": str(exc),
                },
            )
            await self.fail_or_fallback(job_id, exc)
            return
        except Exception as exc:
            self.log.exception(
                "generation.dispatch.unexpected_error",
                extra={"job_id": job_id, "provider": job.provider.value},
            )
            await self.fail_or_fallback(job_id, DispatchError(f"Dispatch failed: {exc}"))
            return

        now = self.clock()
        if receipt.lyrics_task_id:
            self.lyrics_repo.create(
                user_id=job.user_id,
                job_id=job_id,
                provider=job.provider.value,
                provider_task_id=receipt.lyrics_task_id,
                prompt=job.request.prompt,
                content=receipt.generated_lyrics,
                now=now,
            )
        updated = self.job_repo.mark_dispatched(
            job_id,
            provider_task_id=receipt.task_id,
            response_data=receipt.raw,
            dispatched_at=now,
            next_poll_at=now + timedelta(seconds=self.polling.initial_delay_seconds),
            poll_delay_seconds=self.polling.initial_delay_seconds,
            generated_lyrics=receipt.generated_lyrics,
        )
        if not updated:
            self.log.warning(
                "generation.dispatch.stale",
                extra={"job_id": job_id, "task_id": receipt.task_id},
            )
            return
        self.log.info(
            "generation.job.dispatched",
            extra={
                "job_id": job_id,
                "provider": job.provider.value,
                "task_id": receipt.task_id,
                "has_generated_lyrics": bool(receipt.generated_lyrics),
            },
        )
        await self.record_progress(job_id, 10, "Submitted to provider")

    # ------------------------------------------------------------------
    # Progress and terminal transitions
    # ------------------------------------------------------------------

    async def record_progress(self, job_id: str, percent: int, note: str | None = None) -> bool:
        """Store ``percent`` if it exceeds the stored value and the job is active."""
        clamped = max(0, min(100, int(percent)))
        updated = self.job_repo.advance_progress(
            job_id, progress=clamped, note=note, now=self.clock()
        )
        if updated:
            await self._notify(job_id, event="progress")
        return updated

    async def finalize(
        self,
        job_id: str,
        outcome: GenerationOutcome,
        *,
        provider_task_id: str | None = None,
    ) -> bool:
        """Move the job to its terminal state. Only the first call has an effect.

        When ``provider_task_id`` is given the outcome only applies while the job
        is still bound to that provider task.
        """
        job = self.job_repo.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job '{job_id}' not found")
        if job.is_terminal:
            self.log.info(
                "generation.finalize.duplicate",
                extra={"job_id": job_id, "status": job.status.value},
            )
            return False
        if self._is_stale(job, provider_task_id):
            return False

        if isinstance(outcome, GenerationFailed):
            updated = self.job_repo.fail(
                job_id,
                message=outcome.message,
                kind=outcome.kind,
                finished_at=self.clock(),
                expected_task_id=provider_task_id,
            )
            if updated:
                self.log.warning(
                    "generation.job.failed",
                    extra={
                        "job_id": job_id,
                        "provider": job.provider.value,
                        "kind": outcome.kind.value,
                        "error": outcome.message,
                        "fallback_attempted": job.fallback_attempted,
                    },
                )
                await self._notify(job_id, event="failed")
            return updated

        result = outcome.result
        audio_uri = result.audio_uri
        if result.audio_bytes:
            try:
                audio_uri = self.blob_store.put(result.audio_bytes, result.content_type)
            except BlobStoreError as exc:
                return await self.finalize(
                    job_id,
                    GenerationFailed(
                        message=f"Audio could not be stored: {exc}", kind=FailureKind.INTERNAL
                    ),
                    provider_task_id=provider_task_id,
                )
        elif audio_uri and self.mirror_audio:
            audio_uri = await self._mirror(job_id, audio_uri)
        if not audio_uri:
            return await self.finalize(
                job_id,
                GenerationFailed.from_error(NoArtifactError("Result has no audio location")),
                provider_task_id=provider_task_id,
            )

        artifact = self.job_repo.complete(
            job_id,
            artifact=NewArtifact(
                title=result.title or job.request.title or derive_title(job.request.prompt),
                audio_uri=audio_uri,
                provider=job.provider.value,
                image_uri=result.image_uri,
                duration_seconds=result.duration_seconds,
                lyrics=result.lyrics or job.request.lyrics or job.generated_lyrics,
                provider_item_id=result.provider_item_id,
                tags=result.tags or job.request.style,
            ),
            finished_at=self.clock(),
            expected_task_id=provider_task_id,
        )
        if artifact is None:
            self.log.info("generation.finalize.lost_race", extra={"job_id": job_id})
            return False
        self.log.info(
            "generation.job.completed",
            extra={
                "job_id": job_id,
                "artifact_id": artifact.id,
                "provider": job.provider.value,
                "duration_seconds": artifact.duration_seconds,
            },
        )
        await self._notify(job_id, event="completed")
        return True

    async def fail_or_fallback(
        self, job_id: str, error: Exception, *, provider_task_id: str | None = None
    ) -> bool:
        """Re-dispatch to the fallback provider when allowed, otherwise fail the job."""
        job = self.job_repo.get(job_id)
        if job is None or job.is_terminal:
            return False
        if self._is_stale(job, provider_task_id):
            return False
        target = self._fallback_target(job, error)
        if target is None:
            return await self.finalize(
                job_id, GenerationFailed.from_error(error), provider_task_id=provider_task_id
            )

        switched = self.job_repo.switch_provider(
            job_id,
            provider=target,
            model=default_model(target),
            providers_tried=[*job.providers_tried, target.value],
            credits_estimate=estimate_credits(target, job.request.duration),
            note=f"Retrying with {target.value} after {job.provider.value} failed",
        )
        if not switched:
            return False
        self.log.warning(
            "generation.fallback.started",
            extra={
                "job_id": job_id,
                "from_provider": job.provider.value,
                "to_provider": target.value,
                "error": str(error),
            },
        )
        await self._notify(job_id, event="fallback")
        self._spawn(self.dispatch(job_id))
        return True

    async def schedule_next_poll(
        self, job_id: str, *, provider_task_id: str, attempts: int, delay_seconds: float
    ) -> bool:
        return self.job_repo.schedule_poll(
            job_id,
            provider_task_id=provider_task_id,
            poll_attempts=attempts,
            next_poll_at=self.clock() + timedelta(seconds=delay_seconds),
            poll_delay_seconds=delay_seconds,
        )

    async def sweep_stuck(self, *, pending_minutes: int, processing_minutes: int) -> list[str]:
        """Fail jobs that no dispatch, poll or callback path will move again."""
        now = self.clock()
        stuck = self.job_repo.list_stuck(
            pending_created_before=now - timedelta(minutes=pending_minutes),
            processing_updated_before=now - timedelta(minutes=processing_minutes),
        )
        failed: list[str] = []
        for job in stuck:
            error = PollingTimeoutError("Job timed out and was automatically cleaned up")
            if await self.finalize(job.id, GenerationFailed.from_error(error)):
                failed.append(job.id)
        if failed:
            self.log.warning("generation.sweep.failed_jobs", extra={"job_ids": failed})
        return failed

    # ------------------------------------------------------------------
    # Reads and advisory cancellation
    # ------------------------------------------------------------------

    def get_status(self, job_id: str, *, user_id: str | None = None) -> GenerationJob:
        job = self.job_repo.get(job_id)
        if job is None or (user_id is not None and job.user_id != user_id):
            raise JobNotFoundError(f"Job '{job_id}' not found")
        return job

    def get_artifact(self, artifact_id: str) -> GeneratedArtifact | None:
        try:
            return self.artifact_repo.get(artifact_id)
        except NotFoundError:
            return None

    def list_jobs(self, user_id: str, *, limit: int = 50) -> list[GenerationJob]:
        return self.job_repo.list_for_user(user_id, limit=limit)

    def cancel(self, job_id: str, *, user_id: str) -> GenerationJob:
        """Hide the job from the user; provider work already started keeps running."""
        job = self.get_status(job_id, user_id=user_id)
        self.job_repo.update(job_id, {"cancelled_at": self.clock()})
        self.log.info(
            "generation.job.cancelled",
            extra={"job_id": job_id, "user_id": user_id, "status": job.status.value},
        )
        return job

    async def drain(self) -> None:
        """Wait for in-flight dispatch tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.log.error("generation.background_task.failed", exc_info=exc)

    def _is_stale(self, job: GenerationJob, provider_task_id: str | None) -> bool:
        if provider_task_id is None or job.provider_task_id == provider_task_id:
            return False
        self.log.info(
            "generation.outcome.stale_task",
            extra={
                "job_id": job.id,
                "task_id": provider_task_id,
                "current_task_id": job.provider_task_id,
            },
        )
        return True

    def _fallback_target(self, job: GenerationJob, error: Exception) -> ProviderName | None:
        if not self.fallback_enabled or not job.request.allow_fallback:
            return None
        if not isinstance(error, ProviderError) or not error.fallback_eligible:
            return None
        target = fallback_for(job.provider)
        if target.value in job.providers_tried or target not in self.adapters:
            return None
        return target

    def _provider_request(self, job: GenerationJob) -> ProviderRequest:
        request = job.request
        return ProviderRequest(
            job_id=job.id,
            description=request.prompt.strip(),
            model=job.model,
            title=request.title or derive_title(request.prompt),
            duration=request.duration or DEFAULT_DURATION_SECONDS,
            instrumental=request.instrumental,
            style=request.style,
            lyrics=request.lyrics,
            language=request.language,
            advanced=request.advanced,
        )

    async def _mirror(self, job_id: str, audio_uri: str) -> str:
        try:
            return await self.blob_store.mirror(audio_uri)
        except BlobStoreError as exc:
            self.log.warning(
                "generation.mirror.failed",
                extra={"job_id": job_id, "audio_uri": audio_uri, "error": str(exc)},
            )
            return audio_uri

    async def _notify(self, job_id: str, *, event: str) -> None:
        job = self.job_repo.get(job_id)
        if job is None:
            return
        await self.notifier.publish(ProgressEvent.from_job(job, event=event))
