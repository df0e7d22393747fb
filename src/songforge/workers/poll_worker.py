"""Polling engine driving completion discovery for dispatched jobs.

The schedule lives on the job row (``next_poll_at``, ``poll_attempts``,
``poll_delay_seconds``), so a restarted process resumes where the previous
one stopped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from ..config import PollingPolicy
from ..generation.generation_errors import (
    GenerationError,
    PollingTimeoutError,
    ProviderError,
    RateLimitedError,
    TransientProviderError,
)
from ..generation.generation_models import (
    FailureKind,
    GenerationFailed,
    GenerationJob,
    GenerationSucceeded,
    ProviderName,
    utcnow,
)
from ..generation.generation_service import GenerationOrchestrator
from ..providers.providers_base import ProviderAdapter, ProviderDone, ProviderFailed
from ..repositories.job_repository import JobRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PollingEngine:
    """Poll providers for jobs whose next check is due."""

    orchestrator: GenerationOrchestrator
    job_repo: JobRepository
    adapters: Mapping[ProviderName, ProviderAdapter]
    policy: PollingPolicy = field(default_factory=PollingPolicy)
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)

    async def run_due(self, now: datetime | None = None) -> int:
        """Poll every due job once; returns how many were checked."""
        current = now or self.clock()
        jobs = self.job_repo.list_due_for_poll(current, limit=self.policy.batch_size)
        if not jobs:
            return 0
        semaphore = asyncio.Semaphore(max(1, self.policy.concurrency))

        async def _guarded(job: GenerationJob) -> None:
            async with semaphore:
                await self.poll_job(job)

        await asyncio.gather(*(_guarded(job) for job in jobs))
        return len(jobs)

    async def poll_job(self, job: GenerationJob) -> None:
        """Run one status check and persist what happens next. Never raises."""
        try:
            await self._poll(job)
        except Exception as exc:
            self.log.exception(
                "poller.unexpected_error",
                extra={"job_id": job.id, "provider": job.provider.value},
            )
            try:
                await self.orchestrator.finalize(
                    job.id,
                    GenerationFailed(
                        message=f"Status check failed: {exc}", kind=FailureKind.INTERNAL
                    ),
                )
            except GenerationError:
                self.log.warning("poller.finalize_skipped", extra={"job_id": job.id})

    async def _poll(self, job: GenerationJob) -> None:
        token = job.provider_task_id
        if not token:
            return
        attempts = job.poll_attempts + 1
        delay = self.policy.next_delay(job.poll_delay_seconds or self.policy.initial_delay_seconds)
        adapter = self.adapters.get(job.provider)
        if adapter is None:
            await self.orchestrator.fail_or_fallback(
                job.id, ProviderError(f"Provider '{job.provider.value}' is not configured")
            )
            return

        try:
            status = await adapter.fetch_status(token)
        except RateLimitedError as exc:
            delay = max(delay, self.policy.rate_limit_delay_seconds)
            self.log.warning(
                "poller.rate_limited",
                extra={"job_id": job.id, "attempt": attempts, "delay": delay, "error": str(exc)},
            )
        except TransientProviderError as exc:
            self.log.warning(
                "poller.transient_error",
                extra={"job_id": job.id, "attempt": attempts, "error": str(exc)},
            )
        except ProviderError as exc:
            await self.orchestrator.fail_or_fallback(job.id, exc, provider_task_id=token)
            return
        else:
            if isinstance(status, ProviderDone):
                await self.orchestrator.finalize(
                    job.id, GenerationSucceeded(status.result), provider_task_id=token
                )
                return
            if isinstance(status, ProviderFailed):
                await self.orchestrator.fail_or_fallback(
                    job.id, status.error, provider_task_id=token
                )
                return
            await self.orchestrator.record_progress(job.id, status.progress, status.note)

        if attempts >= self.policy.max_attempts:
            error = PollingTimeoutError(
                f"Generation timed out after {attempts} status checks"
            )
            self.log.warning(
                "poller.attempts_exhausted",
                extra={"job_id": job.id, "attempts": attempts, "provider": job.provider.value},
            )
            await self.orchestrator.finalize(
                job.id, GenerationFailed.from_error(error), provider_task_id=token
            )
            return

        scheduled = await self.orchestrator.schedule_next_poll(
            job.id, provider_task_id=token, attempts=attempts, delay_seconds=delay
        )
        self.log.debug(
            "poller.rescheduled",
            extra={
                "job_id": job.id,
                "attempt": attempts,
                "delay": delay,
                "scheduled": scheduled,
            },
        )
