"""Publish/subscribe channel for live job progress.

Observers only; job state lives in the database and nothing here is needed
for correctness.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..generation.generation_models import GenerationJob, utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProgressEvent:
    job_id: str
    event: str
    status: str
    progress: int
    note: str | None = None
    terminal: bool = False
    provider: str | None = None
    fallback_attempted: bool = False
    artifact_id: str | None = None
    error: str | None = None
    sequence: int = 0

    @classmethod
    def from_job(cls, job: GenerationJob, *, event: str = "update") -> "ProgressEvent":
        return cls(
            job_id=job.id,
            event=event,
            status=job.status.value,
            progress=job.progress,
            note=job.progress_note,
            terminal=job.is_terminal,
            provider=job.provider.value,
            fallback_attempted=job.fallback_attempted,
            artifact_id=job.artifact_id,
            error=job.error_message,
        )

    def as_payload(self) -> dict[str, Any]:
        return {
            "type": self.event,
            "job_id": self.job_id,
            "status": self.status,
            "progress": self.progress,
            "note": self.note,
            "terminal": self.terminal,
            "provider": self.provider,
            "fallback_attempted": self.fallback_attempted,
            "artifact_id": self.artifact_id,
            "error": self.error,
            "sequence": self.sequence,
            "sent_at": utcnow().isoformat(),
        }


class ProgressNotifier(Protocol):
    async def publish(self, event: ProgressEvent) -> None: ...

    def subscribe(self, job_id: str) -> Any: ...


class NullNotifier:
    """Drops every event."""

    async def publish(self, event: ProgressEvent) -> None:
        return None

    @contextmanager
    def subscribe(self, job_id: str) -> Iterator[asyncio.Queue[ProgressEvent]]:
        yield asyncio.Queue()


@dataclass(slots=True)
class InMemoryNotifier:
    """Fan events out to per-job subscriber queues inside one process."""

    queue_size: int = 100
    _subscribers: dict[str, set[asyncio.Queue[ProgressEvent]]] = field(
        default_factory=lambda: defaultdict(set)
    )
    _sequences: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    log: logging.Logger = field(default_factory=lambda: logger)

    async def publish(self, event: ProgressEvent) -> None:
        """Deliver to current subscribers; unwatched jobs keep no sequence state."""
        listeners = self._subscribers.get(event.job_id)
        if not listeners:
            return
        self._sequences[event.job_id] += 1
        event.sequence = self._sequences[event.job_id]
        for queue in list(listeners):
            if queue.full():
                # slow subscriber: drop its oldest event
                queue.get_nowait()
                self.log.warning(
                    "notifier.queue_full",
                    extra={"job_id": event.job_id, "sequence": event.sequence},
                )
            queue.put_nowait(event)
        if event.terminal:
            self._sequences.pop(event.job_id, None)

    @contextmanager
    def subscribe(self, job_id: str) -> Iterator[asyncio.Queue[ProgressEvent]]:
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[job_id].add(queue)
        try:
            yield queue
        finally:
            listeners = self._subscribers.get(job_id)
            if listeners is not None:
                listeners.discard(queue)
                if not listeners:
                    self._subscribers.pop(job_id, None)
                    self._sequences.pop(job_id, None)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))
