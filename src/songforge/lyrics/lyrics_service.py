"""Standalone lyrics generation through Suno."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..generation.generation_errors import (
    GenerationValidationError,
    JobNotFoundError,
    ProviderError,
    TransientProviderError,
)
from ..generation.generation_models import LyricsRecord, LyricsStatus, ProviderName
from ..providers.providers_suno import SunoAdapter
from ..repositories.lyrics_repository import LyricsRepository

logger = logging.getLogger(__name__)


class LyricsUnavailableError(Exception):
    """Raised when no lyrics-capable provider is configured."""


@dataclass(slots=True)
class LyricsService:
    """Start lyrics tasks; results arrive via callback or an on-read refresh."""

    lyrics_repo: LyricsRepository
    suno: SunoAdapter | None
    callback_url: str | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def request_lyrics(self, user_id: str, prompt: str) -> LyricsRecord:
        if not prompt or not prompt.strip():
            raise GenerationValidationError("Prompt must not be empty")
        if self.suno is None:
            raise LyricsUnavailableError("Suno is not configured")
        task_id = await self.suno.request_lyrics(prompt, callback_url=self.callback_url)
        record = self.lyrics_repo.create(
            user_id=user_id,
            provider=ProviderName.SUNO.value,
            provider_task_id=task_id,
            prompt=prompt.strip(),
        )
        self.log.info(
            "lyrics.task.created",
            extra={"lyrics_id": record.id, "user_id": user_id, "task_id": task_id},
        )
        return record

    def get(self, lyrics_id: str, *, user_id: str) -> LyricsRecord:
        record = self.lyrics_repo.get(lyrics_id)
        if record is None or record.user_id != user_id:
            raise JobNotFoundError(f"Lyrics '{lyrics_id}' not found")
        return record

    async def refresh(self, lyrics_id: str, *, user_id: str) -> LyricsRecord:
        """Poll Suno once for a pending record in case its callback was lost."""
        record = self.get(lyrics_id, user_id=user_id)
        if record.status is not LyricsStatus.PENDING or self.suno is None:
            return record
        try:
            text = await self.suno.fetch_lyrics(record.provider_task_id)
        except TransientProviderError as exc:
            self.log.warning(
                "lyrics.refresh.transient", extra={"lyrics_id": lyrics_id, "error": str(exc)}
            )
            return record
        except ProviderError as exc:
            return self.lyrics_repo.fail(lyrics_id, message=str(exc))
        if text:
            return self.lyrics_repo.complete(lyrics_id, content=text)
        return record
