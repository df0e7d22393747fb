"""Pydantic schemas for the lyrics API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..generation.generation_models import LyricsRecord


class LyricsCreateRequest(BaseModel):
    prompt: str = Field(max_length=200)


class LyricsResponse(BaseModel):
    id: str
    status: str
    prompt: str
    title: str | None = None
    content: str | None = None
    error: str | None = None
    job_id: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: LyricsRecord) -> "LyricsResponse":
        return cls(
            id=record.id,
            status=record.status.value,
            prompt=record.prompt,
            title=record.title,
            content=record.content,
            error=record.error_message,
            job_id=record.job_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
