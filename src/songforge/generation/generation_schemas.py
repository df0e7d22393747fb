"""Pydantic schemas for the generations API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .generation_models import (
    AdvancedOptions,
    GeneratedArtifact,
    GenerationJob,
    GenerationRequest,
    ProviderName,
)
from .pricing import estimate_seconds


class AdvancedOptionsPayload(BaseModel):
    instruments: list[str] = Field(default_factory=list, max_length=10)
    reference_track_id: str | None = Field(default=None, max_length=128)
    tempo: int | None = Field(default=None, ge=40, le=240)
    key: str | None = Field(default=None, max_length=16)


class GenerationCreateRequest(BaseModel):
    prompt: str
    provider: ProviderName = ProviderName.AUTO
    style: str | None = Field(default=None, max_length=1000)
    duration: int | None = Field(default=None, ge=10, le=480)
    instrumental: bool = False
    lyrics: str | None = Field(default=None, max_length=5000)
    language: str | None = Field(default=None, max_length=32)
    title: str | None = Field(default=None, max_length=100)
    model: str | None = Field(default=None, max_length=64)
    allow_fallback: bool = True
    advanced: AdvancedOptionsPayload | None = None

    def to_domain(self) -> GenerationRequest:
        advanced = (
            AdvancedOptions(**self.advanced.model_dump()) if self.advanced is not None else None
        )
        return GenerationRequest(
            prompt=self.prompt,
            provider=self.provider,
            style=self.style,
            duration=self.duration,
            instrumental=self.instrumental,
            lyrics=self.lyrics or None,
            language=self.language,
            title=self.title,
            model=self.model,
            allow_fallback=self.allow_fallback,
            advanced=advanced,
        )


class GenerationAccepted(BaseModel):
    job_id: str
    status: str
    provider: str
    model: str
    credits_estimate: int
    estimated_seconds: int

    @classmethod
    def from_job(cls, job: GenerationJob) -> "GenerationAccepted":
        return cls(
            job_id=job.id,
            status=job.status.value,
            provider=job.provider.value,
            model=job.model,
            credits_estimate=job.credits_estimate,
            estimated_seconds=estimate_seconds(job.provider, job.request.duration),
        )


class ArtifactResponse(BaseModel):
    id: str
    title: str
    audio_url: str
    image_url: str | None = None
    duration_seconds: float | None = None
    lyrics: str | None = None
    provider: str
    provider_item_id: str | None = None
    tags: str | None = None
    created_at: datetime

    @classmethod
    def from_artifact(cls, artifact: GeneratedArtifact) -> "ArtifactResponse":
        return cls(
            id=artifact.id,
            title=artifact.title,
            audio_url=artifact.audio_uri,
            image_url=artifact.image_uri,
            duration_seconds=artifact.duration_seconds,
            lyrics=artifact.lyrics,
            provider=artifact.provider,
            provider_item_id=artifact.provider_item_id,
            tags=artifact.tags,
            created_at=artifact.created_at,
        )


class GenerationStatusResponse(BaseModel):
    id: str
    status: str
    progress: int
    progress_note: str | None = None
    provider: str
    model: str
    fallback_attempted: bool
    providers_tried: list[str]
    credits_estimate: int
    artifact: ArtifactResponse | None = None
    error: str | None = None
    failure_kind: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(
        cls, job: GenerationJob, artifact: GeneratedArtifact | None = None
    ) -> "GenerationStatusResponse":
        return cls(
            id=job.id,
            status=job.status.value,
            progress=job.progress,
            progress_note=job.progress_note,
            provider=job.provider.value,
            model=job.model,
            fallback_attempted=job.fallback_attempted,
            providers_tried=job.providers_tried,
            credits_estimate=job.credits_estimate,
            artifact=ArtifactResponse.from_artifact(artifact) if artifact else None,
            error=job.error_message,
            failure_kind=job.failure_kind.value if job.failure_kind else None,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )
