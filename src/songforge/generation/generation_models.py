"""Data structures for the generation job lifecycle."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class JobStatus(StrEnum):
    """Lifecycle statuses for generation_job records."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


class ProviderName(StrEnum):
    SUNO = "suno"
    MUREKA = "mureka"
    AUTO = "auto"


class FailureKind(StrEnum):
    """Failure classes surfaced on failed jobs and HTTP error contracts."""

    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"
    MALFORMED_REQUEST = "malformed_request"
    RATE_LIMITED = "rate_limited"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    TRANSIENT = "transient"
    CONTENT_POLICY = "content_policy"
    NO_ARTIFACT = "no_artifact"
    PROVIDER_FAILED = "provider_failed"
    TIMEOUT = "timeout"
    DISPATCH = "dispatch"
    INTERNAL = "internal"


class LyricsStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class AdvancedOptions:
    """Instrumentation hints; their presence steers provider selection."""

    instruments: list[str] = field(default_factory=list)
    reference_track_id: str | None = None
    tempo: int | None = None
    key: str | None = None

    def has_instrumentation(self) -> bool:
        return bool(self.instruments or self.tempo or self.key)


@dataclass(slots=True)
class GenerationRequest:
    """Canonical request submitted by a user."""

    prompt: str
    provider: ProviderName = ProviderName.AUTO
    style: str | None = None
    duration: int | None = None
    instrumental: bool = False
    lyrics: str | None = None
    language: str | None = None
    title: str | None = None
    model: str | None = None
    allow_fallback: bool = True
    advanced: AdvancedOptions | None = None

    def to_params(self) -> dict[str, Any]:
        params = asdict(self)
        params["provider"] = self.provider.value
        return params

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "GenerationRequest":
        data = dict(params)
        advanced = data.pop("advanced", None)
        data["provider"] = ProviderName(data.get("provider") or ProviderName.AUTO)
        return cls(
            **data,
            advanced=AdvancedOptions(**advanced) if advanced else None,
        )


@dataclass(slots=True)
class ProviderRequest:
    """Request handed to a provider adapter after selection."""

    job_id: str
    description: str
    model: str
    title: str
    duration: int
    instrumental: bool
    style: str | None = None
    lyrics: str | None = None
    language: str | None = None
    advanced: AdvancedOptions | None = None


@dataclass(slots=True)
class GenerationResult:
    """Successful output parsed at the adapter boundary."""

    audio_uri: str | None = None
    audio_bytes: bytes | None = None
    content_type: str = "audio/mpeg"
    title: str | None = None
    duration_seconds: float | None = None
    lyrics: str | None = None
    image_uri: str | None = None
    provider_item_id: str | None = None
    tags: str | None = None


@dataclass(slots=True)
class GenerationSucceeded:
    result: GenerationResult


@dataclass(slots=True)
class GenerationFailed:
    message: str
    kind: FailureKind = FailureKind.PROVIDER_FAILED

    @classmethod
    def from_error(cls, error: Exception) -> "GenerationFailed":
        kind = getattr(error, "kind", FailureKind.INTERNAL)
        message = str(error) or error.__class__.__name__
        return cls(message=message, kind=FailureKind(kind))


GenerationOutcome = GenerationSucceeded | GenerationFailed


@dataclass(slots=True)
class GeneratedArtifact:
    id: str
    job_id: str
    user_id: str
    title: str
    audio_uri: str
    provider: str
    created_at: datetime
    image_uri: str | None = None
    duration_seconds: float | None = None
    lyrics: str | None = None
    provider_item_id: str | None = None
    tags: str | None = None


@dataclass(slots=True)
class GenerationJob:
    """Snapshot of a generation_job row."""

    id: str
    user_id: str
    provider: ProviderName
    model: str
    status: JobStatus
    progress: int
    request: GenerationRequest
    credits_estimate: int
    created_at: datetime
    updated_at: datetime
    progress_note: str | None = None
    provider_task_id: str | None = None
    provider_dispatched_at: datetime | None = None
    poll_attempts: int = 0
    next_poll_at: datetime | None = None
    poll_delay_seconds: float | None = None
    response_data: dict[str, Any] | None = None
    providers_tried: list[str] = field(default_factory=list)
    fallback_attempted: bool = False
    artifact_id: str | None = None
    error_message: str | None = None
    failure_kind: FailureKind | None = None
    generated_lyrics: str | None = None
    cancelled_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(slots=True)
class LyricsRecord:
    id: str
    user_id: str
    provider: str
    provider_task_id: str
    prompt: str
    status: LyricsStatus
    created_at: datetime
    updated_at: datetime
    job_id: str | None = None
    title: str | None = None
    content: str | None = None
    error_message: str | None = None
