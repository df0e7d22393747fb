"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base declarative class."""


class GenerationJobModel(Base):
    __tablename__ = "generation_job"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    model: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_note: Mapped[str | None] = mapped_column(String(255))
    request_params: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # kept after terminal transitions so late callbacks still correlate
    provider_task_id: Mapped[str | None] = mapped_column(String(128), index=True)
    provider_dispatched_at: Mapped[datetime | None] = mapped_column(DateTime)
    poll_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_poll_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    poll_delay_seconds: Mapped[float | None] = mapped_column(Float)
    response_data: Mapped[dict | None] = mapped_column(JSON)
    providers_tried: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    fallback_attempted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    artifact_id: Mapped[str | None] = mapped_column(String(64))
    error_message: Mapped[str | None] = mapped_column(String(512))
    failure_kind: Mapped[str | None] = mapped_column(String(32))
    credits_estimate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    generated_lyrics: Mapped[str | None] = mapped_column(Text)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime)


class GeneratedArtifactModel(Base):
    __tablename__ = "generated_artifact"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # plain column: artifacts outlive pruned job rows
    job_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    audio_uri: Mapped[str] = mapped_column(String(1024), nullable=False)
    image_uri: Mapped[str | None] = mapped_column(String(1024))
    duration_seconds: Mapped[float | None] = mapped_column(Float)
    lyrics: Mapped[str | None] = mapped_column(Text)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    provider_item_id: Mapped[str | None] = mapped_column(String(128))
    tags: Mapped[str | None] = mapped_column(String(1024))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class LyricsRecordModel(Base):
    __tablename__ = "lyrics_record"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    job_id: Mapped[str | None] = mapped_column(String(64))
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    provider_task_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255))
    content: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    error_message: Mapped[str | None] = mapped_column(String(512))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
