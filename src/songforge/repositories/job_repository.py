"""Persistence layer for generation jobs.

Every status write is a conditional UPDATE keyed by the statuses the caller
expects, so pollers and callback handlers racing on the same job cannot move
it backwards or finalize it twice.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..db.db_models import GeneratedArtifactModel, GenerationJobModel
from ..exceptions import handle_sqlalchemy_errors
from ..generation.generation_models import (
    ACTIVE_STATUSES,
    FailureKind,
    GeneratedArtifact,
    GenerationJob,
    GenerationRequest,
    JobStatus,
    ProviderName,
    utcnow,
)
from .artifact_repository import to_artifact

_ACTIVE = [status.value for status in ACTIVE_STATUSES]

# schedule columns reset whenever the job becomes terminal or changes provider
_CLEARED_TASK_FIELDS: dict[str, Any] = {
    "next_poll_at": None,
    "poll_delay_seconds": None,
}


@dataclass(slots=True)
class NewArtifact:
    title: str
    audio_uri: str
    provider: str
    image_uri: str | None = None
    duration_seconds: float | None = None
    lyrics: str | None = None
    provider_item_id: str | None = None
    tags: str | None = None


class JobRepository:
    """Manage generation_job records."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def insert(
        self,
        *,
        user_id: str,
        provider: ProviderName,
        model: str,
        request: GenerationRequest,
        credits_estimate: int,
        created_at: datetime | None = None,
    ) -> GenerationJob:
        now = created_at or utcnow()
        model_row = GenerationJobModel(
            id=uuid.uuid4().hex,
            user_id=user_id,
            provider=provider.value,
            model=model,
            status=JobStatus.PENDING.value,
            progress=0,
            request_params=request.to_params(),
            poll_attempts=0,
            providers_tried=[provider.value],
            fallback_attempted=False,
            credits_estimate=credits_estimate,
            created_at=now,
            updated_at=now,
        )
        with handle_sqlalchemy_errors(entity="generation_job"):
            with self._session_factory() as session:
                session.add(model_row)
                session.commit()
                return _to_job(model_row)

    def get(self, job_id: str) -> GenerationJob | None:
        with self._session_factory() as session:
            model = session.get(GenerationJobModel, job_id)
            return _to_job(model) if model is not None else None

    def update(
        self,
        job_id: str,
        fields: dict[str, Any],
        *,
        expected_status: Iterable[JobStatus] | None = None,
        expected_task_id: str | None = None,
    ) -> bool:
        """Apply ``fields`` if the stored status is one of ``expected_status``.

        With ``expected_task_id`` the row must also still carry that provider token.
        """
        values = dict(fields)
        values.setdefault("updated_at", utcnow())
        stmt = update(GenerationJobModel).where(GenerationJobModel.id == job_id)
        if expected_task_id is not None:
            stmt = stmt.where(GenerationJobModel.provider_task_id == expected_task_id)
        if expected_status is not None:
            allowed = [JobStatus(status).value for status in expected_status]
            stmt = stmt.where(GenerationJobModel.status.in_(allowed))
        with handle_sqlalchemy_errors(entity="generation_job"):
            with self._session_factory() as session:
                result = session.execute(stmt.values(**values))
                session.commit()
                return result.rowcount == 1

    def advance_progress(
        self,
        job_id: str,
        *,
        progress: int,
        note: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Raise progress only if it grows and the job is still active."""
        values: dict[str, Any] = {"progress": progress, "updated_at": now or utcnow()}
        if note is not None:
            values["progress_note"] = note[:255]
        stmt = (
            update(GenerationJobModel)
            .where(
                GenerationJobModel.id == job_id,
                GenerationJobModel.status.in_(_ACTIVE),
                GenerationJobModel.progress < progress,
            )
            .values(**values)
        )
        with handle_sqlalchemy_errors(entity="generation_job"):
            with self._session_factory() as session:
                result = session.execute(stmt)
                session.commit()
                return result.rowcount == 1

    def mark_dispatched(
        self,
        job_id: str,
        *,
        provider_task_id: str,
        response_data: dict[str, Any] | None,
        dispatched_at: datetime,
        next_poll_at: datetime,
        poll_delay_seconds: float,
        generated_lyrics: str | None = None,
    ) -> bool:
        fields: dict[str, Any] = {
            "status": JobStatus.PROCESSING.value,
            "provider_task_id": provider_task_id,
            "provider_dispatched_at": dispatched_at,
            "response_data": response_data,
            "poll_attempts": 0,
            "next_poll_at": next_poll_at,
            "poll_delay_seconds": poll_delay_seconds,
            "updated_at": dispatched_at,
        }
        if generated_lyrics:
            fields["generated_lyrics"] = generated_lyrics
        return self.update(job_id, fields, expected_status=ACTIVE_STATUSES)

    def schedule_poll(
        self,
        job_id: str,
        *,
        provider_task_id: str,
        poll_attempts: int,
        next_poll_at: datetime,
        poll_delay_seconds: float,
    ) -> bool:
        """Persist the next status check for a job still bound to ``provider_task_id``."""
        stmt = (
            update(GenerationJobModel)
            .where(
                GenerationJobModel.id == job_id,
                GenerationJobModel.status == JobStatus.PROCESSING.value,
                GenerationJobModel.provider_task_id == provider_task_id,
            )
            .values(
                poll_attempts=poll_attempts,
                next_poll_at=next_poll_at,
                poll_delay_seconds=poll_delay_seconds,
            )
        )
        with handle_sqlalchemy_errors(entity="generation_job"):
            with self._session_factory() as session:
                result = session.execute(stmt)
                session.commit()
                return result.rowcount == 1

    def switch_provider(
        self,
        job_id: str,
        *,
        provider: ProviderName,
        model: str,
        providers_tried: list[str],
        credits_estimate: int,
        note: str,
    ) -> bool:
        fields: dict[str, Any] = {
            "provider": provider.value,
            "model": model,
            "providers_tried": providers_tried,
            "fallback_attempted": True,
            "credits_estimate": credits_estimate,
            "provider_task_id": None,
            "provider_dispatched_at": None,
            "response_data": None,
            "poll_attempts": 0,
            "progress_note": note[:255],
            **_CLEARED_TASK_FIELDS,
        }
        return self.update(job_id, fields, expected_status=ACTIVE_STATUSES)

    def complete(
        self,
        job_id: str,
        *,
        artifact: NewArtifact,
        finished_at: datetime | None = None,
        expected_task_id: str | None = None,
    ) -> GeneratedArtifact | None:
        """Insert the artifact and mark the job completed in one transaction.

        Returns ``None`` when the job was already terminal, or no longer bound
        to ``expected_task_id`` when one is given.
        """
        now = finished_at or utcnow()
        artifact_id = uuid.uuid4().hex
        with handle_sqlalchemy_errors(entity="generation_job"):
            with self._session_factory() as session:
                owner = session.execute(
                    select(GenerationJobModel.user_id).where(GenerationJobModel.id == job_id)
                ).scalar_one_or_none()
                if owner is None:
                    return None
                stmt = update(GenerationJobModel).where(
                    GenerationJobModel.id == job_id,
                    GenerationJobModel.status.in_(_ACTIVE),
                )
                if expected_task_id is not None:
                    stmt = stmt.where(GenerationJobModel.provider_task_id == expected_task_id)
                result = session.execute(
                    stmt
                    .values(
                        status=JobStatus.COMPLETED.value,
                        progress=100,
                        progress_note="Completed",
                        artifact_id=artifact_id,
                        error_message=None,
                        failure_kind=None,
                        finished_at=now,
                        updated_at=now,
                        **_CLEARED_TASK_FIELDS,
                    )
                )
                if result.rowcount != 1:
                    session.rollback()
                    return None
                row = GeneratedArtifactModel(
                    id=artifact_id,
                    job_id=job_id,
                    user_id=owner,
                    title=artifact.title,
                    audio_uri=artifact.audio_uri,
                    image_uri=artifact.image_uri,
                    duration_seconds=artifact.duration_seconds,
                    lyrics=artifact.lyrics,
                    provider=artifact.provider,
                    provider_item_id=artifact.provider_item_id,
                    tags=artifact.tags,
                    created_at=now,
                )
                session.add(row)
                session.commit()
                return to_artifact(row)

    def fail(
        self,
        job_id: str,
        *,
        message: str,
        kind: FailureKind,
        finished_at: datetime | None = None,
        expected_task_id: str | None = None,
    ) -> bool:
        now = finished_at or utcnow()
        fields: dict[str, Any] = {
            "status": JobStatus.FAILED.value,
            "error_message": message[:500],
            "failure_kind": kind.value,
            "progress_note": "Failed",
            "finished_at": now,
            "updated_at": now,
            **_CLEARED_TASK_FIELDS,
        }
        return self.update(
            job_id, fields, expected_status=ACTIVE_STATUSES, expected_task_id=expected_task_id
        )

    def find_by_provider_task(self, provider_task_id: str) -> GenerationJob | None:
        """Exact lookup on the normalized correlation column."""
        stmt = (
            select(GenerationJobModel)
            .where(GenerationJobModel.provider_task_id == provider_task_id)
            .order_by(GenerationJobModel.created_at.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            model = session.execute(stmt).scalar_one_or_none()
            return _to_job(model) if model is not None else None

    def query_recent(self, since: datetime, *, limit: int = 500) -> list[GenerationJob]:
        """Jobs created at or after ``since``, most recent first."""
        stmt = (
            select(GenerationJobModel)
            .where(GenerationJobModel.created_at >= since)
            .order_by(GenerationJobModel.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [_to_job(model) for model in session.execute(stmt).scalars()]

    def list_due_for_poll(self, now: datetime, *, limit: int = 20) -> list[GenerationJob]:
        stmt = (
            select(GenerationJobModel)
            .where(
                GenerationJobModel.status == JobStatus.PROCESSING.value,
                GenerationJobModel.provider_task_id.is_not(None),
                GenerationJobModel.next_poll_at.is_not(None),
                GenerationJobModel.next_poll_at <= now,
            )
            .order_by(GenerationJobModel.next_poll_at)
            .limit(limit)
        )
        with self._session_factory() as session:
            return [_to_job(model) for model in session.execute(stmt).scalars()]

    def credits_spent_since(self, user_id: str, since: datetime) -> int:
        """Sum estimated credits of the user's jobs created since ``since``, failures excluded."""
        stmt = select(func.coalesce(func.sum(GenerationJobModel.credits_estimate), 0)).where(
            GenerationJobModel.user_id == user_id,
            GenerationJobModel.created_at >= since,
            GenerationJobModel.status != JobStatus.FAILED.value,
        )
        with handle_sqlalchemy_errors(entity="generation_job"):
            with self._session_factory() as session:
                return int(session.execute(stmt).scalar_one())

    def list_for_user(self, user_id: str, *, limit: int = 50) -> list[GenerationJob]:
        stmt = (
            select(GenerationJobModel)
            .where(
                GenerationJobModel.user_id == user_id,
                GenerationJobModel.cancelled_at.is_(None),
            )
            .order_by(GenerationJobModel.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [_to_job(model) for model in session.execute(stmt).scalars()]

    def list_stuck(
        self,
        *,
        pending_created_before: datetime,
        processing_updated_before: datetime,
    ) -> list[GenerationJob]:
        """Active jobs no background path will ever move again."""
        pending = select(GenerationJobModel).where(
            GenerationJobModel.status == JobStatus.PENDING.value,
            GenerationJobModel.created_at < pending_created_before,
        )
        processing = select(GenerationJobModel).where(
            GenerationJobModel.status == JobStatus.PROCESSING.value,
            GenerationJobModel.next_poll_at.is_(None),
            GenerationJobModel.updated_at < processing_updated_before,
        )
        with self._session_factory() as session:
            jobs = [_to_job(model) for model in session.execute(pending).scalars()]
            jobs.extend(_to_job(model) for model in session.execute(processing).scalars())
            return jobs


def _to_job(model: GenerationJobModel) -> GenerationJob:
    return GenerationJob(
        id=model.id,
        user_id=model.user_id,
        provider=ProviderName(model.provider),
        model=model.model,
        status=JobStatus(model.status),
        progress=model.progress,
        progress_note=model.progress_note,
        request=GenerationRequest.from_params(model.request_params or {"prompt": ""}),
        credits_estimate=model.credits_estimate,
        created_at=model.created_at,
        updated_at=model.updated_at,
        provider_task_id=model.provider_task_id,
        provider_dispatched_at=model.provider_dispatched_at,
        poll_attempts=model.poll_attempts,
        next_poll_at=model.next_poll_at,
        poll_delay_seconds=model.poll_delay_seconds,
        response_data=model.response_data,
        providers_tried=list(model.providers_tried or []),
        fallback_attempted=model.fallback_attempted,
        artifact_id=model.artifact_id,
        error_message=model.error_message,
        failure_kind=FailureKind(model.failure_kind) if model.failure_kind else None,
        generated_lyrics=model.generated_lyrics,
        cancelled_at=model.cancelled_at,
        finished_at=model.finished_at,
    )
