"""Persistence layer for lyrics generation records."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db.db_models import LyricsRecordModel
from ..exceptions import handle_sqlalchemy_errors
from ..generation.generation_models import LyricsRecord, LyricsStatus, utcnow


class LyricsRepository:
    """Manage lyrics_record rows created by lyrics sub-calls and requests."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        *,
        user_id: str,
        provider: str,
        provider_task_id: str,
        prompt: str,
        job_id: str | None = None,
        content: str | None = None,
        now: datetime | None = None,
    ) -> LyricsRecord:
        created_at = now or utcnow()
        status = LyricsStatus.COMPLETED if content else LyricsStatus.PENDING
        row = LyricsRecordModel(
            id=uuid.uuid4().hex,
            user_id=user_id,
            job_id=job_id,
            provider=provider,
            provider_task_id=provider_task_id,
            prompt=prompt,
            content=content,
            status=status.value,
            created_at=created_at,
            updated_at=created_at,
        )
        with handle_sqlalchemy_errors(entity="lyrics_record"):
            with self._session_factory() as session:
                session.add(row)
                session.commit()
                return _to_record(row)

    def get(self, lyrics_id: str) -> LyricsRecord | None:
        with self._session_factory() as session:
            model = session.get(LyricsRecordModel, lyrics_id)
            return _to_record(model) if model is not None else None

    def find_by_task(self, provider_task_id: str) -> LyricsRecord | None:
        """Exact match first, then a case-insensitive one."""
        exact = select(LyricsRecordModel).where(
            LyricsRecordModel.provider_task_id == provider_task_id
        )
        loose = select(LyricsRecordModel).where(
            func.lower(LyricsRecordModel.provider_task_id) == provider_task_id.lower()
        )
        with self._session_factory() as session:
            for stmt in (exact, loose):
                model = session.execute(
                    stmt.order_by(LyricsRecordModel.created_at.desc()).limit(1)
                ).scalar_one_or_none()
                if model is not None:
                    return _to_record(model)
        return None

    def complete(
        self,
        lyrics_id: str,
        *,
        content: str,
        title: str | None = None,
        now: datetime | None = None,
    ) -> LyricsRecord:
        with handle_sqlalchemy_errors(entity="lyrics_record"):
            with self._session_factory() as session:
                model = session.get(LyricsRecordModel, lyrics_id)
                if model is None:
                    raise KeyError(f"Lyrics record '{lyrics_id}' not found")
                model.content = content
                if title:
                    model.title = title[:255]
                model.status = LyricsStatus.COMPLETED.value
                model.error_message = None
                model.updated_at = now or utcnow()
                session.commit()
                return _to_record(model)

    def fail(self, lyrics_id: str, *, message: str, now: datetime | None = None) -> LyricsRecord:
        with handle_sqlalchemy_errors(entity="lyrics_record"):
            with self._session_factory() as session:
                model = session.get(LyricsRecordModel, lyrics_id)
                if model is None:
                    raise KeyError(f"Lyrics record '{lyrics_id}' not found")
                if model.status != LyricsStatus.COMPLETED.value:
                    model.status = LyricsStatus.FAILED.value
                    model.error_message = message[:500]
                    model.updated_at = now or utcnow()
                    session.commit()
                return _to_record(model)


def _to_record(model: LyricsRecordModel) -> LyricsRecord:
    return LyricsRecord(
        id=model.id,
        user_id=model.user_id,
        provider=model.provider,
        provider_task_id=model.provider_task_id,
        prompt=model.prompt,
        status=LyricsStatus(model.status),
        created_at=model.created_at,
        updated_at=model.updated_at,
        job_id=model.job_id,
        title=model.title,
        content=model.content,
        error_message=model.error_message,
    )
