"""Read access to generated artifacts.

Artifacts are inserted by :meth:`JobRepository.complete` together with the
job transition and are never updated afterwards.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import GeneratedArtifactModel
from ..exceptions import ensure_found
from ..generation.generation_models import GeneratedArtifact


class ArtifactRepository:
    """Query generated_artifact records."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, artifact_id: str) -> GeneratedArtifact:
        with self._session_factory() as session:
            model = session.get(GeneratedArtifactModel, artifact_id)
            ensure_found(model, entity="generated_artifact", identifier=artifact_id)
            return to_artifact(model)

    def list_for_user(self, user_id: str, *, limit: int = 50) -> list[GeneratedArtifact]:
        stmt = (
            select(GeneratedArtifactModel)
            .where(GeneratedArtifactModel.user_id == user_id)
            .order_by(GeneratedArtifactModel.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [to_artifact(model) for model in session.execute(stmt).scalars()]


def to_artifact(model: GeneratedArtifactModel) -> GeneratedArtifact:
    return GeneratedArtifact(
        id=model.id,
        job_id=model.job_id,
        user_id=model.user_id,
        title=model.title,
        audio_uri=model.audio_uri,
        provider=model.provider,
        created_at=model.created_at,
        image_uri=model.image_uri,
        duration_seconds=model.duration_seconds,
        lyrics=model.lyrics,
        provider_item_id=model.provider_item_id,
        tags=model.tags,
    )
