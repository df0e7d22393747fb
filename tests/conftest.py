from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("JWT_SIGNING_KEY", "test-signing-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="songforge-media-"))

from src.songforge.config import PollingPolicy  # noqa: E402
from src.songforge.db.db_models import Base  # noqa: E402
from src.songforge.generation.generation_models import ProviderName  # noqa: E402
from src.songforge.generation.generation_service import GenerationOrchestrator  # noqa: E402
from src.songforge.media.blob_store import LocalBlobStore  # noqa: E402
from src.songforge.notifications.notifier import InMemoryNotifier  # noqa: E402
from src.songforge.providers.providers_base import ProviderAdapter  # noqa: E402
from src.songforge.repositories.artifact_repository import ArtifactRepository  # noqa: E402
from src.songforge.repositories.job_repository import JobRepository  # noqa: E402
from src.songforge.repositories.lyrics_repository import LyricsRepository  # noqa: E402

CALLBACK_URL = "https://songforge.test/api/callbacks/suno"
MEDIA_BASE_URL = "https://songforge.test/media"


class FakeClock:
    """Manually advanced naive-UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def session_factory() -> Iterator[sessionmaker[Session]]:
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def job_repo(session_factory) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture
def artifact_repo(session_factory) -> ArtifactRepository:
    return ArtifactRepository(session_factory)


@pytest.fixture
def lyrics_repo(session_factory) -> LyricsRepository:
    return LyricsRepository(session_factory)


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(root=tmp_path / "media", public_base_url=MEDIA_BASE_URL)


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def polling_policy() -> PollingPolicy:
    return PollingPolicy()


@pytest.fixture
def make_orchestrator(
    job_repo, artifact_repo, lyrics_repo, blob_store, notifier, polling_policy, clock
) -> Callable[..., GenerationOrchestrator]:
    def _make(*adapters: ProviderAdapter, **overrides: Any) -> GenerationOrchestrator:
        params: dict[str, Any] = {
            "job_repo": job_repo,
            "artifact_repo": artifact_repo,
            "lyrics_repo": lyrics_repo,
            "blob_store": blob_store,
            "adapters": {adapter.name: adapter for adapter in adapters},
            "polling": polling_policy,
            "notifier": notifier,
            "callback_url": CALLBACK_URL,
            "baseline_provider": ProviderName.SUNO,
            "clock": clock,
        }
        params.update(overrides)
        return GenerationOrchestrator(**params)

    return _make
