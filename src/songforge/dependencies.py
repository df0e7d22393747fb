"""Dependency wiring helpers."""

from datetime import timedelta

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .auth.auth_service import TokenVerifier
from .callbacks.callback_api import router as callbacks_router
from .callbacks.callback_service import CallbackReceiver
from .config import AppConfig
from .generation.generation_api import router as generation_router
from .generation.generation_models import ProviderName
from .generation.generation_service import GenerationOrchestrator
from .lyrics.lyrics_api import router as lyrics_router
from .lyrics.lyrics_service import LyricsService
from .media.blob_store import LocalBlobStore
from .notifications.notifications_ws import router as notifications_router
from .notifications.notifier import InMemoryNotifier
from .providers import SunoAdapter
from .providers.providers_api import router as providers_router
from .providers.providers_factory import create_adapters
from .repositories.artifact_repository import ArtifactRepository
from .repositories.job_repository import JobRepository
from .repositories.lyrics_repository import LyricsRepository
from .workers.poll_worker import PollingEngine


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    job_repo = JobRepository(config.session_factory)
    artifact_repo = ArtifactRepository(config.session_factory)
    lyrics_repo = LyricsRepository(config.session_factory)
    blob_store = LocalBlobStore(
        root=config.media_paths.root,
        public_base_url=config.media_base_url,
        download_timeout_seconds=config.providers.timeout_seconds,
    )
    notifier = InMemoryNotifier()
    adapters = create_adapters(config.providers)

    orchestrator = GenerationOrchestrator(
        job_repo=job_repo,
        artifact_repo=artifact_repo,
        lyrics_repo=lyrics_repo,
        blob_store=blob_store,
        adapters=adapters,
        polling=config.polling,
        notifier=notifier,
        callback_url=config.callback_url,
        baseline_provider=ProviderName(config.default_provider),
        long_prompt_threshold=config.long_prompt_threshold,
        fallback_enabled=config.enable_provider_fallback,
        mirror_audio=config.mirror_provider_audio,
    )
    polling_engine = PollingEngine(
        orchestrator=orchestrator,
        job_repo=job_repo,
        adapters=adapters,
        policy=config.polling,
    )
    callback_receiver = CallbackReceiver(
        orchestrator=orchestrator,
        job_repo=job_repo,
        lyrics_repo=lyrics_repo,
        recent_window=timedelta(hours=config.callback_recent_hours),
    )
    suno = adapters.get(ProviderName.SUNO)
    lyrics_service = LyricsService(
        lyrics_repo=lyrics_repo,
        suno=suno if isinstance(suno, SunoAdapter) else None,
        callback_url=config.callback_url,
    )

    app.state.config = config
    app.state.job_repo = job_repo
    app.state.artifact_repo = artifact_repo
    app.state.lyrics_repo = lyrics_repo
    app.state.blob_store = blob_store
    app.state.notifier = notifier
    app.state.adapters = adapters
    app.state.orchestrator = orchestrator
    app.state.polling_engine = polling_engine
    app.state.callback_receiver = callback_receiver
    app.state.lyrics_service = lyrics_service
    app.state.token_verifier = TokenVerifier.from_key(config.jwt_signing_key)

    app.include_router(generation_router)
    app.include_router(callbacks_router)
    app.include_router(lyrics_router)
    app.include_router(notifications_router)
    app.include_router(providers_router)

    @app.get("/healthz", tags=["health"])
    async def healthz() -> dict[str, object]:
        return {
            "status": "ok",
            "providers": sorted(name.value for name in adapters),
        }

    app.mount(
        "/media",
        StaticFiles(directory=config.media_paths.root, check_dir=False),
        name="media",
    )
