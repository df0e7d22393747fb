"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db


@dataclass(slots=True)
class MediaPaths:
    root: Path
    audio: Path


@dataclass(slots=True)
class PollingPolicy:
    """Schedule applied to pull-style status checks."""

    initial_delay_seconds: float = 5.0
    backoff_factor: float = 1.2
    max_delay_seconds: float = 15.0
    max_attempts: int = 30
    rate_limit_delay_seconds: float = 30.0
    tick_seconds: float = 1.0
    batch_size: int = 20
    concurrency: int = 5

    def next_delay(self, current: float) -> float:
        grown = max(current, self.initial_delay_seconds) * self.backoff_factor
        return min(grown, self.max_delay_seconds)


@dataclass(slots=True)
class ProviderCredentials:
    suno_api_key: str
    suno_api_base: str
    mureka_api_key: str
    mureka_api_base: str
    timeout_seconds: float


@dataclass(slots=True)
class AppConfig:
    media_paths: MediaPaths
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    public_base_url: str
    jwt_signing_key: str
    providers: ProviderCredentials
    polling: PollingPolicy
    default_provider: str
    long_prompt_threshold: int
    enable_provider_fallback: bool
    mirror_provider_audio: bool
    stuck_pending_minutes: int
    stuck_processing_minutes: int
    stuck_sweep_interval_seconds: float
    callback_recent_hours: int

    @property
    def callback_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/api/callbacks/suno"

    @property
    def media_base_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/media"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _ensure_media_paths(paths: MediaPaths) -> None:
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.audio.mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    root = Path(os.getenv("MEDIA_ROOT", "media"))
    media_paths = MediaPaths(root=root, audio=root / "audio")
    _ensure_media_paths(media_paths)

    database_url = os.getenv("DATABASE_URL", "sqlite:///songforge.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    providers = ProviderCredentials(
        suno_api_key=os.getenv("SUNO_API_KEY", ""),
        suno_api_base=os.getenv("SUNO_API_BASE", "https://api.sunoapi.org"),
        mureka_api_key=os.getenv("MUREKA_API_KEY", ""),
        mureka_api_base=os.getenv("MUREKA_API_BASE", "https://api.mureka.ai"),
        timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 30)),
    )
    polling = PollingPolicy(
        initial_delay_seconds=float(os.getenv("POLL_INITIAL_DELAY_SECONDS", 5)),
        backoff_factor=float(os.getenv("POLL_BACKOFF_FACTOR", 1.2)),
        max_delay_seconds=float(os.getenv("POLL_MAX_DELAY_SECONDS", 15)),
        max_attempts=int(os.getenv("POLL_MAX_ATTEMPTS", 30)),
        rate_limit_delay_seconds=float(os.getenv("POLL_RATE_LIMIT_DELAY_SECONDS", 30)),
        tick_seconds=float(os.getenv("POLL_TICK_SECONDS", 1)),
        batch_size=int(os.getenv("POLL_BATCH_SIZE", 20)),
    )

    init_db(engine)

    return AppConfig(
        media_paths=media_paths,
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000"),
        jwt_signing_key=os.getenv("JWT_SIGNING_KEY", ""),
        providers=providers,
        polling=polling,
        default_provider=os.getenv("DEFAULT_PROVIDER", "suno"),
        long_prompt_threshold=int(os.getenv("LONG_PROMPT_THRESHOLD", 400)),
        enable_provider_fallback=_env_flag("ENABLE_PROVIDER_FALLBACK", True),
        mirror_provider_audio=_env_flag("MIRROR_PROVIDER_AUDIO", False),
        stuck_pending_minutes=int(os.getenv("STUCK_PENDING_MINUTES", 30)),
        stuck_processing_minutes=int(os.getenv("STUCK_PROCESSING_MINUTES", 15)),
        stuck_sweep_interval_seconds=float(os.getenv("STUCK_SWEEP_INTERVAL_SECONDS", 300)),
        callback_recent_hours=int(os.getenv("CALLBACK_RECENT_HOURS", 24)),
    )
