"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .lifecycle import run_periodic_polling, run_periodic_stuck_job_sweep
from .logging import configure_logging

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: AppConfig = app.state.config
    shutdown_event = asyncio.Event()
    tasks: list[asyncio.Task[None]] = []
    if getattr(app.state, "disable_background_tasks", False):
        logger.info("Background tasks skipped: disabled via app state")
    else:
        tasks.append(
            asyncio.create_task(
                run_periodic_polling(
                    engine=app.state.polling_engine,
                    shutdown_event=shutdown_event,
                    interval_seconds=config.polling.tick_seconds,
                ),
                name="songforge-poller",
            )
        )
        tasks.append(
            asyncio.create_task(
                run_periodic_stuck_job_sweep(
                    orchestrator=app.state.orchestrator,
                    shutdown_event=shutdown_event,
                    pending_minutes=config.stuck_pending_minutes,
                    processing_minutes=config.stuck_processing_minutes,
                    interval_seconds=config.stuck_sweep_interval_seconds,
                ),
                name="songforge-stuck-sweeper",
            )
        )
    app.state.background_tasks = tasks
    try:
        yield
    finally:
        shutdown_event.set()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await app.state.orchestrator.drain()
        app.state.background_tasks = []


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="Songforge", lifespan=_lifespan)
    include_routers(app, cfg)
    return app


app = create_app()
