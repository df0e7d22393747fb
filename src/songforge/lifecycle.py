"""Lifecycle helpers wiring background tasks for FastAPI startup."""

from __future__ import annotations

import asyncio
import logging

from .generation.generation_service import GenerationOrchestrator
from .workers.poll_worker import PollingEngine


logger = logging.getLogger(__name__)


async def _wait_or_timeout(shutdown_event: asyncio.Event, interval: float) -> None:
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        return


async def run_periodic_polling(
    *,
    engine: PollingEngine,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 1.0,
) -> None:
    """Poll due jobs every ``interval_seconds`` until ``shutdown_event`` is set."""

    interval = max(0.1, float(interval_seconds))
    while not shutdown_event.is_set():
        try:
            checked = await engine.run_due()
        except Exception:
            logger.exception("Polling iteration failed")
        else:
            if checked:
                logger.debug("Checked %s due jobs", checked)
        await _wait_or_timeout(shutdown_event, interval)


async def run_periodic_stuck_job_sweep(
    *,
    orchestrator: GenerationOrchestrator,
    shutdown_event: asyncio.Event,
    pending_minutes: int = 30,
    processing_minutes: int = 15,
    interval_seconds: float = 300.0,
) -> None:
    """Fail jobs that stopped making progress until ``shutdown_event`` is set."""

    interval = max(1.0, float(interval_seconds))
    while not shutdown_event.is_set():
        try:
            swept = await orchestrator.sweep_stuck(
                pending_minutes=pending_minutes,
                processing_minutes=processing_minutes,
            )
        except Exception:  # pragma: no cover
            logger.exception("Stuck job sweep failed")
        else:
            if swept:
                logger.info("Failed %s stuck jobs", len(swept))
        await _wait_or_timeout(shutdown_event, interval)


__all__ = [
    "run_periodic_polling",
    "run_periodic_stuck_job_sweep",
]
