from __future__ import annotations

import asyncio

import pytest

from src.songforge.lifecycle import run_periodic_polling, run_periodic_stuck_job_sweep


class StubEngine:
    def __init__(self, shutdown_event: asyncio.Event, *, stop_after: int, fail_first: bool = False) -> None:
        self.shutdown_event = shutdown_event
        self.stop_after = stop_after
        self.fail_first = fail_first
        self.calls = 0

    async def run_due(self) -> int:
        self.calls += 1
        if self.calls >= self.stop_after:
            self.shutdown_event.set()
        if self.fail_first and self.calls == 1:
            raise RuntimeError("database unavailable")
        return 1


class StubOrchestrator:
    def __init__(self, shutdown_event: asyncio.Event) -> None:
        self.shutdown_event = shutdown_event
        self.calls: list[tuple[int, int]] = []

    async def sweep_stuck(self, *, pending_minutes: int, processing_minutes: int) -> list[str]:
        self.calls.append((pending_minutes, processing_minutes))
        self.shutdown_event.set()
        return ["job-1"]


@pytest.mark.asyncio
async def test_polling_loop_runs_until_shutdown() -> None:
    shutdown = asyncio.Event()
    engine = StubEngine(shutdown, stop_after=3)

    await asyncio.wait_for(
        run_periodic_polling(engine=engine, shutdown_event=shutdown, interval_seconds=0.1),
        timeout=5,
    )

    assert engine.calls == 3


@pytest.mark.asyncio
async def test_polling_loop_survives_iteration_errors() -> None:
    shutdown = asyncio.Event()
    engine = StubEngine(shutdown, stop_after=2, fail_first=True)

    await asyncio.wait_for(
        run_periodic_polling(engine=engine, shutdown_event=shutdown, interval_seconds=0.1),
        timeout=5,
    )

    assert engine.calls == 2


@pytest.mark.asyncio
async def test_sweep_loop_passes_thresholds() -> None:
    shutdown = asyncio.Event()
    orchestrator = StubOrchestrator(shutdown)

    await asyncio.wait_for(
        run_periodic_stuck_job_sweep(
            orchestrator=orchestrator,
            shutdown_event=shutdown,
            pending_minutes=45,
            processing_minutes=20,
            interval_seconds=1.0,
        ),
        timeout=5,
    )

    assert orchestrator.calls == [(45, 20)]
