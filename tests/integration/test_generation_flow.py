"""End-to-end job lifecycle through the HTTP routes.

Requests go through ``httpx.ASGITransport`` so background dispatch tasks run on
the test's own event loop and can be drained deterministically.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI

from src.songforge.auth.auth_service import TokenVerifier
from src.songforge.callbacks.callback_api import router as callbacks_router
from src.songforge.callbacks.callback_service import CallbackReceiver
from src.songforge.generation.generation_api import router as generations_router
from src.songforge.generation.generation_errors import TransientProviderError
from src.songforge.generation.generation_models import ProviderName
from src.songforge.workers.poll_worker import PollingEngine
from tests.mocks.providers import ScriptedAdapter, done

pytestmark = pytest.mark.integration

VERIFIER = TokenVerifier(signing_key="integration-key")


def build_app(orchestrator, job_repo, lyrics_repo, clock) -> FastAPI:
    app = FastAPI()
    app.include_router(generations_router)
    app.include_router(callbacks_router)
    app.state.orchestrator = orchestrator
    app.state.callback_receiver = CallbackReceiver(
        orchestrator=orchestrator, job_repo=job_repo, lyrics_repo=lyrics_repo, clock=clock
    )
    app.state.token_verifier = VERIFIER
    return app


def client_for(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://songforge.test",
        headers={"Authorization": f"Bearer {VERIFIER.issue_token('user-1')}"},
    )


@pytest.mark.asyncio
async def test_suno_job_completes_via_callbacks(
    make_orchestrator, job_repo, lyrics_repo, clock
) -> None:
    suno = ScriptedAdapter(ProviderName.SUNO, supports_callbacks=True)
    orchestrator = make_orchestrator(suno)
    app = build_app(orchestrator, job_repo, lyrics_repo, clock)

    async with client_for(app) as client:
        accepted = await client.post(
            "/api/generations",
            json={"prompt": "a synthwave anthem about night drives", "provider": "suno"},
        )
        assert accepted.status_code == 202
        job_id = accepted.json()["job_id"]
        assert accepted.json()["status"] == "pending"
        await orchestrator.drain()

        progress = await client.post(
            "/api/callbacks/suno",
            json={"code": 200, "msg": "ok", "data": {"callbackType": "first", "task_id": "suno-task-1"}},
        )
        assert progress.json()["action"] == "progress"

        complete_body = {
            "code": 200,
            "msg": "All generated successfully.",
            "data": {
                "callbackType": "complete",
                "task_id": "suno-task-1",
                "data": [
                    {"id": "clip-0", "audio_url": ""},
                    {
                        "id": "clip-1",
                        "audio_url": "https://cdn.suno.test/clip-1.mp3",
                        "title": "Night Drive",
                        "duration": 182.5,
                    },
                ],
            },
        }
        completed = await client.post("/api/callbacks/suno", json=complete_body)
        duplicate = await client.post("/api/callbacks/suno", json=complete_body)
        status = await client.get(f"/api/generations/{job_id}")

    assert completed.json()["action"] == "completed"
    assert duplicate.json()["action"] == "already_terminal"
    body = status.json()
    assert body["status"] == "completed"
    assert body["progress"] == 100
    assert body["artifact"]["audio_url"] == "https://cdn.suno.test/clip-1.mp3"
    assert body["artifact"]["duration_seconds"] == pytest.approx(182.5)
    assert body["artifact"]["provider_item_id"] == "clip-1"
    assert suno.callback_urls == ["https://songforge.test/api/callbacks/suno"]


@pytest.mark.asyncio
async def test_dispatch_failure_falls_back_and_completes_by_polling(
    make_orchestrator, job_repo, lyrics_repo, clock
) -> None:
    suno = ScriptedAdapter(
        ProviderName.SUNO, dispatches=[TransientProviderError("Suno returned HTTP 503")]
    )
    mureka = ScriptedAdapter(
        ProviderName.MUREKA,
        statuses=[done("https://cdn.mureka.test/song.mp3", duration_seconds=95.0, title="Rain")],
    )
    orchestrator = make_orchestrator(suno, mureka)
    engine = PollingEngine(
        orchestrator=orchestrator,
        job_repo=job_repo,
        adapters=orchestrator.adapters,
        policy=orchestrator.polling,
        clock=clock,
    )
    app = build_app(orchestrator, job_repo, lyrics_repo, clock)

    async with client_for(app) as client:
        accepted = await client.post(
            "/api/generations", json={"prompt": "rainy piano ballad", "provider": "suno"}
        )
        job_id = accepted.json()["job_id"]
        await orchestrator.drain()

        clock.advance(seconds=5)
        assert await engine.run_due() == 1
        status = await client.get(f"/api/generations/{job_id}")
        listing = await client.get("/api/generations")

    body = status.json()
    assert body["status"] == "completed"
    assert body["provider"] == "mureka"
    assert body["fallback_attempted"] is True
    assert body["providers_tried"] == ["suno", "mureka"]
    assert body["artifact"]["title"] == "Rain"
    assert [item["id"] for item in listing.json()] == [job_id]
    assert mureka.status_calls == ["mureka-task-1"]


@pytest.mark.asyncio
async def test_unknown_callback_token_is_acknowledged(
    make_orchestrator, job_repo, lyrics_repo, clock
) -> None:
    app = build_app(make_orchestrator(), job_repo, lyrics_repo, clock)

    async with client_for(app) as client:
        response = await client.post(
            "/api/callbacks/suno",
            json={"code": 200, "data": {"callbackType": "complete", "task_id": "nobody"}},
        )

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
