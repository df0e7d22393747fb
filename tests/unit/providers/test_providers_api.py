from __future__ import annotations

from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.songforge.auth.auth_service import TokenVerifier
from src.songforge.generation.generation_errors import AuthenticationFailedError
from src.songforge.generation.generation_models import (
    FailureKind,
    GenerationRequest,
    ProviderName,
    utcnow,
)
from src.songforge.providers.providers_api import router
from src.songforge.providers.providers_suno import SunoAdapter
from tests.helpers.http_stubs import DummyResponse, install_client
from tests.mocks.providers import ScriptedAdapter

VERIFIER = TokenVerifier(signing_key="providers-test-key")


class FailingHealthAdapter(ScriptedAdapter):
    async def check_health(self) -> None:
        raise AuthenticationFailedError("Suno error: invalid api key")


def build_client(adapters, job_repo) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.state.adapters = adapters
    app.state.job_repo = job_repo
    app.state.token_verifier = VERIFIER
    return TestClient(app)


def headers(user_id: str = "user-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {VERIFIER.issue_token(user_id)}"}


def add_job(job_repo, *, user_id: str = "user-1", credits: int, created_hours_ago: float = 1):
    return job_repo.insert(
        user_id=user_id,
        provider=ProviderName.SUNO,
        model="V4_5",
        request=GenerationRequest(prompt="credits"),
        credits_estimate=credits,
        created_at=utcnow() - timedelta(hours=created_hours_ago),
    )


def test_credits_require_a_token(job_repo) -> None:
    client = build_client({}, job_repo)

    response = client.get("/api/providers/credits")

    assert response.status_code == 401


def test_credits_come_from_suno(monkeypatch, job_repo) -> None:
    install_client(monkeypatch, [DummyResponse(200, {"code": 200, "msg": "success", "data": 75})])
    adapters = {ProviderName.SUNO: SunoAdapter(api_key="suno-key", api_base="https://suno.test")}
    client = build_client(adapters, job_repo)

    response = client.get("/api/providers/credits", headers=headers())

    assert response.status_code == 200
    assert response.json() == {"credits": 75, "method": "suno_api", "warning": None}


def test_credits_are_estimated_when_suno_fails(monkeypatch, job_repo) -> None:
    install_client(monkeypatch, [DummyResponse(503, {"msg": "maintenance"})])
    adapters = {ProviderName.SUNO: SunoAdapter(api_key="suno-key", api_base="https://suno.test")}
    add_job(job_repo, credits=30)
    add_job(job_repo, credits=12, created_hours_ago=30)
    add_job(job_repo, user_id="user-2", credits=50)
    failed = add_job(job_repo, credits=40)
    job_repo.fail(failed.id, message="boom", kind=FailureKind.PROVIDER_FAILED)
    client = build_client(adapters, job_repo)

    response = client.get("/api/providers/credits", headers=headers())

    assert response.status_code == 200
    body = response.json()
    assert body["credits"] == 70
    assert body["method"] == "estimated"
    assert body["warning"]


def test_credits_estimate_without_suno_never_goes_negative(job_repo) -> None:
    add_job(job_repo, credits=150)
    client = build_client({ProviderName.MUREKA: ScriptedAdapter(ProviderName.MUREKA)}, job_repo)

    response = client.get("/api/providers/credits", headers=headers())

    assert response.json()["credits"] == 0
    assert response.json()["method"] == "estimated"


def test_health_reports_each_provider(job_repo) -> None:
    adapters = {
        ProviderName.SUNO: FailingHealthAdapter(ProviderName.SUNO),
        ProviderName.MUREKA: ScriptedAdapter(ProviderName.MUREKA),
    }
    client = build_client(adapters, job_repo)

    response = client.get("/api/providers/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "unhealthy"
    by_name = {item["provider"]: item for item in body["providers"]}
    assert by_name["mureka"]["status"] == "healthy"
    assert by_name["suno"]["status"] == "unhealthy"
    assert "invalid api key" in by_name["suno"]["error"]
