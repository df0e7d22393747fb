from __future__ import annotations

from datetime import timedelta

import pytest

from src.songforge.generation.generation_errors import (
    AuthenticationFailedError,
    ContentPolicyError,
    GenerationValidationError,
    InsufficientBalanceError,
    JobNotFoundError,
)
from src.songforge.generation.generation_models import (
    AdvancedOptions,
    FailureKind,
    GenerationFailed,
    GenerationRequest,
    GenerationResult,
    GenerationSucceeded,
    JobStatus,
    LyricsStatus,
    ProviderName,
)
from src.songforge.providers.providers_base import DispatchReceipt
from tests.conftest import CALLBACK_URL, MEDIA_BASE_URL
from tests.mocks.providers import ScriptedAdapter


def suno(**kwargs) -> ScriptedAdapter:
    return ScriptedAdapter(ProviderName.SUNO, supports_callbacks=True, **kwargs)


def mureka(**kwargs) -> ScriptedAdapter:
    return ScriptedAdapter(ProviderName.MUREKA, **kwargs)


@pytest.mark.asyncio
async def test_submit_returns_pending_job_then_dispatches(make_orchestrator, job_repo, clock):
    adapter = suno()
    orchestrator = make_orchestrator(adapter)

    job = await orchestrator.submit("user-1", GenerationRequest(prompt="calm piano at dusk"))

    assert job.status is JobStatus.PENDING
    assert job.progress == 0
    assert job.provider is ProviderName.SUNO
    assert job.model == "V4_5"
    assert job.credits_estimate == 20

    await orchestrator.drain()

    stored = job_repo.get(job.id)
    assert stored.status is JobStatus.PROCESSING
    assert stored.provider_task_id == "suno-task-1"
    assert stored.progress == 10
    assert stored.next_poll_at == clock.now + timedelta(seconds=5)
    assert adapter.callback_urls == [CALLBACK_URL]
    assert adapter.requests[0].title == "calm piano at dusk"


@pytest.mark.asyncio
async def test_pull_only_provider_gets_no_callback_url(make_orchestrator):
    adapter = mureka()
    orchestrator = make_orchestrator(adapter)

    await orchestrator.submit(
        "user-1", GenerationRequest(prompt="ambient pads", provider=ProviderName.MUREKA)
    )
    await orchestrator.drain()

    assert adapter.callback_urls == [None]


@pytest.mark.asyncio
async def test_advanced_options_route_to_mureka(make_orchestrator):
    orchestrator = make_orchestrator(suno(), mureka())
    request = GenerationRequest(
        prompt="jazz trio", advanced=AdvancedOptions(instruments=["upright bass"])
    )

    job = await orchestrator.submit("user-1", request)
    await orchestrator.drain()

    assert job.provider is ProviderName.MUREKA
    assert job.model == "auto"


@pytest.mark.asyncio
@pytest.mark.parametrize("prompt", ["", "   ", "x" * 3001])
async def test_submit_rejects_invalid_prompt(make_orchestrator, job_repo, prompt):
    orchestrator = make_orchestrator(suno())

    with pytest.raises(GenerationValidationError):
        await orchestrator.submit("user-1", GenerationRequest(prompt=prompt))

    assert job_repo.list_for_user("user-1") == []


@pytest.mark.asyncio
async def test_dispatch_auth_failure_without_fallback_fails_job(make_orchestrator, job_repo, artifact_repo):
    adapter = suno(dispatches=[AuthenticationFailedError("Suno error: invalid api key")])
    orchestrator = make_orchestrator(adapter)

    job = await orchestrator.submit("user-1", GenerationRequest(prompt="rainy day blues"))
    await orchestrator.drain()

    stored = job_repo.get(job.id)
    assert stored.status is JobStatus.FAILED
    assert stored.failure_kind is FailureKind.AUTHENTICATION
    assert "invalid api key" in stored.error_message
    assert stored.artifact_id is None
    assert stored.fallback_attempted is False
    assert artifact_repo.list_for_user("user-1") == []


@pytest.mark.asyncio
async def test_dispatch_failure_falls_back_to_other_provider(make_orchestrator, job_repo):
    primary = suno(dispatches=[InsufficientBalanceError("Suno error: credits exhausted")])
    secondary = mureka()
    orchestrator = make_orchestrator(primary, secondary)

    job = await orchestrator.submit("user-1", GenerationRequest(prompt="synthwave chase"))
    await orchestrator.drain()

    stored = job_repo.get(job.id)
    assert stored.status is JobStatus.PROCESSING
    assert stored.provider is ProviderName.MUREKA
    assert stored.model == "auto"
    assert stored.fallback_attempted is True
    assert stored.providers_tried == ["suno", "mureka"]
    assert stored.provider_task_id == "mureka-task-1"
    assert len(secondary.requests) == 1


@pytest.mark.asyncio
async def test_fallback_is_attempted_only_once(make_orchestrator, job_repo):
    primary = suno(dispatches=[InsufficientBalanceError("no credits")])
    secondary = mureka(dispatches=[AuthenticationFailedError("bad key")])
    orchestrator = make_orchestrator(primary, secondary)

    job = await orchestrator.submit("user-1", GenerationRequest(prompt="lofi beats"))
    await orchestrator.drain()

    stored = job_repo.get(job.id)
    assert stored.status is JobStatus.FAILED
    assert stored.failure_kind is FailureKind.AUTHENTICATION
    assert stored.fallback_attempted is True
    assert len(primary.requests) == 1
    assert len(secondary.requests) == 1


@pytest.mark.asyncio
async def test_content_policy_failure_skips_fallback(make_orchestrator, job_repo):
    secondary = mureka()
    orchestrator = make_orchestrator(
        suno(dispatches=[ContentPolicyError("sensitive words")]), secondary
    )

    job = await orchestrator.submit("user-1", GenerationRequest(prompt="something banned"))
    await orchestrator.drain()

    stored = job_repo.get(job.id)
    assert stored.status is JobStatus.FAILED
    assert stored.failure_kind is FailureKind.CONTENT_POLICY
    assert secondary.requests == []


@pytest.mark.asyncio
async def test_request_can_opt_out_of_fallback(make_orchestrator, job_repo):
    secondary = mureka()
    orchestrator = make_orchestrator(
        suno(dispatches=[InsufficientBalanceError("no credits")]), secondary
    )

    job = await orchestrator.submit(
        "user-1", GenerationRequest(prompt="folk ballad", allow_fallback=False)
    )
    await orchestrator.drain()

    assert job_repo.get(job.id).status is JobStatus.FAILED
    assert secondary.requests == []


@pytest.mark.asyncio
async def test_dispatch_with_lyrics_task_records_lyrics(make_orchestrator, lyrics_repo, job_repo):
    receipt = DispatchReceipt(
        task_id="gen-1",
        raw={"code": 200},
        generated_lyrics="[Verse]\nneon rain",
        lyrics_task_id="lyr-1",
    )
    orchestrator = make_orchestrator(suno(dispatches=[receipt]))

    job = await orchestrator.submit("user-1", GenerationRequest(prompt="city pop"))
    await orchestrator.drain()

    record = lyrics_repo.find_by_task("lyr-1")
    assert record is not None
    assert record.job_id == job.id
    assert record.status is LyricsStatus.COMPLETED
    assert job_repo.get(job.id).generated_lyrics == "[Verse]\nneon rain"


@pytest.mark.asyncio
async def test_finalize_success_is_idempotent(make_orchestrator, job_repo, artifact_repo):
    orchestrator = make_orchestrator(suno())
    job = await orchestrator.submit("user-1", GenerationRequest(prompt="sunrise anthem"))
    await orchestrator.drain()
    outcome = GenerationSucceeded(
        GenerationResult(audio_uri="https://cdn.suno.test/a.mp3", duration_seconds=118.0)
    )

    first = await orchestrator.finalize(job.id, outcome)
    second = await orchestrator.finalize(job.id, outcome)
    late_failure = await orchestrator.finalize(job.id, GenerationFailed("late error"))

    assert (first, second, late_failure) == (True, False, False)
    stored = job_repo.get(job.id)
    assert stored.status is JobStatus.COMPLETED
    assert stored.progress == 100
    artifacts = artifact_repo.list_for_user("user-1")
    assert len(artifacts) == 1
    assert artifacts[0].id == stored.artifact_id
    assert artifacts[0].title == "sunrise anthem"
    assert artifacts[0].duration_seconds == 118.0


@pytest.mark.asyncio
async def test_finalize_stores_inline_audio_bytes(make_orchestrator, artifact_repo, blob_store):
    orchestrator = make_orchestrator(suno())
    job = await orchestrator.submit("user-1", GenerationRequest(prompt="drum loop"))
    await orchestrator.drain()

    await orchestrator.finalize(
        job.id,
        GenerationSucceeded(GenerationResult(audio_bytes=b"ID3-audio", content_type="audio/mpeg")),
    )

    artifact = artifact_repo.list_for_user("user-1")[0]
    assert artifact.audio_uri.startswith(f"{MEDIA_BASE_URL}/audio/")
    key = artifact.audio_uri.rsplit("/", 1)[-1]
    assert key.endswith(".mp3")
    assert blob_store.path_for(key).read_bytes() == b"ID3-audio"


@pytest.mark.asyncio
async def test_finalize_without_audio_fails_with_no_artifact(make_orchestrator, job_repo, artifact_repo):
    orchestrator = make_orchestrator(suno())
    job = await orchestrator.submit("user-1", GenerationRequest(prompt="empty result"))
    await orchestrator.drain()

    updated = await orchestrator.finalize(
        job.id, GenerationSucceeded(GenerationResult(audio_uri="", audio_bytes=b""))
    )

    assert updated is True
    stored = job_repo.get(job.id)
    assert stored.status is JobStatus.FAILED
    assert stored.failure_kind is FailureKind.NO_ARTIFACT
    assert artifact_repo.list_for_user("user-1") == []


@pytest.mark.asyncio
async def test_finalize_unknown_job_raises(make_orchestrator):
    orchestrator = make_orchestrator(suno())

    with pytest.raises(JobNotFoundError):
        await orchestrator.finalize("missing", GenerationFailed("boom"))


@pytest.mark.asyncio
async def test_progress_never_moves_backwards(make_orchestrator, job_repo):
    orchestrator = make_orchestrator(suno())
    job = await orchestrator.submit("user-1", GenerationRequest(prompt="slow build"))
    await orchestrator.drain()

    assert await orchestrator.record_progress(job.id, 70, "callback") is True
    assert await orchestrator.record_progress(job.id, 40, "poll") is False
    assert job_repo.get(job.id).progress == 70

    await orchestrator.finalize(job.id, GenerationFailed("provider failed"))
    assert await orchestrator.record_progress(job.id, 90) is False
    assert job_repo.get(job.id).progress == 70


@pytest.mark.asyncio
async def test_terminal_transition_publishes_terminal_event(make_orchestrator, notifier):
    orchestrator = make_orchestrator(suno())
    job = await orchestrator.submit("user-1", GenerationRequest(prompt="notify me"))
    await orchestrator.drain()

    with notifier.subscribe(job.id) as queue:
        await orchestrator.record_progress(job.id, 50)
        await orchestrator.finalize(
            job.id, GenerationSucceeded(GenerationResult(audio_uri="https://cdn.test/x.mp3"))
        )
        progress_event = queue.get_nowait()
        terminal_event = queue.get_nowait()

    assert progress_event.progress == 50
    assert progress_event.terminal is False
    assert terminal_event.event == "completed"
    assert terminal_event.terminal is True
    assert terminal_event.artifact_id is not None
    assert terminal_event.sequence > progress_event.sequence


@pytest.mark.asyncio
async def test_sweep_fails_jobs_nothing_will_move(make_orchestrator, job_repo, clock):
    orchestrator = make_orchestrator(suno())
    request = GenerationRequest(prompt="stuck")
    stale_pending = job_repo.insert(
        user_id="user-1",
        provider=ProviderName.SUNO,
        model="V4_5",
        request=request,
        credits_estimate=20,
        created_at=clock.now - timedelta(minutes=45),
    )
    fresh_pending = job_repo.insert(
        user_id="user-1",
        provider=ProviderName.SUNO,
        model="V4_5",
        request=request,
        credits_estimate=20,
        created_at=clock.now - timedelta(minutes=5),
    )

    swept = await orchestrator.sweep_stuck(pending_minutes=30, processing_minutes=15)

    assert swept == [stale_pending.id]
    stored = job_repo.get(stale_pending.id)
    assert stored.status is JobStatus.FAILED
    assert stored.failure_kind is FailureKind.TIMEOUT
    assert job_repo.get(fresh_pending.id).status is JobStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_hides_job_from_listing(make_orchestrator):
    orchestrator = make_orchestrator(suno())
    job = await orchestrator.submit("user-1", GenerationRequest(prompt="to be hidden"))
    await orchestrator.drain()

    orchestrator.cancel(job.id, user_id="user-1")

    assert orchestrator.list_jobs("user-1") == []
    assert orchestrator.get_status(job.id, user_id="user-1").id == job.id


@pytest.mark.asyncio
async def test_get_status_hides_other_users_jobs(make_orchestrator):
    orchestrator = make_orchestrator(suno())
    job = await orchestrator.submit("user-1", GenerationRequest(prompt="private"))
    await orchestrator.drain()

    with pytest.raises(JobNotFoundError):
        orchestrator.get_status(job.id, user_id="user-2")
