from __future__ import annotations

import pytest

from src.songforge.notifications.notifier import InMemoryNotifier, ProgressEvent


def event(job_id: str = "job-1", progress: int = 10, terminal: bool = False) -> ProgressEvent:
    return ProgressEvent(
        job_id=job_id,
        event="progress",
        status="completed" if terminal else "processing",
        progress=progress,
        terminal=terminal,
    )


@pytest.mark.asyncio
async def test_publish_reaches_only_subscribers_of_the_job() -> None:
    notifier = InMemoryNotifier()

    with notifier.subscribe("job-1") as first, notifier.subscribe("job-2") as other:
        await notifier.publish(event("job-1", 30))
        await notifier.publish(event("job-1", 60))

        assert [first.get_nowait().progress, first.get_nowait().progress] == [30, 60]
        assert other.empty()


@pytest.mark.asyncio
async def test_sequence_numbers_increase_per_job() -> None:
    notifier = InMemoryNotifier()

    with notifier.subscribe("job-1") as queue:
        await notifier.publish(event(progress=10))
        await notifier.publish(event(progress=20))
        sequences = [queue.get_nowait().sequence, queue.get_nowait().sequence]

    assert sequences == [1, 2]


@pytest.mark.asyncio
async def test_unsubscribe_on_exit() -> None:
    notifier = InMemoryNotifier()

    with notifier.subscribe("job-1"):
        assert notifier.subscriber_count("job-1") == 1

    assert notifier.subscriber_count("job-1") == 0
    await notifier.publish(event())


@pytest.mark.asyncio
async def test_full_queue_keeps_the_newest_event() -> None:
    notifier = InMemoryNotifier(queue_size=1)

    with notifier.subscribe("job-1") as queue:
        await notifier.publish(event(progress=10))
        await notifier.publish(event(progress=100, terminal=True))

        assert queue.qsize() == 1
        latest = queue.get_nowait()
        assert latest.progress == 100
        assert latest.terminal is True


def test_payload_shape() -> None:
    payload = event(progress=100, terminal=True).as_payload()

    assert payload["type"] == "progress"
    assert payload["terminal"] is True
    assert payload["progress"] == 100
    assert "sent_at" in payload


@pytest.mark.asyncio
async def test_unwatched_jobs_keep_no_sequence_state() -> None:
    notifier = InMemoryNotifier()

    for index in range(5):
        await notifier.publish(event(f"job-{index}"))

    assert dict(notifier._sequences) == {}
    assert dict(notifier._subscribers) == {}

    with notifier.subscribe("job-1") as queue:
        await notifier.publish(event("job-1"))
        assert queue.get_nowait().sequence == 1

    assert dict(notifier._sequences) == {}
