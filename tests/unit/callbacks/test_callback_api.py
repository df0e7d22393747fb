from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.songforge.callbacks.callback_api import router
from src.songforge.callbacks.callback_schemas import CallbackAck, SunoCallbackPayload
from src.songforge.callbacks.callback_service import MalformedCallbackError


class StubReceiver:
    def __init__(self) -> None:
        self.payloads: list[SunoCallbackPayload] = []

    async def handle(self, payload: SunoCallbackPayload) -> CallbackAck:
        self.payloads.append(payload)
        if payload.task_id is None:
            raise MalformedCallbackError("Callback payload carries no task id")
        return CallbackAck(status="processed", job_id="job-1", action="progress")


def build_client(receiver: StubReceiver) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.state.callback_receiver = receiver
    return TestClient(app)


def test_callback_is_acknowledged() -> None:
    receiver = StubReceiver()
    client = build_client(receiver)

    response = client.post(
        "/api/callbacks/suno",
        json={"code": 200, "msg": "ok", "data": {"callbackType": "text", "taskId": "abc"}},
    )

    assert response.status_code == 200
    assert response.json() == {
        "status": "processed",
        "job_id": "job-1",
        "lyrics_id": None,
        "action": "progress",
    }
    assert receiver.payloads[0].task_id == "abc"
    assert receiver.payloads[0].callback_type == "text"


def test_invalid_json_is_rejected() -> None:
    client = build_client(StubReceiver())

    response = client.post(
        "/api/callbacks/suno",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["failure_reason"] == "invalid_request"


def test_non_object_body_is_rejected() -> None:
    client = build_client(StubReceiver())

    response = client.post("/api/callbacks/suno", json=["a", "b"])

    assert response.status_code == 400


def test_payload_with_wrong_shape_is_rejected() -> None:
    client = build_client(StubReceiver())

    response = client.post("/api/callbacks/suno", json={"code": "abc", "data": {}})

    assert response.status_code == 400
    assert "schema" in response.json()["detail"]["details"]


def test_callback_without_task_id_is_rejected() -> None:
    receiver = StubReceiver()
    client = build_client(receiver)

    response = client.post(
        "/api/callbacks/suno", json={"code": 200, "data": {"callbackType": "complete"}}
    )

    assert response.status_code == 400
    assert response.json()["detail"]["details"] == "Callback payload carries no task id"
