"""WebSocket stream of live progress for one generation job."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.websockets import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from ..auth.auth_service import AuthError, TokenVerifier
from ..generation.generation_errors import JobNotFoundError
from ..generation.generation_models import utcnow
from ..generation.generation_service import GenerationOrchestrator
from .notifier import ProgressEvent, ProgressNotifier

router = APIRouter(prefix="/ws", tags=["notifications"])
logger = structlog.get_logger(__name__)

HEARTBEAT_INTERVAL = 15.0


@router.websocket("/generations/{job_id}")
async def generation_updates(websocket: WebSocket, job_id: str) -> None:
    state = websocket.app.state
    verifier: TokenVerifier | None = getattr(state, "token_verifier", None)
    orchestrator: GenerationOrchestrator | None = getattr(state, "orchestrator", None)
    notifier: ProgressNotifier | None = getattr(state, "notifier", None)
    if verifier is None or orchestrator is None or notifier is None:
        await _reject(websocket, code=status.WS_1011_INTERNAL_ERROR, reason="Updates unavailable")
        return

    token = websocket.query_params.get("token") or ""
    try:
        user_id = verifier.user_id_for(token)
    except AuthError:
        await _reject(websocket, code=status.WS_1008_POLICY_VIOLATION, reason="Not authorised")
        return

    try:
        job = orchestrator.get_status(job_id, user_id=user_id)
    except JobNotFoundError:
        await _reject(websocket, code=status.WS_1008_POLICY_VIOLATION, reason="Job not found")
        return

    with notifier.subscribe(job_id) as queue:
        await websocket.accept()
        snapshot = ProgressEvent.from_job(job, event="snapshot")
        await websocket.send_json(snapshot.as_payload())
        if snapshot.terminal:
            await websocket.close(code=status.WS_1000_NORMAL_CLOSURE)
            logger.info("ws.terminal_snapshot", job_id=job_id, user_id=user_id)
            return

        logger.info("ws.connected", job_id=job_id, user_id=user_id)
        disconnect = asyncio.ensure_future(_wait_for_disconnect(websocket))
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {getter, disconnect},
                    timeout=HEARTBEAT_INTERVAL,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if disconnect in done:
                    getter.cancel()
                    logger.info("ws.client_disconnected", job_id=job_id, user_id=user_id)
                    break
                if getter not in done:
                    getter.cancel()
                    if not await _send_safe(websocket, _heartbeat_payload()):
                        break
                    continue
                event = getter.result()
                if event.progress < snapshot.progress and not event.terminal:
                    continue
                if not await _send_safe(websocket, event.as_payload()):
                    logger.info("ws.send_failed", job_id=job_id, user_id=user_id)
                    break
                if event.terminal:
                    await websocket.close(code=status.WS_1000_NORMAL_CLOSURE)
                    logger.info("ws.terminal_update", job_id=job_id, user_id=user_id)
                    break
        except WebSocketDisconnect:
            logger.info("ws.client_disconnected", job_id=job_id, user_id=user_id)
        finally:
            disconnect.cancel()


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _reject(websocket: WebSocket, *, code: int, reason: str | None = None) -> None:
    if websocket.client_state is WebSocketState.DISCONNECTED:
        return
    try:
        await websocket.close(code=code, reason=reason)
    except RuntimeError:
        return


async def _send_safe(websocket: WebSocket, payload: dict[str, Any]) -> bool:
    if websocket.client_state is not WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(payload)
    except RuntimeError:
        return False
    return True


def _heartbeat_payload() -> dict[str, Any]:
    return {"type": "heartbeat", "sent_at": utcnow().isoformat()}
