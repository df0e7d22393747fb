"""HTTP route receiving provider push notifications."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from ..exceptions import RepositoryError
from ..generation.generation_models import FailureKind
from .callback_schemas import CallbackAck, SunoCallbackPayload
from .callback_service import CallbackReceiver, MalformedCallbackError

router = APIRouter(prefix="/api/callbacks", tags=["callbacks"])
logger = logging.getLogger(__name__)


def get_callback_receiver(request: Request) -> CallbackReceiver:
    try:
        return request.app.state.callback_receiver  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("CallbackReceiver is not configured") from exc


def _bad_request(details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "status": "error",
            "failure_reason": FailureKind.INVALID_REQUEST.value,
            "details": details,
        },
    )


@router.post("/suno", response_model=CallbackAck)
async def receive_suno_callback(
    request: Request,
    receiver: CallbackReceiver = Depends(get_callback_receiver),
) -> CallbackAck:
    """Acknowledge every well-formed callback, matched or not."""
    raw = await request.body()
    try:
        body = json.loads(raw or b"null")
    except json.JSONDecodeError as exc:
        logger.warning("callback.invalid_json", extra={"size": len(raw)})
        raise _bad_request("body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise _bad_request("body must be a JSON object")

    try:
        payload = SunoCallbackPayload.model_validate(body)
    except ValidationError as exc:
        logger.warning("callback.invalid_payload", extra={"errors": exc.errors()})
        raise _bad_request("payload does not match the callback schema") from exc

    try:
        return await receiver.handle(payload)
    except MalformedCallbackError as exc:
        raise _bad_request(str(exc)) from exc
    except RepositoryError as exc:
        logger.exception("callback.storage_error", extra={"task_id": payload.task_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"status": "error", "failure_reason": FailureKind.INTERNAL.value},
        ) from exc
