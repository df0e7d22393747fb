"""Mureka provider adapter (pull style only)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from ..generation.generation_errors import (
    ContentPolicyError,
    DispatchError,
    GenerationFailedError,
    NoArtifactError,
    TransientProviderError,
)
from ..generation.generation_models import GenerationResult, ProviderName, ProviderRequest
from .providers_base import (
    DispatchReceipt,
    ProviderAdapter,
    ProviderDone,
    ProviderFailed,
    ProviderPending,
    ProviderStatus,
    parse_seconds,
    truncate,
)
from .providers_errors import error_for_status, error_for_transport, response_message

logger = logging.getLogger(__name__)

SONG = "song"
INSTRUMENTAL = "instrumental"

_PENDING_STATES = {
    "preparing": (20, "Preparing at Mureka"),
    "queued": (30, "Queued at Mureka"),
    "running": (50, "Generating at Mureka"),
    "streamed": (80, "Streaming preview ready"),
}
_FAILED_STATES = {"failed", "timeouted", "cancelled"}
_PROMPT_LIMIT = 1024
_LYRICS_LIMIT = 3000


def encode_token(kind: str, task_id: str) -> str:
    return f"{kind}:{task_id}"


def decode_token(token: str) -> tuple[str, str]:
    kind, sep, task_id = token.partition(":")
    if not sep:
        return SONG, token
    if kind not in (SONG, INSTRUMENTAL):
        raise DispatchError(f"Unknown Mureka task token '{token}'")
    return kind, task_id


@dataclass(slots=True)
class MurekaAdapter(ProviderAdapter):
    """Call Mureka song, instrumental and lyrics endpoints."""

    name: ClassVar[ProviderName] = ProviderName.MUREKA
    supports_callbacks: ClassVar[bool] = False

    api_key: str
    api_base: str = "https://api.mureka.ai"
    timeout_seconds: float = 30.0
    log: logging.Logger = field(default_factory=lambda: logger)

    async def dispatch(
        self, request: ProviderRequest, *, callback_url: str | None = None
    ) -> DispatchReceipt:
        generated: str | None = None
        if request.instrumental:
            kind = INSTRUMENTAL
            payload = self.build_instrumental_payload(request)
        else:
            kind = SONG
            lyrics = request.lyrics
            if not lyrics:
                generated = await self.generate_lyrics(request.description)
                lyrics = generated
            payload = self.build_song_payload(request, lyrics=lyrics)

        body = await self._request("POST", f"/v1/{kind}/generate", json=payload)
        task_id = body.get("id")
        if not task_id:
            raise DispatchError("Mureka did not return a task id")
        token = encode_token(kind, str(task_id))
        self.log.info(
            "mureka.task.created",
            extra={"job_id": request.job_id, "task_id": token, "model": request.model},
        )
        return DispatchReceipt(task_id=token, raw=body, generated_lyrics=generated)

    async def fetch_status(self, task_id: str) -> ProviderStatus:
        kind, raw_id = decode_token(task_id)
        body = await self._request("GET", f"/v1/{kind}/query/{raw_id}")
        state = str(body.get("status") or "queued").lower()
        if state in _PENDING_STATES:
            progress, note = _PENDING_STATES[state]
            return ProviderPending(progress=progress, note=note)
        if state == "succeeded":
            result = self._first_choice(body.get("choices") or [], fallback_id=raw_id)
            if result is None:
                return ProviderFailed(NoArtifactError("Mureka finished without a playable audio URL"))
            return ProviderDone(result)
        if state in _FAILED_STATES:
            reason = body.get("failed_reason") or f"task {state}"
            if "moderat" in str(reason).lower() or "sensitive" in str(reason).lower():
                return ProviderFailed(ContentPolicyError(f"Mureka rejected the prompt: {reason}"))
            return ProviderFailed(GenerationFailedError(f"Mureka generation failed: {reason}"))
        return ProviderPending(progress=20, note=f"Mureka status {state}")

    async def generate_lyrics(self, prompt: str) -> str:
        """Synchronous lyrics sub-call; errors propagate so fallback can apply."""
        body = await self._request(
            "POST", "/v1/lyrics/generate", json={"prompt": truncate(prompt, _PROMPT_LIMIT)}
        )
        lyrics = str(body.get("lyrics") or "").strip()
        if not lyrics:
            raise NoArtifactError("Mureka lyrics generation returned no text")
        return lyrics

    def build_song_payload(self, request: ProviderRequest, *, lyrics: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "lyrics": truncate(lyrics, _LYRICS_LIMIT),
            "model": request.model,
            "prompt": truncate(_prompt_for(request), _PROMPT_LIMIT),
        }
        advanced = request.advanced
        if advanced is not None and advanced.reference_track_id:
            payload["reference_id"] = advanced.reference_track_id
        return payload

    def build_instrumental_payload(self, request: ProviderRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "prompt": truncate(_prompt_for(request), _PROMPT_LIMIT),
        }
        advanced = request.advanced
        if advanced is not None and advanced.reference_track_id:
            payload["instrumental_id"] = advanced.reference_track_id
        return payload

    @staticmethod
    def _first_choice(choices: list[Any], *, fallback_id: str) -> GenerationResult | None:
        for choice in choices:
            if not isinstance(choice, dict):
                continue
            url = str(choice.get("url") or "").strip()
            if not url:
                continue
            return GenerationResult(
                audio_uri=url,
                title=choice.get("title") or None,
                duration_seconds=parse_seconds(choice.get("duration"), scale=0.001),
                lyrics=_lyrics_from_sections(choice.get("lyrics_sections")),
                provider_item_id=str(choice.get("id") or fallback_id),
            )
        return None

    async def _request(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        url = f"{self.api_base.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                if method == "POST":
                    response = await client.post(url, headers=headers, json=json)
                else:
                    response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise error_for_transport("Mureka", exc) from exc

        if response.status_code != 200:
            raise error_for_status("Mureka", response.status_code, response_message(response))
        try:
            body = response.json()
        except ValueError as exc:
            raise TransientProviderError("Mureka returned a non-JSON response") from exc
        if not isinstance(body, dict):
            raise TransientProviderError("Mureka returned an unexpected response shape")
        return body


def _prompt_for(request: ProviderRequest) -> str:
    parts = [request.description.strip()]
    if request.style:
        parts.append(request.style.strip())
    advanced = request.advanced
    if advanced is not None:
        if advanced.instruments:
            parts.append("instruments: " + ", ".join(advanced.instruments))
        if advanced.tempo:
            parts.append(f"{advanced.tempo} bpm")
        if advanced.key:
            parts.append(f"key of {advanced.key}")
    return ", ".join(part for part in parts if part)


def _lyrics_from_sections(sections: Any) -> str | None:
    if not isinstance(sections, list):
        return None
    lines: list[str] = []
    for section in sections:
        if not isinstance(section, dict):
            continue
        for line in section.get("lines") or []:
            if isinstance(line, dict) and line.get("text"):
                lines.append(str(line["text"]))
    return "\n".join(lines) or None
