"""Suno provider adapter (sunoapi.org).

Supports both integration styles: a callback URL is registered at dispatch
and ``record-info`` polling serves as the backstop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from ..generation.generation_errors import (
    AuthenticationFailedError,
    ContentPolicyError,
    DispatchError,
    GenerationFailedError,
    InsufficientBalanceError,
    MalformedRequestError,
    NoArtifactError,
    ProviderError,
    RateLimitedError,
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

# record-info status -> (progress, note)
_PENDING_STATES = {
    "PENDING": (30, "Queued at Suno"),
    "TEXT_SUCCESS": (60, "Lyrics and arrangement ready"),
    "FIRST_SUCCESS": (85, "First track ready"),
}
_FAILED_STATES = {
    "CREATE_TASK_FAILED",
    "GENERATE_AUDIO_FAILED",
    "GENERATE_LYRICS_FAILED",
    "CALLBACK_EXCEPTION",
}
_LEGACY_MODELS = {"V3_5", "V4"}
_NON_CUSTOM_PROMPT_LIMIT = 500
_LYRICS_PROMPT_LIMIT = 200


@dataclass(slots=True)
class SunoLimits:
    title: int
    style: int
    prompt: int


def limits_for_model(model: str) -> SunoLimits:
    if model in _LEGACY_MODELS:
        return SunoLimits(title=80, style=200, prompt=3000)
    return SunoLimits(title=100, style=1000, prompt=5000)


def error_for_code(code: int, message: str | None) -> ProviderError:
    """Map the ``code`` field of a Suno envelope to a provider error."""
    text = f"Suno error: {(message or '').strip() or f'code {code}'}"
    if code == 401:
        return AuthenticationFailedError(text)
    if code == 429:
        return InsufficientBalanceError(text)
    if code in (405, 430):
        return RateLimitedError(text)
    if code == 451 or "sensitive" in text.lower():
        return ContentPolicyError(text)
    if code in (400, 404, 413, 422):
        return MalformedRequestError(text)
    if code == 455 or code >= 500:
        return TransientProviderError(text)
    return DispatchError(text)


def envelope_code(raw: Any) -> int:
    """Read the envelope ``code``; a missing code means success."""
    if raw is None:
        return 200
    if isinstance(raw, bool):
        raise TransientProviderError(f"Suno returned an unreadable status code {raw!r}")
    try:
        return int(str(raw).strip())
    except ValueError:
        raise TransientProviderError(
            f"Suno returned an unreadable status code {raw!r}"
        ) from None


def parse_credits(body: dict[str, Any]) -> int | None:
    """Remaining credits from a credit envelope, or ``None`` if no field is numeric."""
    for key in ("data", "credits", "remaining"):
        value = body.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return max(0, int(float(value)))
        except (TypeError, ValueError, OverflowError):
            continue
    return None


def extract_task_id(data: Any) -> str | None:
    """Find the task id across the shapes Suno responses have used."""
    if isinstance(data, list):
        return extract_task_id(data[0]) if data else None
    if isinstance(data, dict):
        for key in ("taskId", "task_id", "id"):
            value = data.get(key)
            if value:
                return str(value)
    return None


def parse_track(entry: dict[str, Any]) -> GenerationResult | None:
    """Build a result from a track entry (callback or record-info shape)."""
    audio = (
        entry.get("audio_url")
        or entry.get("audioUrl")
        or entry.get("source_audio_url")
        or entry.get("sourceAudioUrl")
        or ""
    )
    audio = str(audio).strip()
    if not audio:
        return None
    return GenerationResult(
        audio_uri=audio,
        title=entry.get("title") or None,
        duration_seconds=parse_seconds(entry.get("duration")),
        lyrics=entry.get("prompt") or None,
        image_uri=entry.get("image_url") or entry.get("imageUrl") or None,
        provider_item_id=str(entry["id"]) if entry.get("id") else None,
        tags=entry.get("tags") or None,
    )


def first_playable(entries: Iterable[dict[str, Any]]) -> GenerationResult | None:
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        result = parse_track(entry)
        if result is not None:
            return result
    return None


def extract_lyrics_text(entry: dict[str, Any]) -> str | None:
    for key in ("text", "lyrics", "content", "lyric_text"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    prompt = entry.get("prompt")
    if isinstance(prompt, str) and "[Verse" in prompt:
        return prompt.strip()
    return None


@dataclass(slots=True)
class SunoAdapter(ProviderAdapter):
    """Call sunoapi.org generate, lyrics and record-info endpoints."""

    name: ClassVar[ProviderName] = ProviderName.SUNO
    supports_callbacks: ClassVar[bool] = True

    api_key: str
    api_base: str = "https://api.sunoapi.org"
    timeout_seconds: float = 30.0
    lyrics_poll_interval_seconds: float = 3.0
    lyrics_max_attempts: int = 20
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    log: logging.Logger = field(default_factory=lambda: logger)

    async def dispatch(
        self, request: ProviderRequest, *, callback_url: str | None = None
    ) -> DispatchReceipt:
        lyrics = request.lyrics
        generated: str | None = None
        lyrics_task_id: str | None = None
        if not request.instrumental and not lyrics:
            lyrics_task_id, generated = await self._generate_lyrics(
                request.description, callback_url=callback_url, job_id=request.job_id
            )

        payload = self.build_generate_payload(
            request, lyrics=lyrics or generated, callback_url=callback_url
        )
        body = await self._request("POST", "/api/v1/generate", json=payload)
        task_id = extract_task_id(body.get("data"))
        if not task_id:
            raise DispatchError("Suno did not return a task id")
        self.log.info(
            "suno.task.created",
            extra={
                "job_id": request.job_id,
                "task_id": task_id,
                "custom_mode": payload["customMode"],
                "instrumental": request.instrumental,
            },
        )
        return DispatchReceipt(
            task_id=task_id,
            raw=body,
            generated_lyrics=generated,
            lyrics_task_id=lyrics_task_id,
        )

    async def fetch_status(self, task_id: str) -> ProviderStatus:
        body = await self._request(
            "GET", "/api/v1/generate/record-info", params={"taskId": task_id}
        )
        data = body.get("data") or {}
        state = str(data.get("status") or "PENDING").upper()
        if state in _PENDING_STATES:
            progress, note = _PENDING_STATES[state]
            return ProviderPending(progress=progress, note=note)
        message = data.get("errorMessage") or data.get("errorCode") or state
        if state == "SUCCESS":
            response = data.get("response") or {}
            tracks = response.get("sunoData") or response.get("data") or []
            result = first_playable(tracks)
            if result is None:
                return ProviderFailed(NoArtifactError("Suno finished without a playable audio URL"))
            return ProviderDone(result)
        if state == "SENSITIVE_WORD_ERROR":
            return ProviderFailed(ContentPolicyError(f"Suno rejected the prompt: {message}"))
        if state in _FAILED_STATES or state.endswith(("_FAILED", "_EXCEPTION", "_ERROR")):
            return ProviderFailed(GenerationFailedError(f"Suno generation failed: {message}"))
        return ProviderPending(progress=20, note=f"Suno status {state}")

    async def fetch_credits(self) -> int:
        """Remaining sunoapi.org credits for the configured key."""
        body = await self._request("GET", "/api/v1/generate/credit")
        credits = parse_credits(body)
        if credits is None:
            raise TransientProviderError("Suno returned an unreadable credit balance")
        return credits

    async def check_health(self) -> None:
        await self.fetch_credits()

    async def request_lyrics(self, prompt: str, *, callback_url: str | None) -> str:
        """Start a lyrics task and return its id; completion arrives by callback."""
        payload: dict[str, Any] = {"prompt": truncate(prompt, _LYRICS_PROMPT_LIMIT)}
        if callback_url:
            payload["callBackUrl"] = callback_url
        body = await self._request("POST", "/api/v1/lyrics", json=payload)
        task_id = extract_task_id(body.get("data"))
        if not task_id:
            raise DispatchError("Suno did not return a lyrics task id")
        return task_id

    async def fetch_lyrics(self, task_id: str) -> str | None:
        """Return lyrics text when ready, ``None`` while pending."""
        body = await self._request(
            "GET", "/api/v1/lyrics/record-info", params={"taskId": task_id}
        )
        data = body.get("data") or {}
        state = str(data.get("status") or "PENDING").upper()
        response = data.get("response") or {}
        entries = response.get("data") or response.get("lyricsData") or []
        for entry in entries:
            if isinstance(entry, dict):
                text = extract_lyrics_text(entry)
                if text:
                    return text
        if state == "SENSITIVE_WORD_ERROR":
            raise ContentPolicyError("Suno rejected the lyrics prompt")
        if state.endswith(("_FAILED", "_EXCEPTION", "_ERROR")):
            raise GenerationFailedError(f"Suno lyrics failed: {data.get('errorMessage') or state}")
        if state == "SUCCESS":
            raise NoArtifactError("Suno lyrics finished without text")
        return None

    def build_generate_payload(
        self,
        request: ProviderRequest,
        *,
        lyrics: str | None,
        callback_url: str | None,
    ) -> dict[str, Any]:
        limits = limits_for_model(request.model)
        style = _style_for(request)
        payload: dict[str, Any] = {"model": request.model}
        if callback_url:
            payload["callBackUrl"] = callback_url

        if request.instrumental:
            # instrumental: no prompt or lyrics key, the description rides in style
            combined = ", ".join(part for part in (style, request.description) if part)
            payload.update(
                customMode=True,
                instrumental=True,
                style=truncate(combined, limits.style),
                title=truncate(request.title, limits.title),
            )
        elif lyrics:
            payload.update(
                customMode=True,
                instrumental=False,
                prompt=truncate(lyrics, limits.prompt),
                style=truncate(style or request.description, limits.style),
                title=truncate(request.title, limits.title),
            )
        else:
            payload.update(
                customMode=False,
                instrumental=False,
                prompt=truncate(request.description, _NON_CUSTOM_PROMPT_LIMIT),
            )
        return payload

    async def _generate_lyrics(
        self, description: str, *, callback_url: str | None, job_id: str
    ) -> tuple[str | None, str | None]:
        """Run the lyrics sub-call; failures leave the generation without lyrics."""
        try:
            task_id = await self.request_lyrics(description, callback_url=callback_url)
        except ProviderError as exc:
            self.log.warning(
                "suno.lyrics.dispatch_failed",
                extra={"job_id": job_id, "error": str(exc)},
            )
            return None, None

        for attempt in range(1, self.lyrics_max_attempts + 1):
            await self.sleep(self.lyrics_poll_interval_seconds)
            try:
                text = await self.fetch_lyrics(task_id)
            except TransientProviderError:
                continue
            except ProviderError as exc:
                self.log.warning(
                    "suno.lyrics.failed",
                    extra={"job_id": job_id, "task_id": task_id, "error": str(exc)},
                )
                return task_id, None
            if text:
                self.log.info(
                    "suno.lyrics.ready",
                    extra={"job_id": job_id, "task_id": task_id, "attempt": attempt},
                )
                return task_id, text

        self.log.warning(
            "suno.lyrics.timeout",
            extra={"job_id": job_id, "task_id": task_id, "attempts": self.lyrics_max_attempts},
        )
        return task_id, None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
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
                    response = await client.get(url, headers=headers, params=params)
        except httpx.HTTPError as exc:
            raise error_for_transport("Suno", exc) from exc

        if response.status_code != 200:
            raise error_for_status("Suno", response.status_code, response_message(response))
        try:
            body = response.json()
        except ValueError as exc:
            raise TransientProviderError("Suno returned a non-JSON response") from exc
        if not isinstance(body, dict):
            raise TransientProviderError("Suno returned an unexpected response shape")
        code = envelope_code(body.get("code"))
        if code != 200:
            raise error_for_code(code, body.get("msg"))
        return body


def _style_for(request: ProviderRequest) -> str:
    parts: list[str] = []
    if request.style:
        parts.append(request.style.strip())
    advanced = request.advanced
    if advanced is not None:
        parts.extend(instrument.strip() for instrument in advanced.instruments if instrument.strip())
        if advanced.tempo:
            parts.append(f"{advanced.tempo} bpm")
        if advanced.key:
            parts.append(f"key of {advanced.key}")
    if request.language and not request.instrumental:
        parts.append(f"sung in {request.language}")
    return ", ".join(part for part in parts if part)
