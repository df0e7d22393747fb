"""Normalize provider HTTP failures into the generation error taxonomy."""

from __future__ import annotations

import httpx

from ..generation.generation_errors import (
    AuthenticationFailedError,
    ContentPolicyError,
    DispatchError,
    InsufficientBalanceError,
    MalformedRequestError,
    ProviderError,
    RateLimitedError,
    TransientProviderError,
)

_BALANCE_HINTS = ("credit", "balance", "quota", "insufficient")
_POLICY_HINTS = ("sensitive", "policy", "moderation", "prohibited")


def error_for_status(provider: str, status_code: int, message: str | None) -> ProviderError:
    """Map an HTTP status code (and message hints) to a provider error."""
    detail = (message or "").strip() or f"HTTP {status_code}"
    text = f"{provider} error: {detail}"
    lowered = detail.lower()
    if status_code in (401, 403):
        return AuthenticationFailedError(text)
    if status_code == 402:
        return InsufficientBalanceError(text)
    if status_code == 429:
        if any(hint in lowered for hint in _BALANCE_HINTS):
            return InsufficientBalanceError(text)
        return RateLimitedError(text)
    if status_code == 451 or any(hint in lowered for hint in _POLICY_HINTS):
        return ContentPolicyError(text)
    if status_code in (400, 404, 405, 409, 413, 422):
        return MalformedRequestError(text)
    if status_code >= 500:
        return TransientProviderError(text)
    return DispatchError(text)


def error_for_transport(provider: str, exc: httpx.HTTPError) -> TransientProviderError:
    return TransientProviderError(f"{provider} request failed: {exc.__class__.__name__}: {exc}")


def response_message(response: httpx.Response) -> str:
    """Best-effort human readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        for key in ("msg", "message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return response.text[:200]
