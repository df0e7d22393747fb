"""Credit estimates, default models and derived titles per provider."""

from __future__ import annotations

import math

from .generation_models import ProviderName

DEFAULT_DURATION_SECONDS = 120

_CREDITS_PER_BLOCK = {
    ProviderName.SUNO: 5,
    ProviderName.MUREKA: 8,
}
_DEFAULT_MODELS = {
    ProviderName.SUNO: "V4_5",
    ProviderName.MUREKA: "auto",
}


def estimate_credits(provider: ProviderName | str, duration: int | None) -> int:
    """Credits charged per started 30 second block of audio."""
    seconds = duration or DEFAULT_DURATION_SECONDS
    blocks = math.ceil(seconds / 30)
    return blocks * _CREDITS_PER_BLOCK.get(ProviderName(provider), 0)


def estimate_seconds(provider: ProviderName | str, duration: int | None) -> int:
    seconds = duration or DEFAULT_DURATION_SECONDS
    if ProviderName(provider) is ProviderName.MUREKA:
        return int(max(90, seconds * 2.5))
    return int(max(60, seconds * 2))


def default_model(provider: ProviderName | str) -> str:
    return _DEFAULT_MODELS.get(ProviderName(provider), "auto")


def derive_title(prompt: str, *, limit: int = 80) -> str:
    """First five words of the prompt, capped at ``limit`` characters."""
    words = prompt.split()[:5]
    title = " ".join(words) or "Untitled"
    return title[:limit].rstrip()
