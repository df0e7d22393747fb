"""Provider selection rules.

Pure functions only: no I/O, same inputs always give the same provider.
"""

from __future__ import annotations

from .generation_models import GenerationRequest, ProviderName

DEFAULT_LONG_PROMPT_THRESHOLD = 400


def select_provider(
    preference: ProviderName | str,
    *,
    has_advanced_options: bool = False,
    has_reference_material: bool = False,
    wants_vocals: bool = False,
    prompt_length: int = 0,
    baseline: ProviderName | str = ProviderName.SUNO,
    long_prompt_threshold: int = DEFAULT_LONG_PROMPT_THRESHOLD,
) -> ProviderName:
    """Map request attributes to a concrete provider."""
    choice = ProviderName(preference)
    if choice is not ProviderName.AUTO:
        return choice
    if has_advanced_options or has_reference_material:
        return ProviderName.MUREKA
    if wants_vocals and prompt_length > long_prompt_threshold:
        return ProviderName.SUNO
    fallback = ProviderName(baseline)
    if fallback is ProviderName.AUTO:
        return ProviderName.SUNO
    return fallback


def select_for_request(
    request: GenerationRequest,
    *,
    baseline: ProviderName | str = ProviderName.SUNO,
    long_prompt_threshold: int = DEFAULT_LONG_PROMPT_THRESHOLD,
) -> ProviderName:
    advanced = request.advanced
    return select_provider(
        request.provider,
        has_advanced_options=bool(advanced and advanced.has_instrumentation()),
        has_reference_material=bool(advanced and advanced.reference_track_id),
        wants_vocals=not request.instrumental,
        prompt_length=len(request.prompt.strip()),
        baseline=baseline,
        long_prompt_threshold=long_prompt_threshold,
    )


def fallback_for(provider: ProviderName | str) -> ProviderName:
    """Return the provider that takes over when ``provider`` fails."""
    if ProviderName(provider) is ProviderName.MUREKA:
        return ProviderName.SUNO
    return ProviderName.MUREKA
