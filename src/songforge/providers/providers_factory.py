"""Factory for provider adapters."""

from __future__ import annotations

import logging

from ..config import ProviderCredentials
from ..generation.generation_models import ProviderName
from .providers_base import ProviderAdapter
from .providers_mureka import MurekaAdapter
from .providers_suno import SunoAdapter

logger = logging.getLogger(__name__)


def create_adapter(name: ProviderName | str, *, credentials: ProviderCredentials) -> ProviderAdapter:
    """Instantiate an adapter by provider name."""
    provider = ProviderName(str(name).lower())
    if provider is ProviderName.SUNO:
        if not credentials.suno_api_key:
            raise ValueError("SUNO_API_KEY is required to instantiate SunoAdapter")
        return SunoAdapter(
            api_key=credentials.suno_api_key,
            api_base=credentials.suno_api_base,
            timeout_seconds=credentials.timeout_seconds,
        )
    if provider is ProviderName.MUREKA:
        if not credentials.mureka_api_key:
            raise ValueError("MUREKA_API_KEY is required to instantiate MurekaAdapter")
        return MurekaAdapter(
            api_key=credentials.mureka_api_key,
            api_base=credentials.mureka_api_base,
            timeout_seconds=credentials.timeout_seconds,
        )
    raise ValueError(f"Unsupported provider '{name}'")


def create_adapters(credentials: ProviderCredentials) -> dict[ProviderName, ProviderAdapter]:
    """Build every adapter whose API key is configured."""
    adapters: dict[ProviderName, ProviderAdapter] = {}
    for provider in (ProviderName.SUNO, ProviderName.MUREKA):
        try:
            adapters[provider] = create_adapter(provider, credentials=credentials)
        except ValueError as exc:
            logger.info(
                "providers.adapter.skipped",
                extra={"provider": provider.value, "reason": str(exc)},
            )
    return adapters
