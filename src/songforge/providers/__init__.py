"""Adapters for the external music generation providers."""

from .providers_base import (
    DispatchReceipt,
    ProviderAdapter,
    ProviderDone,
    ProviderFailed,
    ProviderPending,
    ProviderStatus,
)
from .providers_mureka import MurekaAdapter
from .providers_suno import SunoAdapter

__all__ = [
    "DispatchReceipt",
    "ProviderAdapter",
    "ProviderDone",
    "ProviderFailed",
    "ProviderPending",
    "ProviderStatus",
    "MurekaAdapter",
    "SunoAdapter",
]
