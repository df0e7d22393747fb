"""Abstract provider adapter definition.

Adapters translate a :class:`ProviderRequest` into a provider wire request and
parse provider responses into the tagged status union below, so provider JSON
never reaches the orchestrator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..generation.generation_errors import ProviderError
from ..generation.generation_models import GenerationResult, ProviderName, ProviderRequest


@dataclass(slots=True)
class DispatchReceipt:
    """Returned by a successful dispatch."""

    task_id: str
    raw: dict[str, Any] = field(default_factory=dict)
    generated_lyrics: str | None = None
    lyrics_task_id: str | None = None


@dataclass(slots=True)
class ProviderPending:
    progress: int
    note: str | None = None


@dataclass(slots=True)
class ProviderDone:
    result: GenerationResult


@dataclass(slots=True)
class ProviderFailed:
    error: ProviderError


ProviderStatus = ProviderPending | ProviderDone | ProviderFailed


class ProviderAdapter(ABC):
    """Base interface for music generation providers."""

    name: ClassVar[ProviderName]
    supports_callbacks: ClassVar[bool] = False

    @abstractmethod
    async def dispatch(
        self, request: ProviderRequest, *, callback_url: str | None = None
    ) -> DispatchReceipt:
        """Submit the request and return the provider task token."""

    @abstractmethod
    async def fetch_status(self, task_id: str) -> ProviderStatus:
        """Query the provider for the state of ``task_id``."""

    async def check_health(self) -> None:
        """Make a cheap authenticated call, raising :class:`ProviderError` on failure.

        Adapters without such an endpoint count as healthy once configured.
        """
        return None


def truncate(value: str, limit: int) -> str:
    value = value.strip()
    if len(value) <= limit:
        return value
    return value[:limit].rstrip()


def parse_seconds(value: Any, *, scale: float = 1.0) -> float | None:
    """Read a provider duration leniently; anything unreadable becomes ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value) * scale
    except (TypeError, ValueError):
        return None
    if seconds != seconds or seconds < 0 or seconds == float("inf"):
        return None
    return seconds
