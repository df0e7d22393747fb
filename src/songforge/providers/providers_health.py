"""Reachability checks across the configured provider adapters."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum

from ..generation.generation_errors import (
    ProviderError,
    RateLimitedError,
    TransientProviderError,
)
from ..generation.generation_models import ProviderName
from .providers_base import ProviderAdapter

logger = logging.getLogger(__name__)

SLOW_RESPONSE_SECONDS = 5.0


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(slots=True)
class ProviderHealth:
    provider: str
    status: HealthStatus
    response_ms: int
    error: str | None = None


async def check_provider(
    adapter: ProviderAdapter,
    *,
    slow_after_seconds: float = SLOW_RESPONSE_SECONDS,
    timer: Callable[[], float] = time.perf_counter,
) -> ProviderHealth:
    """Time one ``check_health`` call and classify the outcome."""
    started = timer()
    error: ProviderError | None = None
    try:
        await adapter.check_health()
    except ProviderError as exc:
        error = exc
    elapsed = max(0.0, timer() - started)
    response_ms = int(elapsed * 1000)

    if error is None:
        status = HealthStatus.DEGRADED if elapsed > slow_after_seconds else HealthStatus.HEALTHY
        return ProviderHealth(adapter.name.value, status, response_ms)
    if isinstance(error, (RateLimitedError, TransientProviderError)):
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.UNHEALTHY
    logger.warning(
        "provider.health.failed",
        extra={"provider": adapter.name.value, "status": status.value, "error": str(error)},
    )
    return ProviderHealth(adapter.name.value, status, response_ms, str(error))


async def check_all(
    adapters: Mapping[ProviderName, ProviderAdapter],
    *,
    slow_after_seconds: float = SLOW_RESPONSE_SECONDS,
) -> list[ProviderHealth]:
    ordered = sorted(adapters.items(), key=lambda item: item[0].value)
    return list(
        await asyncio.gather(
            *(
                check_provider(adapter, slow_after_seconds=slow_after_seconds)
                for _, adapter in ordered
            )
        )
    )


def overall_status(results: list[ProviderHealth]) -> HealthStatus:
    """Worst status wins; no configured provider at all is unhealthy."""
    if not results or any(item.status is HealthStatus.UNHEALTHY for item in results):
        return HealthStatus.UNHEALTHY
    if any(item.status is HealthStatus.DEGRADED for item in results):
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
