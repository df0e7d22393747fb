"""Pydantic schemas for the provider account and health routes."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from .providers_health import ProviderHealth


class CreditsResponse(BaseModel):
    credits: int
    method: Literal["suno_api", "estimated"]
    warning: str | None = None


class ProviderHealthItem(BaseModel):
    provider: str
    status: str
    response_ms: int
    error: str | None = None

    @classmethod
    def from_health(cls, health: ProviderHealth) -> "ProviderHealthItem":
        return cls(
            provider=health.provider,
            status=health.status.value,
            response_ms=health.response_ms,
            error=health.error,
        )


class ProvidersHealthResponse(BaseModel):
    status: str
    checked_at: datetime
    providers: list[ProviderHealthItem]
