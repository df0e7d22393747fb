"""HTTP routes for provider credit balance and reachability."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta

from fastapi import APIRouter, Depends, Request

from ..auth.auth_dependencies import require_user_id
from ..generation.generation_errors import ProviderError
from ..generation.generation_models import ProviderName, utcnow
from ..repositories.job_repository import JobRepository
from .providers_base import ProviderAdapter
from .providers_health import check_all, overall_status
from .providers_schemas import CreditsResponse, ProviderHealthItem, ProvidersHealthResponse
from .providers_suno import SunoAdapter

router = APIRouter(prefix="/api/providers", tags=["providers"])
logger = logging.getLogger(__name__)

DAILY_CREDIT_ALLOWANCE = 100


def get_adapters(request: Request) -> Mapping[ProviderName, ProviderAdapter]:
    try:
        return request.app.state.adapters  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("Provider adapters are not configured") from exc


def get_job_repo(request: Request) -> JobRepository:
    try:
        return request.app.state.job_repo  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("JobRepository is not configured") from exc


@router.get("/credits", response_model=CreditsResponse)
async def get_credits(
    user_id: str = Depends(require_user_id),
    adapters: Mapping[ProviderName, ProviderAdapter] = Depends(get_adapters),
    job_repo: JobRepository = Depends(get_job_repo),
) -> CreditsResponse:
    """Suno balance, or a daily-allowance estimate when Suno cannot answer."""
    suno = adapters.get(ProviderName.SUNO)
    if isinstance(suno, SunoAdapter):
        try:
            return CreditsResponse(credits=await suno.fetch_credits(), method="suno_api")
        except ProviderError as exc:
            logger.warning("providers.credits.unavailable", extra={"error": str(exc)})

    spent = job_repo.credits_spent_since(user_id, utcnow() - timedelta(hours=24))
    return CreditsResponse(
        credits=max(0, DAILY_CREDIT_ALLOWANCE - spent),
        method="estimated",
        warning="Could not fetch exact credits from Suno",
    )


@router.get("/health", response_model=ProvidersHealthResponse)
async def get_providers_health(
    adapters: Mapping[ProviderName, ProviderAdapter] = Depends(get_adapters),
) -> ProvidersHealthResponse:
    results = await check_all(adapters)
    status = overall_status(results)
    logger.info(
        "providers.health.checked",
        extra={"status": status.value, "providers": [item.provider for item in results]},
    )
    return ProvidersHealthResponse(
        status=status.value,
        checked_at=utcnow(),
        providers=[ProviderHealthItem.from_health(item) for item in results],
    )
