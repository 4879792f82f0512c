from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from trendpulse.api.dependencies import get_leaders_service, get_research_service, get_themes_service
from trendpulse.core.config import MAX_REGION_LENGTH
from trendpulse.domain.models import EntityRollup, SourceLeader
from trendpulse.services.leaders_svc import DEFAULT_LEADERS, MAX_LEADERS, MIN_LEADERS, SourceLeadersService
from trendpulse.services.research_svc import ResearchService
from trendpulse.services.themes_svc import DEFAULT_THEMES, MAX_THEMES, MIN_THEMES, TopThemesService

router = APIRouter(prefix="/api", tags=["system"])
logger = logging.getLogger(__name__)


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check; answers without touching providers or storage."""
    return {"status": "awake", "message": "TrendPulse is running"}


@router.get("/diag/providers")
async def provider_diagnostics(
    service: ResearchService = Depends(get_research_service),
) -> dict[str, Any]:
    """Registered providers and their circuit breaker state."""
    providers = service.provider_diagnostics()
    return {"count": len(providers), "providers": providers}


@router.get("/themes/leaders", response_model=list[SourceLeader])
async def source_leaders(
    region: str = Query(default="All", min_length=1, max_length=MAX_REGION_LENGTH),
    limit: int = Query(default=DEFAULT_LEADERS, ge=MIN_LEADERS, le=MAX_LEADERS),
    service: SourceLeadersService = Depends(get_leaders_service),
) -> list[SourceLeader]:
    return await service.leaders(region.strip(), limit)


@router.get("/themes/top", response_model=list[EntityRollup])
async def top_themes(
    region: str = Query(default="All", min_length=1, max_length=MAX_REGION_LENGTH),
    limit: int = Query(default=DEFAULT_THEMES, ge=MIN_THEMES, le=MAX_THEMES),
    service: TopThemesService = Depends(get_themes_service),
) -> list[EntityRollup]:
    """Latest stored rollup of each entity in ``region``, hottest first."""
    return await service.top(region.strip(), limit)
