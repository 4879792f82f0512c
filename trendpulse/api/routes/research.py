"""
Research run and watchlist routes.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from trendpulse.api.dependencies import get_research_service
from trendpulse.core.config import MAX_REGION_LENGTH
from trendpulse.domain.models import ResearchRequest, ResearchResult, Watchlist, WatchlistUpdate
from trendpulse.services.research_svc import ResearchService

router = APIRouter(prefix="/api/research", tags=["research"])
logger = logging.getLogger(__name__)


@router.post("/run", response_model=ResearchResult)
async def run_research(
    request: ResearchRequest,
    service: ResearchService = Depends(get_research_service),
) -> ResearchResult:
    """
    Fan out to every configured provider for each keyword and return ranked entity rollups.

    Provider outages degrade the result (see ``warnings``) instead of failing the request.
    """
    return await service.run(request)


@router.get("/watchlist", response_model=Watchlist)
async def get_watchlist(
    region: str = Query(default="All", min_length=1, max_length=MAX_REGION_LENGTH),
    service: ResearchService = Depends(get_research_service),
) -> Watchlist:
    return await service.get_watchlist(region.strip())


@router.post("/watchlist", response_model=Watchlist)
async def update_watchlist(
    update: WatchlistUpdate,
    service: ResearchService = Depends(get_research_service),
) -> Watchlist:
    watchlist = await service.update_watchlist(update)
    logger.info("Watchlist updated", extra={"region": watchlist.region, "count": len(watchlist.keywords)})
    return watchlist


@router.delete("/watchlist", response_model=Watchlist)
async def clear_watchlist(
    region: str = Query(default="All", min_length=1, max_length=MAX_REGION_LENGTH),
    service: ResearchService = Depends(get_research_service),
) -> Watchlist:
    return await service.clear_watchlist(region.strip())
