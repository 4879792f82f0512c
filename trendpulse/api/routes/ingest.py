"""
Editorial news ingest routes.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from trendpulse.api.dependencies import get_editorial_service
from trendpulse.domain.models import NewsIngestRequest, NewsIngestResult
from trendpulse.services.editorial_svc import EditorialNewsService

router = APIRouter(prefix="/api/ingest", tags=["ingest"])
logger = logging.getLogger(__name__)


@router.post("/news", response_model=NewsIngestResult)
async def ingest_news(
    request: NewsIngestRequest,
    service: EditorialNewsService = Depends(get_editorial_service),
) -> NewsIngestResult:
    """Best-matching editorial articles per keyword; unreachable feeds are listed in ``warnings``."""
    return await service.ingest(request)
