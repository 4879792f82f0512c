from __future__ import annotations

import logging

from trendpulse.domain.models import EntityRollup
from trendpulse.storage.repository import SignalRepository

logger = logging.getLogger(__name__)

MIN_THEMES = 1
MAX_THEMES = 50
DEFAULT_THEMES = 10


def rank_themes(rollups: list[EntityRollup], limit: int = DEFAULT_THEMES) -> list[EntityRollup]:
    """Order rollups by heat, then momentum, then entity name."""
    ranked = sorted(rollups, key=lambda rollup: (-rollup.heat, -rollup.momentum, rollup.entity.casefold()))
    return ranked[:limit]


class TopThemesService:
    """Hottest entities among the latest stored rollups of a region."""

    def __init__(self, repository: SignalRepository) -> None:
        self.repository = repository

    async def top(self, region: str, limit: int = DEFAULT_THEMES) -> list[EntityRollup]:
        limit = max(MIN_THEMES, min(MAX_THEMES, limit))
        rollups = await self.repository.load_latest_rollups(region)
        logger.debug("Ranking %s stored rollups", len(rollups), extra={"region": region, "count": len(rollups)})
        return rank_themes(rollups, limit)
