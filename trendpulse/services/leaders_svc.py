from __future__ import annotations

import logging

import numpy as np

from trendpulse.core.config import LEADERS_SIGNAL_WINDOW
from trendpulse.domain.models import Signal, SourceLeader
from trendpulse.storage.repository import SignalRepository

logger = logging.getLogger(__name__)

MIN_LEADERS = 1
MAX_LEADERS = 25
DEFAULT_LEADERS = 8


def rank_sources(signals: list[Signal], limit: int = DEFAULT_LEADERS) -> list[SourceLeader]:
    """Group signals by ``(provider, source)`` and rank by mean engagement and authority."""
    groups: dict[tuple[str, str], list[Signal]] = {}
    for signal in signals:
        source = signal.source_id or "unknown"
        groups.setdefault((signal.provider, source), []).append(signal)

    leaders = []
    for (provider, source), group in groups.items():
        avg_engagement = float(np.mean([s.engagement for s in group]))
        authority = float(np.mean([s.authority for s in group]))
        leaders.append(
            SourceLeader(
                key=f"{provider}:{source}",
                provider=provider,
                source=source,
                samples=len(group),
                avg_engagement=round(avg_engagement, 4),
                authority=round(authority, 4),
                rank=round(0.5 * avg_engagement + 0.5 * authority, 4),
            )
        )
    leaders.sort(key=lambda leader: (-leader.rank, -leader.samples, leader.key))
    return leaders[:limit]


class SourceLeadersService:
    """Highest-ranked sources among a region's most recently stored signals."""

    def __init__(self, repository: SignalRepository, window: int = LEADERS_SIGNAL_WINDOW) -> None:
        self.repository = repository
        self.window = window

    async def leaders(self, region: str, limit: int = DEFAULT_LEADERS) -> list[SourceLeader]:
        limit = max(MIN_LEADERS, min(MAX_LEADERS, limit))
        signals = await self.repository.load_recent_signals(region, self.window)
        logger.debug("Ranking sources over %s signals", len(signals), extra={"region": region, "count": len(signals)})
        return rank_sources(signals, limit)
