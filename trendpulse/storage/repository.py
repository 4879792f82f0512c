"""Repository contract consumed by the research pipeline, plus an in-process implementation."""
from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from trendpulse.domain.models import EntityRollup, Signal, entity_key, ensure_utc


@runtime_checkable
class SignalRepository(Protocol):
    """Durable storage for signals, rollups and watchlists. Failures raise ``PersistenceError``."""

    async def save_signals(self, signals: Sequence[Signal]) -> None: ...

    async def load_signals(self, region: str, entities: Sequence[str], since: datetime) -> list[Signal]: ...

    async def load_recent_signals(self, region: str, limit: int) -> list[Signal]: ...

    async def save_rollups(self, region: str, rollups: Sequence[EntityRollup]) -> None: ...

    async def load_prior_rollups(self, region: str, entities: Sequence[str], since: datetime) -> list[EntityRollup]: ...

    async def load_latest_rollups(self, region: str) -> list[EntityRollup]: ...

    async def load_watchlist(self, region: str) -> list[str]: ...

    async def save_watchlist(self, region: str, keywords: Sequence[str]) -> None: ...


def latest_rollups(
    rollups: Sequence[EntityRollup],
    entities: Sequence[str] | None = None,
    since: datetime | None = None,
) -> list[EntityRollup]:
    """Most recent rollup per entity computed at or after ``since``; every entity when ``entities`` is None."""
    wanted = {entity_key(entity) for entity in entities} if entities is not None else None
    cutoff = ensure_utc(since) if since is not None else None
    latest: dict[str, EntityRollup] = {}
    for rollup in rollups:
        key = entity_key(rollup.entity)
        if wanted is not None and key not in wanted:
            continue
        if cutoff is not None and rollup.computed_at < cutoff:
            continue
        current = latest.get(key)
        if current is None or rollup.computed_at > current.computed_at:
            latest[key] = rollup
    return [latest[key] for key in sorted(latest)]


class InMemoryRepository:
    """Process-local repository used when no durable storage is configured."""

    def __init__(self) -> None:
        self._signals: list[Signal] = []
        self._rollups: dict[str, list[EntityRollup]] = {}
        self._watchlists: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()

    async def save_signals(self, signals: Sequence[Signal]) -> None:
        async with self._lock:
            self._signals.extend(signals)

    async def load_signals(self, region: str, entities: Sequence[str], since: datetime) -> list[Signal]:
        wanted = {entity_key(entity) for entity in entities}
        cutoff = ensure_utc(since)
        return [
            signal
            for signal in self._signals
            if signal.region == region and entity_key(signal.entity) in wanted and signal.observed_at >= cutoff
        ]

    async def load_recent_signals(self, region: str, limit: int) -> list[Signal]:
        in_region = [signal for signal in self._signals if signal.region == region]
        in_region.sort(key=lambda signal: signal.observed_at, reverse=True)
        return in_region[:limit]

    async def save_rollups(self, region: str, rollups: Sequence[EntityRollup]) -> None:
        async with self._lock:
            self._rollups.setdefault(region, []).extend(rollups)

    async def load_prior_rollups(self, region: str, entities: Sequence[str], since: datetime) -> list[EntityRollup]:
        return latest_rollups(self._rollups.get(region, []), entities, since)

    async def load_latest_rollups(self, region: str) -> list[EntityRollup]:
        return latest_rollups(self._rollups.get(region, []))

    async def load_watchlist(self, region: str) -> list[str]:
        return list(self._watchlists.get(region, []))

    async def save_watchlist(self, region: str, keywords: Sequence[str]) -> None:
        async with self._lock:
            if keywords:
                self._watchlists[region] = list(keywords)
            else:
                self._watchlists.pop(region, None)
