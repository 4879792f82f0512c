"""
Research pipeline: guarded provider fan-out, normalization, scoring and rollup.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from functools import partial
from typing import Any

from pydantic import ValidationError as ModelValidationError

from trendpulse.core.config import DEFAULT_KEYWORDS
from trendpulse.core.exceptions import ErrorKind, PersistenceError, ValidationError
from trendpulse.core.resilience import ResilienceGuard
from trendpulse.domain.models import (
    EntityRollup,
    ProviderCallResult,
    RawItem,
    ResearchRequest,
    ResearchResult,
    Signal,
    Watchlist,
    WatchlistUpdate,
    entity_key,
    utc_now,
)
from trendpulse.providers.base import ProviderAdapter
from trendpulse.services.aggregator import Aggregator
from trendpulse.services.normalizer import Normalizer
from trendpulse.services.quality import QualityGate
from trendpulse.services.scorer import Scorer
from trendpulse.storage.persistence_queue import PersistenceQueue
from trendpulse.storage.repository import SignalRepository

logger = logging.getLogger(__name__)


class ResearchService:
    """
    Orchestrates one research run for a region and a list of keywords.

    Provider failures never fail a run: each ``(provider, keyword)`` call is
    wrapped by the resilience guard, and calls still pending at the outer
    deadline are cancelled while the rollups are built from whatever already
    came back. Repository reads are best-effort and writes go through the
    persistence queue, so storage problems only show up in the logs.
    """

    def __init__(
        self,
        adapters: Sequence[ProviderAdapter],
        repository: SignalRepository,
        queue: PersistenceQueue | None = None,
        *,
        guard: ResilienceGuard | None = None,
        normalizer: Normalizer | None = None,
        quality_gate: QualityGate | None = None,
        scorer: Scorer | None = None,
        aggregator: Aggregator | None = None,
        max_keywords: int = 10,
        deadline_seconds: float | None = 25.0,
        default_keywords: Sequence[str] = DEFAULT_KEYWORDS,
    ) -> None:
        self.adapters = list(adapters)
        self.repository = repository
        self.queue = queue
        self.guard = guard or ResilienceGuard()
        self.normalizer = normalizer or Normalizer()
        self.quality_gate = quality_gate or QualityGate()
        self.scorer = scorer or Scorer()
        self.aggregator = aggregator or Aggregator()
        self.max_keywords = max_keywords
        self.deadline_seconds = deadline_seconds
        self.default_keywords = list(default_keywords)

    def validate_request(self, payload: ResearchRequest | dict[str, Any]) -> ResearchRequest:
        """Coerce ``payload`` into a request, raising ``ValidationError`` for bad region or keywords."""
        if isinstance(payload, ResearchRequest):
            request = payload
        else:
            try:
                request = ResearchRequest.model_validate(payload)
            except ModelValidationError as exc:
                raise ValidationError(f"Invalid research request: {exc.errors()[0].get('msg', exc)}") from exc
        if len(request.keywords) > self.max_keywords:
            raise ValidationError(f"At most {self.max_keywords} keywords are allowed per request")
        return request

    async def run(self, payload: ResearchRequest | dict[str, Any]) -> ResearchResult:
        request = self.validate_request(payload)
        region = request.region
        keywords = request.keywords or await self._fallback_keywords(region)
        now = utc_now()
        warnings: list[str] = []

        history, prior_rollups = await self._load_context(region, keywords, request.lookback_days, now)

        results, cancelled = await self._fan_out(request, keywords)
        if cancelled:
            warnings.append(f"Deadline exceeded; {len(cancelled)} provider calls were cancelled")

        per_provider_counts = {adapter.name: 0 for adapter in self.adapters}
        signals: list[Signal] = []
        failures = {f"{provider}: {ErrorKind.PROVIDER_TIMEOUT.value}" for provider in cancelled}
        for keyword, result in results:
            if not result.ok:
                kind = result.error_kind.value if result.error_kind else "ProviderError"
                failures.add(f"{result.provider}: {kind}")
                continue
            for signal in self._process_items(result.items, region=region, entity=keyword):
                signals.append(signal)
                per_provider_counts[signal.provider] = per_provider_counts.get(signal.provider, 0) + 1
        warnings.extend(f"Provider unavailable ({failure})" for failure in sorted(failures))

        rollups = self.aggregator.aggregate(
            signals,
            region=region,
            history=history,
            prior_rollups=prior_rollups,
            now=now,
        )
        self._persist(region, signals, rollups)

        logger.info(
            "Research run produced %s entities from %s signals",
            len(rollups),
            len(signals),
            extra={"region": region, "count": len(signals)},
        )
        return ResearchResult(
            region=region,
            keywords=keywords,
            entities=rollups,
            total_signals_processed=len(signals),
            per_provider_counts=per_provider_counts,
            warnings=warnings,
            generated_at=now,
        )

    async def _fallback_keywords(self, region: str) -> list[str]:
        try:
            watchlist = await self.repository.load_watchlist(region)
        except PersistenceError as exc:
            logger.warning("Could not load watchlist: %s", exc, extra={"region": region})
            watchlist = []
        keywords = watchlist or self.default_keywords
        return keywords[: self.max_keywords]

    async def _load_context(
        self, region: str, keywords: list[str], lookback_days: int, now: datetime
    ) -> tuple[list[Signal], list[EntityRollup]]:
        history: list[Signal] = []
        prior: list[EntityRollup] = []
        long_window = timedelta(days=self.aggregator.options.long_window_days)
        try:
            history = await self.repository.load_signals(region, keywords, now - long_window)
        except PersistenceError as exc:
            logger.warning("Could not load signal history: %s", exc, extra={"region": region})
        try:
            prior = await self.repository.load_prior_rollups(region, keywords, now - timedelta(days=lookback_days))
        except PersistenceError as exc:
            logger.warning("Could not load prior rollups: %s", exc, extra={"region": region})
        return history, prior

    async def _fan_out(
        self, request: ResearchRequest, keywords: list[str]
    ) -> tuple[list[tuple[str, ProviderCallResult]], list[str]]:
        """Call every provider for every keyword concurrently; return settled results and cancelled providers."""
        tasks: dict[asyncio.Task, tuple[str, str]] = {}
        for keyword in keywords:
            for adapter in self.adapters:
                fetch = partial(
                    adapter.fetch,
                    keyword,
                    request.region,
                    limit=request.max_results_per_entity,
                    lookback_days=request.lookback_days,
                )
                tasks[asyncio.create_task(self.guard.call(adapter.name, fetch))] = (keyword, adapter.name)
        if not tasks:
            return [], []

        done, pending = await asyncio.wait(tasks, timeout=self.deadline_seconds)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Research deadline of %ss exceeded; cancelled %s provider calls",
                self.deadline_seconds,
                len(pending),
                extra={"count": len(pending)},
            )

        settled = [(tasks[task][0], task.result()) for task in done]
        settled.sort(key=lambda pair: (pair[0].casefold(), pair[1].provider))
        return settled, sorted(tasks[task][1] for task in pending)

    def _process_items(self, items: list[Any], *, region: str, entity: str) -> list[Signal]:
        signals: list[Signal] = []
        for raw in items:
            if isinstance(raw, RawItem):
                item = raw
            else:
                try:
                    item = RawItem.model_validate(raw)
                except ModelValidationError:
                    logger.debug("Dropped malformed raw item", extra={"entity": entity, "error_kind": "ValidationError"})
                    continue
            if not self.quality_gate.admits(item, self.normalizer.kind_of(item.provider)):
                continue
            signal = self.normalizer.normalize(item, region=region, entity=entity)
            if signal is None:
                continue
            scored = self.scorer.score_signal(signal)
            if self.quality_gate.passes_score(scored):
                signals.append(scored)
        return signals

    def _persist(self, region: str, signals: list[Signal], rollups: list[EntityRollup]) -> None:
        if self.queue is None:
            return
        self.queue.submit_signals(signals)
        self.queue.submit_rollups(region, rollups)

    def provider_diagnostics(self) -> list[dict[str, Any]]:
        snapshot = self.guard.store.snapshot()
        idle = {"consecutive_failures": 0, "open": False, "open_ms_left": 0}
        return [
            {
                "name": adapter.name,
                "kind": adapter.kind.value,
                "breaker": snapshot.get(adapter.name, idle),
            }
            for adapter in self.adapters
        ]

    async def get_watchlist(self, region: str) -> Watchlist:
        return Watchlist(region=region, keywords=await self.repository.load_watchlist(region))

    async def update_watchlist(self, update: WatchlistUpdate) -> Watchlist:
        """Merge ``update.keywords`` into the stored list, then drop ``update.remove``."""
        current = await self.repository.load_watchlist(update.region)
        removed = {entity_key(keyword) for keyword in update.remove}
        merged: list[str] = []
        seen: set[str] = set()
        for keyword in (*current, *update.keywords):
            key = entity_key(keyword)
            if key in removed or key in seen:
                continue
            seen.add(key)
            merged.append(keyword)
        if len(merged) > self.max_keywords:
            raise ValidationError(f"A watchlist holds at most {self.max_keywords} keywords")
        await self.repository.save_watchlist(update.region, merged)
        return Watchlist(region=update.region, keywords=merged)

    async def clear_watchlist(self, region: str) -> Watchlist:
        await self.repository.save_watchlist(region, [])
        return Watchlist(region=region)
