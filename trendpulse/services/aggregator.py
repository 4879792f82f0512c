from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

import numpy as np

from trendpulse.core.config import AggregationOptions
from trendpulse.domain.models import Citation, Classification, EntityRollup, Signal, entity_key, ensure_utc, utc_now
from trendpulse.domain.sources import search_link
from trendpulse.services.metrics import clamp, clamp01

logger = logging.getLogger(__name__)


def _rank_key(signal: Signal) -> tuple:
    return (-signal.score, signal.provider, signal.url or "", signal.title or "", signal.source_id or "")


def _has_real_url(signal: Signal) -> bool:
    return bool(signal.url) and signal.url.lower().startswith(("http://", "https://"))


class Aggregator:
    """
    Rolls scored signals up into one ranked ``EntityRollup`` per entity.

    Heat is the mean score of the top-K signals. Momentum is the recent minus
    long window mean when signal history is available, the heat delta against
    a prior rollup otherwise, and mean velocity as a last resort. Forecast is
    heat plus momentum, and confidence grows with the number of signals.
    """

    def __init__(self, options: AggregationOptions | None = None) -> None:
        self.options = options or AggregationOptions()

    def aggregate(
        self,
        signals: Iterable[Signal],
        *,
        region: str = "All",
        history: Iterable[Signal] | None = None,
        prior_rollups: Iterable[EntityRollup] | None = None,
        now: datetime | None = None,
    ) -> list[EntityRollup]:
        computed_at = ensure_utc(now) if now is not None else utc_now()
        groups = self._group(signals)
        if not groups:
            return []

        history_groups = self._group(history or [])
        priors = {entity_key(rollup.entity): rollup for rollup in prior_rollups or []}

        rollups = [
            self._rollup(
                group,
                region=region,
                history=history_groups.get(key, []),
                prior=priors.get(key),
                now=computed_at,
            )
            for key, group in groups.items()
        ]
        rollups.sort(key=lambda r: (-r.heat, -r.volume, -r.sample_count, r.entity.casefold()))
        logger.debug("Aggregated %s entities", len(rollups), extra={"region": region, "count": len(rollups)})
        return rollups

    def _group(self, signals: Iterable[Signal]) -> dict[str, list[Signal]]:
        groups: dict[str, list[Signal]] = {}
        for signal in signals:
            groups.setdefault(entity_key(signal.entity), []).append(signal)
        return groups

    def _rollup(
        self,
        group: list[Signal],
        *,
        region: str,
        history: list[Signal],
        prior: EntityRollup | None,
        now: datetime,
    ) -> EntityRollup:
        opts = self.options
        kept = sorted(group, key=_rank_key)[: opts.top_k_per_entity]
        entity = kept[0].entity

        heat = clamp01(float(np.mean([s.score for s in kept])))
        momentum = self._momentum(kept, history, prior, heat, now)
        forecast = clamp01(heat + momentum)
        confidence = clamp01(len(kept) / opts.min_samples_for_full_confidence)
        citations = self._citations(kept, entity, region)

        return EntityRollup(
            entity=entity,
            region=region,
            heat=heat,
            momentum=momentum,
            forecast=forecast,
            confidence=confidence,
            classification=self.classify(heat, momentum),
            citations=citations,
            link=citations[0].url,
            sample_count=len(kept),
            volume=float(sum(s.volume for s in kept)),
            computed_at=now,
        )

    def _momentum(
        self,
        kept: list[Signal],
        history: list[Signal],
        prior: EntityRollup | None,
        heat: float,
        now: datetime,
    ) -> float:
        opts = self.options
        long_start = now - timedelta(days=opts.long_window_days)
        recent_start = now - timedelta(days=opts.recent_window_days)
        past = [s for s in history if s.observed_at >= long_start]
        if past:
            long_window = [s for s in (*kept, *past) if s.observed_at >= long_start]
            recent_window = [s for s in long_window if s.observed_at >= recent_start]
            if recent_window:
                delta = np.mean([s.score for s in recent_window]) - np.mean([s.score for s in long_window])
                return clamp(float(delta), -1.0, 1.0)
        if prior is not None:
            return clamp(heat - prior.heat, -1.0, 1.0)
        return clamp(float(np.mean([s.velocity for s in kept])), -1.0, 1.0)

    def _citations(self, kept: list[Signal], entity: str, region: str) -> list[Citation]:
        seen: set[tuple[str, str]] = set()
        citations: list[Citation] = []
        for signal in kept:
            if not _has_real_url(signal):
                continue
            key = (signal.provider.casefold(), (signal.url or signal.title or "").strip().casefold())
            if key in seen:
                continue
            seen.add(key)
            citations.append(
                Citation(
                    provider=signal.provider,
                    title=signal.title or signal.url or entity,
                    url=signal.url or "",
                    authority=signal.authority,
                    observed_at=signal.observed_at,
                )
            )
            if len(citations) >= self.options.max_citations:
                break

        if not citations:
            top = kept[0]
            citations.append(
                Citation(
                    provider=top.provider,
                    title=f"Search {top.provider} for {entity}",
                    url=search_link(top.provider, entity, region),
                    authority=top.authority,
                    observed_at=top.observed_at,
                )
            )
        return citations

    def classify(self, heat: float, momentum: float) -> Classification:
        if heat >= self.options.act_heat_threshold and momentum > 0:
            return Classification.ACT
        if heat >= self.options.watch_heat_threshold:
            return Classification.WATCH
        return Classification.AWARE
