from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError as ModelValidationError

from trendpulse.core.config import NormalizationConstants
from trendpulse.domain.models import ProviderKind, RawItem, Signal
from trendpulse.domain.sources import EditorialAllowlist
from trendpulse.services.metrics import (
    clamp01,
    is_finite_number,
    like_rate,
    log_scale,
    numeric_metrics,
    recency_decay,
)

logger = logging.getLogger(__name__)

Dimensions = tuple[float, float, float]

DEFAULT_PROVIDER_KINDS: dict[str, ProviderKind] = {
    "youtube": ProviderKind.VIDEO,
    "tiktok": ProviderKind.VIDEO,
    "video": ProviderKind.VIDEO,
    "gdelt": ProviderKind.NEWS,
    "news": ProviderKind.NEWS,
    "trends": ProviderKind.SEARCH_TREND,
    "search_trend": ProviderKind.SEARCH_TREND,
    "reddit": ProviderKind.DISCUSSION,
    "discussion": ProviderKind.DISCUSSION,
}


class NormalizationStrategy(ABC):
    """Derives ``(engagement, velocity, authority)`` for one provider family."""

    kind: ProviderKind

    def __init__(self, constants: NormalizationConstants) -> None:
        self.constants = constants

    def accepts(self, item: RawItem, metrics: dict[str, Any]) -> bool:
        return True

    @abstractmethod
    def derive(self, item: RawItem, metrics: dict[str, float]) -> Dimensions:
        ...


class VideoStrategy(NormalizationStrategy):
    kind = ProviderKind.VIDEO

    def derive(self, item: RawItem, metrics: dict[str, float]) -> Dimensions:
        c = self.constants
        views = metrics.get("views", 0.0)
        engagement = (
            c.video_view_weight * log_scale(views + 1, c.log_denominator)
            + c.video_like_weight * like_rate(metrics.get("likes", 0.0), views)
        )
        age = metrics.get("age_days")
        if age is not None:
            velocity = (views / max(1.0, age) ** c.video_age_exponent) / c.video_velocity_divisor
        else:
            velocity = metrics.get("view_growth_7d", 0.0)
        authority = metrics.get("channel_followers", 0.0) / c.video_authority_ceiling
        return clamp01(engagement), clamp01(velocity), clamp01(authority)


class SearchTrendStrategy(NormalizationStrategy):
    kind = ProviderKind.SEARCH_TREND

    def derive(self, item: RawItem, metrics: dict[str, float]) -> Dimensions:
        c = self.constants
        engagement = metrics.get("search_volume", 0.0) / c.trend_volume_scale
        # rank_delta may legitimately be negative, so read it from the unsanitized bag.
        delta = item.metrics.get("rank_delta", 0.0)
        velocity = delta if is_finite_number(delta) else 0.0
        return clamp01(engagement), clamp01(velocity), clamp01(c.trend_authority)


class NewsStrategy(NormalizationStrategy):
    kind = ProviderKind.NEWS

    def __init__(self, constants: NormalizationConstants, allowlist: EditorialAllowlist) -> None:
        super().__init__(constants)
        self.allowlist = allowlist

    def _domain_source(self, item: RawItem) -> str | None:
        domain = item.metrics.get("domain")
        return domain if isinstance(domain, str) and domain else item.url

    def accepts(self, item: RawItem, metrics: dict[str, Any]) -> bool:
        return self.allowlist.is_allowed(self._domain_source(item))

    def derive(self, item: RawItem, metrics: dict[str, float]) -> Dimensions:
        c = self.constants
        domain_rank = metrics.get("domain_rank", c.news_default_domain_rank)
        domain_weight = metrics.get("domain_weight", self.allowlist.weight_for(self._domain_source(item)))
        engagement = domain_rank / 100
        velocity = recency_decay(metrics.get("age_days"), c.news_half_life_days, c.unknown_age_recency)
        authority = domain_weight * domain_rank / 100
        return clamp01(engagement), clamp01(velocity), clamp01(authority)


class DiscussionStrategy(NormalizationStrategy):
    kind = ProviderKind.DISCUSSION

    def derive(self, item: RawItem, metrics: dict[str, float]) -> Dimensions:
        c = self.constants
        engagement = (
            c.discussion_upvote_weight * log_scale(metrics.get("upvotes", 0.0), c.log_denominator)
            + c.discussion_comment_weight * log_scale(metrics.get("comments", 0.0), c.log_denominator)
        )
        velocity = recency_decay(metrics.get("age_days"), c.discussion_half_life_days, c.unknown_age_recency)
        rank = metrics.get("subreddit_rank")
        authority = rank / 100 if rank is not None else c.discussion_default_authority
        return clamp01(engagement), clamp01(velocity), clamp01(authority)


def _supplied_dimension_is_valid(value: float | None) -> bool:
    return value is None or (is_finite_number(value) and value >= 0)


class Normalizer:
    """Maps provider raw items onto the uniform ``Signal`` schema."""

    def __init__(
        self,
        constants: NormalizationConstants | None = None,
        allowlist: EditorialAllowlist | None = None,
        provider_kinds: dict[str, ProviderKind] | None = None,
    ) -> None:
        self.constants = constants or NormalizationConstants()
        self.allowlist = allowlist or EditorialAllowlist(default_weight=self.constants.news_default_domain_weight)
        self.provider_kinds = {**DEFAULT_PROVIDER_KINDS, **(provider_kinds or {})}
        self.strategies: dict[ProviderKind, NormalizationStrategy] = {
            ProviderKind.VIDEO: VideoStrategy(self.constants),
            ProviderKind.NEWS: NewsStrategy(self.constants, self.allowlist),
            ProviderKind.SEARCH_TREND: SearchTrendStrategy(self.constants),
            ProviderKind.DISCUSSION: DiscussionStrategy(self.constants),
        }

    def kind_of(self, provider: str) -> ProviderKind | None:
        return self.provider_kinds.get(provider.lower())

    def normalize(self, item: RawItem, *, region: str, entity: str) -> Signal | None:
        """
        Build a Signal from ``item`` or return None when the item is rejected.

        Supplied dimensions that are negative or NaN reject the item; derived
        dimensions are always clamped to 0..1. Never raises for bad input.
        """
        supplied = (item.engagement, item.velocity, item.authority)
        if not all(_supplied_dimension_is_valid(value) for value in supplied):
            logger.debug("Rejected %s item with invalid dimensions %s", item.provider, supplied,
                         extra={"provider": item.provider, "error_kind": "ValidationError"})
            return None

        metrics = numeric_metrics(item.metrics)
        kind = self.kind_of(item.provider)
        strategy = self.strategies.get(kind) if kind is not None else None
        if strategy is not None and not strategy.accepts(item, metrics):
            return None

        if all(value is not None for value in supplied) or strategy is None:
            derived: Dimensions = (0.0, 0.0, 0.0)
        else:
            derived = strategy.derive(item, metrics)

        engagement, velocity, authority = (
            clamp01(value if value is not None else fallback)
            for value, fallback in zip(supplied, derived)
        )
        if kind is ProviderKind.NEWS:
            domain_rank = metrics.get("domain_rank", self.constants.news_default_domain_rank)
            metrics.setdefault("news_rank", clamp01(domain_rank / 100))

        try:
            return Signal(
                region=region,
                entity=entity,
                provider=item.provider,
                source_id=item.source_id,
                raw_metrics=metrics,
                engagement=engagement,
                velocity=velocity,
                authority=authority,
                observed_at=item.observed_at,
                url=item.url or None,
                title=item.title or None,
            )
        except ModelValidationError as exc:
            logger.debug("Rejected malformed %s item: %s", item.provider, exc,
                         extra={"provider": item.provider, "error_kind": "ValidationError"})
            return None
