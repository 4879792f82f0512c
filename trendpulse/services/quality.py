from __future__ import annotations

import logging

from trendpulse.core.config import QualityThresholds
from trendpulse.domain.models import ProviderKind, RawItem, Signal
from trendpulse.domain.sources import EditorialAllowlist
from trendpulse.services.metrics import like_rate, numeric_metrics

logger = logging.getLogger(__name__)


class QualityGate:
    """
    Per-provider minimum thresholds that keep low-signal noise out of the rollups.

    ``admits`` runs on raw metrics before normalization; ``passes_score``
    applies the optional per-provider score floor afterwards. Rejected items
    are dropped silently.
    """

    def __init__(self, thresholds: QualityThresholds | None = None, allowlist: EditorialAllowlist | None = None) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.allowlist = allowlist or EditorialAllowlist()

    def admits(self, item: RawItem, kind: ProviderKind | None) -> bool:
        if kind is None:
            return True
        metrics = numeric_metrics(item.metrics)
        t = self.thresholds

        if kind is ProviderKind.VIDEO:
            views = metrics.get("views", 0.0)
            rate = like_rate(metrics.get("likes", 0.0), views)
            passed = views >= t.video_min_views or (views >= t.video_min_views_engaged and rate >= t.video_min_like_rate)
        elif kind is ProviderKind.DISCUSSION:
            passed = (
                metrics.get("upvotes", 0.0) >= t.discussion_min_upvotes
                or metrics.get("comments", 0.0) >= t.discussion_min_comments
            )
        elif kind is ProviderKind.NEWS:
            domain = item.metrics.get("domain")
            passed = self.allowlist.is_allowed(domain if isinstance(domain, str) and domain else item.url)
        elif kind is ProviderKind.SEARCH_TREND:
            delta = item.metrics.get("rank_delta", 0.0)
            passed = (
                metrics.get("search_volume", 0.0) / 100 >= t.trend_min_volume
                or (isinstance(delta, (int, float)) and delta >= t.trend_min_rank_delta)
            )
        else:
            passed = True

        if not passed:
            logger.debug("Quality gate dropped %s item %s", item.provider, item.source_id, extra={"provider": item.provider})
        return passed

    def passes_score(self, signal: Signal) -> bool:
        floor = self.thresholds.min_score_by_provider.get(signal.provider, 0.0)
        return signal.score >= floor
