from __future__ import annotations

from functools import lru_cache

from trendpulse.core.config import get_settings
from trendpulse.core.resilience import BreakerStore, ResilienceGuard
from trendpulse.domain.sources import FASHION_FEEDS, EditorialAllowlist
from trendpulse.providers.editorial import EditorialFeedReader
from trendpulse.providers import build_adapters
from trendpulse.services.aggregator import Aggregator
from trendpulse.services.editorial_svc import EditorialNewsService
from trendpulse.services.leaders_svc import SourceLeadersService
from trendpulse.services.normalizer import Normalizer
from trendpulse.services.quality import QualityGate
from trendpulse.services.research_svc import ResearchService
from trendpulse.services.scorer import Scorer
from trendpulse.services.themes_svc import TopThemesService
from trendpulse.storage.persistence_queue import PersistenceQueue
from trendpulse.storage.repository import SignalRepository
from trendpulse.storage.sheet_repository import build_repository


@lru_cache(maxsize=1)
def get_repository() -> SignalRepository:
    return build_repository(get_settings())


@lru_cache(maxsize=1)
def get_persistence_queue() -> PersistenceQueue:
    return PersistenceQueue(get_repository(), maxsize=get_settings().PERSISTENCE_QUEUE_SIZE)


@lru_cache(maxsize=1)
def get_breaker_store() -> BreakerStore:
    return BreakerStore()


@lru_cache(maxsize=1)
def get_allowlist() -> EditorialAllowlist:
    settings = get_settings()
    return EditorialAllowlist(
        settings.editorial_allowlist or None,
        default_weight=settings.NORM_NEWS_DEFAULT_DOMAIN_WEIGHT,
    )


@lru_cache(maxsize=1)
def get_research_service() -> ResearchService:
    settings = get_settings()
    allowlist = get_allowlist()
    return ResearchService(
        build_adapters(settings),
        get_repository(),
        get_persistence_queue(),
        guard=ResilienceGuard(settings.guard_options(), get_breaker_store()),
        normalizer=Normalizer(settings.normalization_constants(), allowlist=allowlist),
        quality_gate=QualityGate(settings.quality_thresholds(), allowlist),
        scorer=Scorer(settings.score_weights()),
        aggregator=Aggregator(settings.aggregation_options()),
        max_keywords=settings.MAX_KEYWORDS,
        deadline_seconds=settings.REQUEST_DEADLINE_SECONDS,
        default_keywords=settings.default_keywords,
    )


@lru_cache(maxsize=1)
def get_leaders_service() -> SourceLeadersService:
    return SourceLeadersService(get_repository())


@lru_cache(maxsize=1)
def get_themes_service() -> TopThemesService:
    return TopThemesService(get_repository())


@lru_cache(maxsize=1)
def get_editorial_service() -> EditorialNewsService:
    settings = get_settings()
    return EditorialNewsService(
        FASHION_FEEDS,
        reader=EditorialFeedReader(),
        guard=ResilienceGuard(settings.feed_guard_options(), get_breaker_store()),
    )
