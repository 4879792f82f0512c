"""
Editorial citations: match keywords against the latest items of curated fashion feeds.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from functools import partial
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError as ModelValidationError

from trendpulse.core.exceptions import ValidationError
from trendpulse.core.resilience import ResilienceGuard
from trendpulse.domain.models import (
    EditorialCitation,
    FeedEntry,
    NewsIngestRequest,
    NewsIngestResult,
    ensure_utc,
    utc_now,
)
from trendpulse.domain.sources import FASHION_FEEDS, EditorialFeed
from trendpulse.providers.editorial import EditorialFeedReader

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 1.2
SUMMARY_WEIGHT = 0.8
SOURCE_WEIGHT = 0.5
MIN_CITATION_SCORE = 0.6
# (max age in days, boost)
RECENCY_BOOSTS = ((1, 0.6), (3, 0.45), (7, 0.25), (14, 0.1))


def text_match(text: str, keyword: str) -> float:
    """1.0 when the keyword phrase occurs, otherwise the share of its words present, capped at 0.9."""
    haystack = text.lower()
    if not haystack:
        return 0.0
    if keyword in haystack:
        return 1.0
    words = keyword.split()
    if not words:
        return 0.0
    hits = sum(1 for word in words if word in haystack)
    return min(0.9, hits / len(words))


def recency_boost(published_at: datetime | None, now: datetime) -> float:
    if published_at is None:
        return 0.0
    age_days = (now - ensure_utc(published_at)).total_seconds() / 86_400
    for max_age, boost in RECENCY_BOOSTS:
        if age_days < max_age:
            return boost
    return 0.0


def score_entry(entry: FeedEntry, keyword: str, now: datetime) -> float:
    """Keyword match in title and summary, plus recency and source weight. Zero when nothing matches."""
    title = text_match(entry.title, keyword)
    summary = text_match(entry.summary, keyword)
    if title == 0 and summary == 0:
        return 0.0
    return (
        title * TITLE_WEIGHT
        + summary * SUMMARY_WEIGHT
        + recency_boost(entry.published_at, now)
        + entry.weight * SOURCE_WEIGHT
    )


def _link_key(url: str) -> str:
    return url.split("?", 1)[0]


def select_citations(
    entries: Sequence[FeedEntry],
    keywords: Sequence[str],
    limit_per_keyword: int,
    now: datetime,
) -> list[EditorialCitation]:
    """Best entries per keyword above the score floor; a link is cited once, ignoring its query string."""
    citations: list[EditorialCitation] = []
    seen: set[str] = set()
    for keyword in keywords:
        scored = [(score_entry(entry, keyword, now), entry) for entry in entries]
        ranked = sorted(
            ((score, entry) for score, entry in scored if score > MIN_CITATION_SCORE),
            key=lambda pair: (-pair[0], pair[1].url),
        )
        for score, entry in ranked[:limit_per_keyword]:
            key = _link_key(entry.url)
            if key in seen:
                continue
            seen.add(key)
            citations.append(
                EditorialCitation(entity=keyword, source=entry.source, url=entry.url, title=entry.title, score=round(score, 4))
            )
    return citations


def feed_provider_name(feed: EditorialFeed) -> str:
    """Breaker key for a feed, e.g. ``feed:wwd.com``."""
    return f"feed:{urlparse(feed.url).hostname or feed.name}"


class EditorialNewsService:
    """
    Reads every editorial feed once per request and picks citations for each keyword.

    Feeds are fetched through the resilience guard, so an unreachable
    publication is skipped with a warning and, after repeated failures,
    short-circuited by its breaker.
    """

    def __init__(
        self,
        feeds: Sequence[EditorialFeed] = FASHION_FEEDS,
        *,
        reader: EditorialFeedReader | None = None,
        guard: ResilienceGuard | None = None,
    ) -> None:
        self.feeds = list(feeds)
        self.reader = reader or EditorialFeedReader()
        self.guard = guard or ResilienceGuard()

    def validate_request(self, payload: NewsIngestRequest | dict[str, Any]) -> NewsIngestRequest:
        if isinstance(payload, NewsIngestRequest):
            return payload
        try:
            return NewsIngestRequest.model_validate(payload)
        except ModelValidationError as exc:
            raise ValidationError(f"Invalid news request: {exc.errors()[0].get('msg', exc)}") from exc

    async def ingest(self, payload: NewsIngestRequest | dict[str, Any]) -> NewsIngestResult:
        request = self.validate_request(payload)
        keywords = [keyword.lower() for keyword in request.keywords]
        if not keywords:
            return NewsIngestResult()

        entries, warnings = await self._read_feeds()
        citations = select_citations(entries, keywords, request.limit_per_keyword, utc_now())
        logger.info(
            "Selected %s editorial citations from %s feed entries",
            len(citations),
            len(entries),
            extra={"count": len(citations)},
        )
        return NewsIngestResult(citations=citations, count=len(citations), warnings=warnings)

    async def _read_feeds(self) -> tuple[list[FeedEntry], list[str]]:
        results = await asyncio.gather(
            *(self.guard.call(feed_provider_name(feed), partial(self.reader.read, feed)) for feed in self.feeds)
        )
        entries: list[FeedEntry] = []
        warnings: list[str] = []
        for feed, result in zip(self.feeds, results):
            if not result.ok:
                kind = result.error_kind.value if result.error_kind else "ProviderError"
                warnings.append(f"Feed unavailable ({feed.name}: {kind})")
                continue
            entries.extend(result.items)
        return entries, warnings
