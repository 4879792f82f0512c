"""
Tests for the per-provider quality gate.
"""
from __future__ import annotations

import pytest

from trendpulse.core.config import QualityThresholds
from trendpulse.domain.models import ProviderKind, RawItem, Signal
from trendpulse.services.quality import QualityGate


@pytest.fixture
def gate():
    return QualityGate()


def _raw(provider: str, url: str = "https://example.com/x", **metrics) -> RawItem:
    return RawItem(provider=provider, url=url, metrics=metrics)


@pytest.mark.parametrize(
    "views, likes, expected",
    [
        (30_000, 0, True),
        (15_000, 450, True),
        (15_000, 100, False),
        (5_000, 5_000, False),
    ],
)
def test_video_thresholds(gate, views, likes, expected):
    assert gate.admits(_raw("youtube", views=views, likes=likes), ProviderKind.VIDEO) is expected


@pytest.mark.parametrize(
    "upvotes, comments, expected",
    [(50, 0, True), (0, 10, True), (49, 9, False)],
)
def test_discussion_thresholds(gate, upvotes, comments, expected):
    assert gate.admits(_raw("reddit", upvotes=upvotes, comments=comments), ProviderKind.DISCUSSION) is expected


def test_news_requires_allowlisted_domain(gate):
    assert gate.admits(_raw("gdelt", url="https://www.vogue.com/a", domain="vogue.com"), ProviderKind.NEWS)
    assert gate.admits(_raw("gdelt", url="https://www.theguardian.com/fashion/a"), ProviderKind.NEWS)
    assert not gate.admits(_raw("gdelt", url="https://spam.example/a", domain="spam.example"), ProviderKind.NEWS)


@pytest.mark.parametrize(
    "volume, delta, expected",
    [(30, 0.0, True), (10, 0.15, True), (10, 0.05, False), (0, -0.5, False)],
)
def test_search_trend_thresholds(gate, volume, delta, expected):
    item = _raw("trends", search_volume=volume, rank_delta=delta)
    assert gate.admits(item, ProviderKind.SEARCH_TREND) is expected


def test_unknown_kind_passes(gate):
    assert gate.admits(_raw("custom"), None)


def test_negative_counters_count_as_missing(gate):
    assert not gate.admits(_raw("youtube", views=-1_000_000), ProviderKind.VIDEO)


def test_score_floor_per_provider():
    gate = QualityGate(QualityThresholds(min_score_by_provider={"youtube": 0.5}))
    low = Signal(region="All", entity="loafers", provider="youtube", engagement=0.1, velocity=0.1, authority=0.1, score=0.2)
    high = low.model_copy(update={"score": 0.6})
    other = low.model_copy(update={"provider": "reddit"})

    assert not gate.passes_score(low)
    assert gate.passes_score(high)
    assert gate.passes_score(other)
