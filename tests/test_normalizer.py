"""
Tests for per-provider normalization into Signals.
"""
from __future__ import annotations

import math
import random

import pytest

from trendpulse.domain.models import ProviderKind, RawItem
from trendpulse.domain.sources import EditorialAllowlist
from trendpulse.services.normalizer import Normalizer


@pytest.fixture
def normalizer():
    return Normalizer()


def _item(provider: str, **kwargs) -> RawItem:
    kwargs.setdefault("url", f"https://example.com/{provider}")
    return RawItem(provider=provider, **kwargs)


def test_provider_kinds_dispatch(normalizer):
    assert normalizer.kind_of("youtube") is ProviderKind.VIDEO
    assert normalizer.kind_of("GDELT") is ProviderKind.NEWS
    assert normalizer.kind_of("trends") is ProviderKind.SEARCH_TREND
    assert normalizer.kind_of("reddit") is ProviderKind.DISCUSSION
    assert normalizer.kind_of("mystery") is None


def test_video_dimensions(normalizer):
    item = _item(
        "youtube",
        metrics={"views": 1_000_000, "likes": 50_000, "channel_followers": 1_000_000, "age_days": 10},
    )
    signal = normalizer.normalize(item, region="UK", entity="trenchcoat")

    assert signal is not None
    assert signal.engagement == pytest.approx(0.6 * math.log10(1_000_001) / 7 + 0.4 * 0.05, abs=1e-6)
    assert signal.velocity == pytest.approx(1 / 10 ** 1.2, abs=1e-6)
    assert signal.authority == pytest.approx(0.5)
    assert signal.raw_metrics["views"] == 1_000_000
    assert signal.volume == 1_000_000


def test_video_huge_counts_clamp(normalizer):
    item = _item("youtube", metrics={"views": 1e15, "likes": 1e15, "channel_followers": 1e12, "age_days": 0})
    signal = normalizer.normalize(item, region="All", entity="loafers")

    assert signal is not None
    assert signal.engagement == 1.0
    assert signal.velocity == 1.0
    assert signal.authority == 1.0


def test_news_from_allowlisted_domain(normalizer):
    item = _item("gdelt", url="https://www.vogue.com/article/trenchcoats", metrics={"domain": "vogue.com", "age_days": 7})
    signal = normalizer.normalize(item, region="All", entity="trenchcoat")

    assert signal is not None
    assert signal.engagement == pytest.approx(0.6)
    assert signal.velocity == pytest.approx(0.5)
    assert signal.authority == pytest.approx(0.6)
    assert signal.raw_metrics["news_rank"] == pytest.approx(0.6)


def test_news_unknown_age_uses_neutral_recency(normalizer):
    item = _item("gdelt", url="https://wwd.com/fashion/x", metrics={"domain": "wwd.com"})
    signal = normalizer.normalize(item, region="All", entity="trenchcoat")

    assert signal is not None
    assert signal.velocity == pytest.approx(0.5)
    assert signal.authority == pytest.approx(0.9 * 0.6)


def test_news_outside_allowlist_is_rejected(normalizer):
    item = _item("gdelt", url="https://content-farm.example/post", metrics={"domain": "content-farm.example"})
    assert normalizer.normalize(item, region="All", entity="trenchcoat") is None


def test_custom_allowlist_is_honoured():
    normalizer = Normalizer(allowlist=EditorialAllowlist(["example.org"]))
    item = _item("gdelt", url="https://news.example.org/a", metrics={})

    signal = normalizer.normalize(item, region="All", entity="trenchcoat")
    assert signal is not None
    assert signal.authority == pytest.approx(0.6 * 0.6)


def test_search_trend_dimensions(normalizer):
    rising = normalizer.normalize(
        _item("trends", metrics={"search_volume": 80, "rank_delta": 0.3}), region="US", entity="quiet luxury"
    )
    falling = normalizer.normalize(
        _item("trends", metrics={"search_volume": 80, "rank_delta": -0.2}), region="US", entity="quiet luxury"
    )

    assert rising is not None and falling is not None
    assert rising.engagement == pytest.approx(0.8)
    assert rising.velocity == pytest.approx(0.3)
    assert rising.authority == pytest.approx(0.6)
    assert falling.velocity == 0.0


def test_discussion_dimensions(normalizer):
    item = _item("reddit", metrics={"upvotes": 1000, "comments": 100, "age_days": 0, "subreddit": "malefashionadvice"})
    signal = normalizer.normalize(item, region="All", entity="loafers")

    assert signal is not None
    assert signal.engagement == pytest.approx((0.6 * 3 + 0.4 * 2) / 7)
    assert signal.velocity == pytest.approx(1.0)
    assert signal.authority == pytest.approx(0.5)
    assert "subreddit" not in signal.raw_metrics


def test_supplied_dimensions_are_used_and_clamped(normalizer):
    item = _item("custom", engagement=2.0, velocity=0.4, authority=0.1)
    signal = normalizer.normalize(item, region="All", entity="trenchcoat")

    assert signal is not None
    assert (signal.engagement, signal.velocity, signal.authority) == (1.0, 0.4, 0.1)


def test_partially_supplied_dimensions_fill_from_derivation(normalizer):
    item = _item("reddit", engagement=0.9, metrics={"upvotes": 10, "age_days": 0})
    signal = normalizer.normalize(item, region="All", entity="loafers")

    assert signal is not None
    assert signal.engagement == 0.9
    assert signal.velocity == pytest.approx(1.0)


@pytest.mark.parametrize("bad", [-0.1, float("nan")])
def test_negative_or_nan_supplied_dimension_rejects(normalizer, bad):
    item = _item("custom", engagement=0.5, velocity=bad, authority=0.5)
    assert normalizer.normalize(item, region="All", entity="trenchcoat") is None


def test_blank_entity_is_rejected(normalizer):
    assert normalizer.normalize(_item("youtube", metrics={"views": 10}), region="All", entity="   ") is None


def test_bad_raw_metrics_are_treated_as_missing(normalizer):
    item = _item("youtube", metrics={"views": float("nan"), "likes": -5, "channel_followers": "many"})
    signal = normalizer.normalize(item, region="All", entity="trenchcoat")

    assert signal is not None
    assert signal.engagement == 0.0
    assert signal.raw_metrics == {}


def test_randomized_inputs_always_stay_in_bounds(normalizer):
    """Hostile metric values must clamp and never raise."""
    rng = random.Random(1234)
    hostile = [0, -1, -1e9, 1e18, float("nan"), float("inf"), float("-inf"), "12", None, True, 0.5, 3]
    providers = {
        "youtube": ["views", "likes", "comments", "channel_followers", "age_days", "view_growth_7d"],
        "gdelt": ["domain_rank", "domain_weight", "age_days"],
        "trends": ["search_volume", "rank_delta"],
        "reddit": ["upvotes", "comments", "age_days", "subreddit_rank"],
        "custom": ["anything"],
    }

    produced = 0
    for _ in range(500):
        provider = rng.choice(list(providers))
        metrics = {key: rng.choice(hostile) for key in providers[provider]}
        if provider == "gdelt":
            metrics["domain"] = "vogue.com"
        supplied = {
            dim: rng.choice([None, None, rng.uniform(0, 5)])
            for dim in ("engagement", "velocity", "authority")
        }
        item = RawItem(provider=provider, url="https://vogue.com/x", metrics=metrics, **supplied)
        signal = normalizer.normalize(item, region="All", entity="trenchcoat")
        if signal is None:
            continue
        produced += 1
        for value in (signal.engagement, signal.velocity, signal.authority, signal.score):
            assert 0.0 <= value <= 1.0
            assert not math.isnan(value)

    assert produced > 0
