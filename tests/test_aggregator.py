"""
Tests for the rollup engine: heat, momentum, forecast, confidence, citations and ranking.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trendpulse.core.config import AggregationOptions
from trendpulse.domain.models import Classification, EntityRollup, Signal
from trendpulse.services.aggregator import Aggregator, entity_key
from trendpulse.services.scorer import Scorer

NOW = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)


def _signal(
    entity: str = "trenchcoat",
    provider: str = "youtube",
    *,
    engagement: float = 0.5,
    velocity: float = 0.5,
    authority: float = 0.5,
    score: float | None = None,
    url: str | None = None,
    title: str | None = None,
    observed_at: datetime = NOW,
    views: float | None = None,
) -> Signal:
    signal = Signal(
        region="All",
        entity=entity,
        provider=provider,
        engagement=engagement,
        velocity=velocity,
        authority=authority,
        url=url,
        title=title,
        observed_at=observed_at,
        raw_metrics={"views": views} if views is not None else {},
    )
    if score is None:
        return Scorer().score_signal(signal)
    return signal.model_copy(update={"score": score})


@pytest.fixture
def aggregator():
    return Aggregator()


def test_trenchcoat_example(aggregator):
    signals = [
        _signal(provider="news", engagement=0.8, velocity=0.5, authority=0.9),
        _signal(provider="video", engagement=0.6, velocity=0.1, authority=0.4),
    ]
    [rollup] = aggregator.aggregate(signals, now=NOW)

    assert rollup.entity == "trenchcoat"
    assert rollup.heat == pytest.approx((0.735 + 0.4) / 2)
    assert rollup.momentum == pytest.approx(0.3)
    assert rollup.forecast == pytest.approx(0.8675)
    assert rollup.confidence == pytest.approx(0.1)
    assert rollup.classification is Classification.WATCH
    assert rollup.sample_count == 2


def test_fallback_link_when_no_signal_has_url(aggregator):
    [rollup] = aggregator.aggregate([_signal(provider="news")], now=NOW)

    assert rollup.link == "https://www.google.com/search?q=trenchcoat"
    assert len(rollup.citations) == 1
    assert rollup.citations[0].title == "Search news for trenchcoat"


def test_fallback_link_uses_provider_search(aggregator):
    [rollup] = aggregator.aggregate([_signal("quiet luxury", provider="youtube", url="/relative/path")], now=NOW)
    assert rollup.link == "https://www.youtube.com/results?search_query=quiet+luxury"


def test_idempotent_on_identical_batches(aggregator):
    signals = [
        _signal(provider="youtube", engagement=0.9, url="https://youtube.com/watch?v=1"),
        _signal(provider="reddit", engagement=0.3, url="https://reddit.com/r/x/1"),
        _signal("loafers", provider="gdelt", engagement=0.7, url="https://vogue.com/loafers"),
    ]
    first = aggregator.aggregate(signals, now=NOW)
    second = aggregator.aggregate(list(reversed(signals)), now=NOW)

    assert first == second
    assert [r.citations for r in first] == [r.citations for r in second]


def test_duplicate_provider_url_yields_one_citation(aggregator):
    signals = [
        _signal(provider="youtube", score=0.9, url="https://youtube.com/watch?v=abc", title="First"),
        _signal(provider="youtube", score=0.4, url="https://YouTube.com/watch?v=ABC", title="Second"),
        _signal(provider="reddit", score=0.3, url="https://youtube.com/watch?v=abc", title="Cross-post"),
    ]
    [rollup] = aggregator.aggregate(signals, now=NOW)

    assert [(c.provider, c.title) for c in rollup.citations] == [("youtube", "First"), ("reddit", "Cross-post")]
    assert rollup.link == "https://youtube.com/watch?v=abc"


def test_citations_capped_and_ordered_by_score(aggregator):
    signals = [_signal(score=i / 10, url=f"https://example.com/{i}") for i in range(8)]
    [rollup] = aggregator.aggregate(signals, now=NOW)

    assert len(rollup.citations) == 5
    assert [c.url for c in rollup.citations] == [f"https://example.com/{i}" for i in (7, 6, 5, 4, 3)]


def test_empty_input_returns_empty_list(aggregator):
    assert aggregator.aggregate([], now=NOW) == []


def test_entities_without_signals_are_absent(aggregator):
    rollups = aggregator.aggregate([_signal("trenchcoat")], now=NOW)
    assert [r.entity for r in rollups] == ["trenchcoat"]


def test_groups_case_and_whitespace_insensitively(aggregator):
    signals = [_signal("Quiet  Luxury", score=0.9), _signal("quiet luxury", score=0.1)]
    [rollup] = aggregator.aggregate(signals, now=NOW)

    assert rollup.sample_count == 2
    assert rollup.entity == "Quiet  Luxury"
    assert entity_key("  Quiet   LUXURY ") == "quiet luxury"


def test_top_k_limits_samples():
    aggregator = Aggregator(AggregationOptions(top_k_per_entity=2))
    signals = [_signal(score=s) for s in (0.9, 0.7, 0.1)]
    [rollup] = aggregator.aggregate(signals, now=NOW)

    assert rollup.sample_count == 2
    assert rollup.heat == pytest.approx(0.8)


def test_confidence_saturates(aggregator):
    [rollup] = aggregator.aggregate([_signal() for _ in range(25)], now=NOW)
    assert rollup.confidence == 1.0


def test_momentum_from_prior_rollup(aggregator):
    prior = EntityRollup(
        entity="trenchcoat",
        heat=0.4,
        momentum=0.0,
        forecast=0.4,
        confidence=0.5,
        classification=Classification.AWARE,
        link="https://example.com",
        computed_at=NOW - timedelta(days=1),
    )
    [rollup] = aggregator.aggregate([_signal(score=0.6, velocity=0.9)], prior_rollups=[prior], now=NOW)

    assert rollup.momentum == pytest.approx(0.2)
    assert rollup.forecast == pytest.approx(0.8)


def test_momentum_from_signal_history(aggregator):
    history = [_signal(score=0.2, observed_at=NOW - timedelta(days=10))]
    [rollup] = aggregator.aggregate([_signal(score=0.8, velocity=0.0)], history=history, now=NOW)

    # recent window holds only the current signal; long window averages both
    assert rollup.momentum == pytest.approx(0.8 - 0.5)


def test_momentum_can_be_negative(aggregator):
    history = [_signal(score=0.9, observed_at=NOW - timedelta(days=5))]
    [rollup] = aggregator.aggregate([_signal(score=0.3)], history=history, now=NOW)

    assert rollup.momentum == pytest.approx(0.3 - 0.6)
    assert rollup.forecast == pytest.approx(0.0)


def test_history_outside_long_window_is_ignored(aggregator):
    history = [_signal(score=0.0, observed_at=NOW - timedelta(days=30))]
    [rollup] = aggregator.aggregate([_signal(score=0.5, velocity=0.25)], history=history, now=NOW)

    assert rollup.momentum == pytest.approx(0.25)


@pytest.mark.parametrize(
    "heat, momentum, expected",
    [
        (0.8, 0.1, Classification.ACT),
        (0.8, 0.0, Classification.WATCH),
        (0.75, 0.01, Classification.ACT),
        (0.5, -0.2, Classification.WATCH),
        (0.49, 0.9, Classification.AWARE),
    ],
)
def test_classification(aggregator, heat, momentum, expected):
    assert aggregator.classify(heat, momentum) is expected


def test_ranking_by_heat_then_volume_then_name(aggregator):
    signals = [
        _signal("loafers", score=0.5, views=100),
        _signal("trenchcoat", score=0.5, views=5_000),
        _signal("quiet luxury", score=0.9),
        _signal("ballet flats", score=0.5, views=100),
    ]
    rollups = aggregator.aggregate(signals, now=NOW)

    assert [r.entity for r in rollups] == ["quiet luxury", "trenchcoat", "ballet flats", "loafers"]
    assert rollups[1].volume == 5_000


def test_rollups_carry_region_and_timestamp(aggregator):
    [rollup] = aggregator.aggregate([_signal()], region="Nordic", now=NOW)
    assert rollup.region == "Nordic"
    assert rollup.computed_at == NOW
