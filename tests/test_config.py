"""
Tests for settings parsing and the derived option objects.
"""
from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError as ModelValidationError

from trendpulse.core.config import AggregationOptions, GuardOptions, Settings
from trendpulse.core.logging import JsonFormatter


def test_defaults_leave_providers_unconfigured():
    settings = Settings(_env_file=None)

    assert settings.reddit_configured is False
    assert settings.storage_configured is False
    assert settings.default_keywords == ["trenchcoat", "loafers", "quiet luxury"]
    assert settings.editorial_allowlist == []


def test_blank_keys_are_treated_as_unset():
    settings = Settings(_env_file=None, YOUTUBE_API_KEY="   ", SHEET_ID="")
    assert settings.YOUTUBE_API_KEY is None
    assert settings.SHEET_ID is None


def test_negative_weight_is_rejected():
    with pytest.raises(ModelValidationError):
        Settings(_env_file=None, SCORE_WEIGHT_VELOCITY=-0.1)


@pytest.mark.parametrize("payload", ["not json", "[1, 2]"])
def test_google_credentials_must_be_json_object(payload):
    with pytest.raises(ModelValidationError):
        Settings(_env_file=None, GOOGLE_CREDENTIALS=payload)


def test_derived_options():
    settings = Settings(
        _env_file=None,
        GUARD_TIMEOUT_MS=5000,
        GUARD_MAX_RETRIES=1,
        SCORE_WEIGHT_ENGAGEMENT=0.5,
        TOP_K_PER_ENTITY=10,
        EDITORIAL_ALLOWLIST=" Vogue.com, wwd.com ,,",
    )

    assert settings.guard_options().timeout_ms == 5000
    assert settings.guard_options().max_retries == 1
    assert settings.guard_options().breaker_failure_threshold == 3
    assert settings.score_weights().engagement == 0.5
    assert settings.aggregation_options().top_k_per_entity == 10
    assert settings.editorial_allowlist == ["vogue.com", "wwd.com"]


def test_normalization_and_gate_settings_are_loaded_from_env(monkeypatch):
    monkeypatch.setenv("NORM_NEWS_HALF_LIFE_DAYS", "5")
    monkeypatch.setenv("NORM_VIDEO_AUTHORITY_CEILING", "1000000")
    monkeypatch.setenv("GATE_VIDEO_MIN_VIEWS", "50000")
    monkeypatch.setenv("GATE_MIN_SCORE_BY_PROVIDER", '{"gdelt": 0.2}')
    settings = Settings(_env_file=None)

    constants = settings.normalization_constants()
    assert constants.news_half_life_days == 5
    assert constants.video_authority_ceiling == 1_000_000
    assert constants.discussion_half_life_days == 4.0

    thresholds = settings.quality_thresholds()
    assert thresholds.video_min_views == 50_000
    assert thresholds.discussion_min_upvotes == 50
    assert thresholds.min_score_by_provider == {"gdelt": 0.2}


@pytest.mark.parametrize(
    "overrides",
    [
        {"NORM_NEWS_HALF_LIFE_DAYS": 0},
        {"NORM_TREND_AUTHORITY": 1.5},
        {"GATE_VIDEO_MIN_VIEWS": -1},
        {"MAX_CITATIONS_PER_ENTITY": 6},
        {"REQUEST_DEADLINE_SECONDS": 0},
    ],
)
def test_invalid_derived_options_fail_at_startup(overrides):
    with pytest.raises(ModelValidationError):
        Settings(_env_file=None, **overrides)


def test_citation_cap_matches_rollup_limit():
    assert AggregationOptions(max_citations=5).max_citations == 5
    with pytest.raises(ModelValidationError):
        AggregationOptions(max_citations=6)


def test_guard_worst_case_duration():
    # three 12s attempts plus 1.25s and 2.25s of maximum backoff
    assert GuardOptions().worst_case_seconds() == pytest.approx(39.5)
    assert GuardOptions(timeout_ms=1000, max_retries=0).worst_case_seconds() == pytest.approx(1.0)


def test_short_request_deadline_is_reported(caplog):
    with caplog.at_level(logging.WARNING, logger="trendpulse.core.config"):
        Settings(_env_file=None, REQUEST_DEADLINE_SECONDS=25)
    assert "shorter than a fully retried provider call" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="trendpulse.core.config"):
        Settings(_env_file=None, REQUEST_DEADLINE_SECONDS=60)
    assert "shorter than a fully retried provider call" not in caplog.text


def test_recent_window_cannot_exceed_long_window():
    with pytest.raises(ModelValidationError):
        AggregationOptions(recent_window_days=20, long_window_days=14)


def test_json_formatter_promotes_context_fields():
    record = logging.LogRecord("trendpulse.test", logging.WARNING, __file__, 1, "Provider %s failed", ("reddit",), None)
    record.provider = "reddit"
    record.attempt = 2
    record.unrelated = "ignored"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["module"] == "trendpulse.test"
    assert payload["message"] == "Provider reddit failed"
    assert payload["provider"] == "reddit"
    assert payload["attempt"] == 2
    assert "unrelated" not in payload
