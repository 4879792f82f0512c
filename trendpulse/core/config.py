"""
Service configuration.

Every key is optional: providers without credentials are simply not
registered and storage falls back to the in-process repository, so the
service starts in any environment and degrades instead of failing.
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Constants
PROVIDER_HTTP_TIMEOUT_SECONDS = 10.0
MAX_KEYWORD_LENGTH = 48
MAX_REGION_LENGTH = 40
LEADERS_SIGNAL_WINDOW = 500
DEFAULT_KEYWORDS = ("trenchcoat", "loafers", "quiet luxury")
MAX_CITATIONS = 5
BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 4000
BACKOFF_JITTER_MS = 250


class GuardOptions(BaseModel):
    """Timeout, retry and circuit-breaker options for guarded provider calls."""

    timeout_ms: int = Field(default=12_000, gt=0)
    max_retries: int = Field(default=2, ge=0)
    breaker_failure_threshold: int = Field(default=3, ge=1)
    breaker_open_ms: int = Field(default=60_000, ge=0)

    def worst_case_seconds(self) -> float:
        """Longest a guarded call can run: every attempt timing out plus maximum backoff between attempts."""
        backoff_ms = sum(
            min(BACKOFF_BASE_MS * 2 ** attempt, BACKOFF_CAP_MS) + BACKOFF_JITTER_MS
            for attempt in range(self.max_retries)
        )
        return ((self.max_retries + 1) * self.timeout_ms + backoff_ms) / 1000


class ScoreWeights(BaseModel):
    engagement: float = Field(default=0.45, ge=0.0)
    velocity: float = Field(default=0.30, ge=0.0)
    authority: float = Field(default=0.25, ge=0.0)


class AggregationOptions(BaseModel):
    top_k_per_entity: int = Field(default=30, ge=1)
    min_samples_for_full_confidence: int = Field(default=20, ge=1)
    max_citations: int = Field(default=MAX_CITATIONS, ge=1, le=MAX_CITATIONS)
    recent_window_days: float = Field(default=3.0, gt=0)
    long_window_days: float = Field(default=14.0, gt=0)
    act_heat_threshold: float = 0.75
    watch_heat_threshold: float = 0.50

    @model_validator(mode="after")
    def validate_windows(self) -> "AggregationOptions":
        if self.recent_window_days > self.long_window_days:
            raise ValueError("recent_window_days must not exceed long_window_days")
        return self


class NormalizationConstants(BaseModel):
    """Per-provider-family constants used to derive signal dimensions."""

    log_denominator: float = Field(default=7.0, gt=0)
    video_authority_ceiling: float = Field(default=2_000_000.0, gt=0)
    video_velocity_divisor: float = Field(default=1_000_000.0, gt=0)
    video_age_exponent: float = Field(default=1.2, ge=0)
    video_view_weight: float = Field(default=0.6, ge=0)
    video_like_weight: float = Field(default=0.4, ge=0)
    trend_volume_scale: float = Field(default=100.0, gt=0)
    trend_authority: float = Field(default=0.6, ge=0, le=1)
    news_half_life_days: float = Field(default=7.0, gt=0)
    news_default_domain_rank: float = Field(default=60.0, ge=0, le=100)
    news_default_domain_weight: float = Field(default=0.6, ge=0, le=1)
    discussion_half_life_days: float = Field(default=4.0, gt=0)
    discussion_upvote_weight: float = Field(default=0.6, ge=0)
    discussion_comment_weight: float = Field(default=0.4, ge=0)
    discussion_default_authority: float = Field(default=0.5, ge=0, le=1)
    unknown_age_recency: float = Field(default=0.5, ge=0, le=1)


class QualityThresholds(BaseModel):
    """Minimum raw-metric thresholds per provider family."""

    video_min_views: float = Field(default=30_000, ge=0)
    video_min_views_engaged: float = Field(default=10_000, ge=0)
    video_min_like_rate: float = Field(default=0.02, ge=0)
    discussion_min_upvotes: float = Field(default=50, ge=0)
    discussion_min_comments: float = Field(default=10, ge=0)
    trend_min_volume: float = Field(default=0.25, ge=0)
    trend_min_rank_delta: float = Field(default=0.12)
    min_score_by_provider: dict[str, float] = Field(default_factory=dict)


class Settings(BaseSettings):
    """
    Application settings with validation.
    Credentials are optional; only configured providers are registered.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # OPTIONAL: Provider credentials
    YOUTUBE_API_KEY: str | None = None
    SERPAPI_API_KEY: str | None = None
    REDDIT_CLIENT_ID: str | None = None
    REDDIT_CLIENT_SECRET: str | None = None
    REDDIT_USERNAME: str | None = None
    REDDIT_PASSWORD: str | None = None
    REDDIT_USER_AGENT: str = "trendpulse/1.0"
    GDELT_ENABLED: bool = True

    # OPTIONAL: Google Sheets storage (in-memory repository when missing)
    GOOGLE_CREDENTIALS: str | None = None  # JSON string of service account credentials
    SHEET_ID: str | None = None

    # Resilience guard
    GUARD_TIMEOUT_MS: int = 12_000
    GUARD_MAX_RETRIES: int = 2
    FEED_MAX_RETRIES: int = Field(default=0, ge=0)
    BREAKER_FAILURE_THRESHOLD: int = 3
    BREAKER_OPEN_MS: int = 60_000

    # Scoring and aggregation
    SCORE_WEIGHT_ENGAGEMENT: float = 0.45
    SCORE_WEIGHT_VELOCITY: float = 0.30
    SCORE_WEIGHT_AUTHORITY: float = 0.25
    TOP_K_PER_ENTITY: int = 30
    MIN_SAMPLES_FOR_FULL_CONFIDENCE: int = 20
    MOMENTUM_RECENT_DAYS: float = 3.0
    MOMENTUM_LONG_DAYS: float = 14.0
    MAX_CITATIONS_PER_ENTITY: int = MAX_CITATIONS

    # Normalization constants
    NORM_LOG_DENOMINATOR: float = 7.0
    NORM_VIDEO_AUTHORITY_CEILING: float = 2_000_000.0
    NORM_VIDEO_VELOCITY_DIVISOR: float = 1_000_000.0
    NORM_VIDEO_AGE_EXPONENT: float = 1.2
    NORM_VIDEO_VIEW_WEIGHT: float = 0.6
    NORM_VIDEO_LIKE_WEIGHT: float = 0.4
    NORM_TREND_VOLUME_SCALE: float = 100.0
    NORM_TREND_AUTHORITY: float = 0.6
    NORM_NEWS_HALF_LIFE_DAYS: float = 7.0
    NORM_NEWS_DEFAULT_DOMAIN_RANK: float = 60.0
    NORM_NEWS_DEFAULT_DOMAIN_WEIGHT: float = 0.6
    NORM_DISCUSSION_HALF_LIFE_DAYS: float = 4.0
    NORM_DISCUSSION_UPVOTE_WEIGHT: float = 0.6
    NORM_DISCUSSION_COMMENT_WEIGHT: float = 0.4
    NORM_DISCUSSION_DEFAULT_AUTHORITY: float = 0.5
    NORM_UNKNOWN_AGE_RECENCY: float = 0.5

    # Quality gate
    GATE_VIDEO_MIN_VIEWS: float = 30_000
    GATE_VIDEO_MIN_VIEWS_ENGAGED: float = 10_000
    GATE_VIDEO_MIN_LIKE_RATE: float = 0.02
    GATE_DISCUSSION_MIN_UPVOTES: float = 50
    GATE_DISCUSSION_MIN_COMMENTS: float = 10
    GATE_TREND_MIN_VOLUME: float = 0.25
    GATE_TREND_MIN_RANK_DELTA: float = 0.12
    GATE_MIN_SCORE_BY_PROVIDER: dict[str, float] = Field(default_factory=dict)  # JSON, e.g. {"gdelt": 0.2}

    # Request handling
    MAX_KEYWORDS: int = 10
    REQUEST_DEADLINE_SECONDS: float = 25.0
    PERSISTENCE_QUEUE_SIZE: int = 100
    PERSISTENCE_DRAIN_SECONDS: float = 5.0
    EDITORIAL_ALLOWLIST: str | None = None  # comma-separated domains
    DEFAULT_KEYWORDS: str = "trenchcoat,loafers,quiet luxury"

    # OPTIONAL: Application Settings
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "production"
    CORS_ORIGINS: list[str] = Field(default_factory=list)

    @field_validator("YOUTUBE_API_KEY", "SERPAPI_API_KEY", "GOOGLE_CREDENTIALS", "SHEET_ID")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat empty strings as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("SCORE_WEIGHT_ENGAGEMENT", "SCORE_WEIGHT_VELOCITY", "SCORE_WEIGHT_AUTHORITY")
    @classmethod
    def validate_weight(cls, v: float, info) -> float:
        if v < 0:
            raise ValueError(f"{info.field_name} cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_google_credentials_json(self) -> "Settings":
        """Validate that GOOGLE_CREDENTIALS, when present, is a JSON object."""
        if self.GOOGLE_CREDENTIALS is None:
            return self
        try:
            credentials_dict = json.loads(self.GOOGLE_CREDENTIALS)
        except json.JSONDecodeError as e:
            raise ValueError(f"GOOGLE_CREDENTIALS is not valid JSON: {e}") from e
        if not isinstance(credentials_dict, dict):
            raise ValueError("GOOGLE_CREDENTIALS must be a JSON object")
        return self

    @model_validator(mode="after")
    def validate_derived_options(self) -> "Settings":
        """Build every option group once so bad values fail at startup, and check the request deadline."""
        self.aggregation_options()
        self.normalization_constants()
        self.quality_thresholds()
        if self.REQUEST_DEADLINE_SECONDS <= 0:
            raise ValueError("REQUEST_DEADLINE_SECONDS must be positive")
        worst_case = self.guard_options().worst_case_seconds()
        if self.REQUEST_DEADLINE_SECONDS < worst_case:
            logger.warning(
                "REQUEST_DEADLINE_SECONDS=%s is shorter than a fully retried provider call (%.1fs); "
                "calls cancelled at the deadline count as provider timeouts",
                self.REQUEST_DEADLINE_SECONDS,
                worst_case,
            )
        return self

    @property
    def reddit_configured(self) -> bool:
        return all((self.REDDIT_CLIENT_ID, self.REDDIT_CLIENT_SECRET, self.REDDIT_USERNAME, self.REDDIT_PASSWORD))

    @property
    def storage_configured(self) -> bool:
        return bool(self.GOOGLE_CREDENTIALS and self.SHEET_ID)

    @property
    def editorial_allowlist(self) -> list[str]:
        if not self.EDITORIAL_ALLOWLIST:
            return []
        return [domain.strip().lower() for domain in self.EDITORIAL_ALLOWLIST.split(",") if domain.strip()]

    @property
    def default_keywords(self) -> list[str]:
        return [keyword.strip() for keyword in self.DEFAULT_KEYWORDS.split(",") if keyword.strip()]

    def guard_options(self) -> GuardOptions:
        return GuardOptions(
            timeout_ms=self.GUARD_TIMEOUT_MS,
            max_retries=self.GUARD_MAX_RETRIES,
            breaker_failure_threshold=self.BREAKER_FAILURE_THRESHOLD,
            breaker_open_ms=self.BREAKER_OPEN_MS,
        )

    def feed_guard_options(self) -> GuardOptions:
        """Guard options for editorial feeds: provider timeouts and breaker, fewer retries."""
        return self.guard_options().model_copy(update={"max_retries": self.FEED_MAX_RETRIES})

    def score_weights(self) -> ScoreWeights:
        return ScoreWeights(
            engagement=self.SCORE_WEIGHT_ENGAGEMENT,
            velocity=self.SCORE_WEIGHT_VELOCITY,
            authority=self.SCORE_WEIGHT_AUTHORITY,
        )

    def aggregation_options(self) -> AggregationOptions:
        return AggregationOptions(
            top_k_per_entity=self.TOP_K_PER_ENTITY,
            min_samples_for_full_confidence=self.MIN_SAMPLES_FOR_FULL_CONFIDENCE,
            recent_window_days=self.MOMENTUM_RECENT_DAYS,
            long_window_days=self.MOMENTUM_LONG_DAYS,
            max_citations=self.MAX_CITATIONS_PER_ENTITY,
        )

    def normalization_constants(self) -> NormalizationConstants:
        return NormalizationConstants(
            log_denominator=self.NORM_LOG_DENOMINATOR,
            video_authority_ceiling=self.NORM_VIDEO_AUTHORITY_CEILING,
            video_velocity_divisor=self.NORM_VIDEO_VELOCITY_DIVISOR,
            video_age_exponent=self.NORM_VIDEO_AGE_EXPONENT,
            video_view_weight=self.NORM_VIDEO_VIEW_WEIGHT,
            video_like_weight=self.NORM_VIDEO_LIKE_WEIGHT,
            trend_volume_scale=self.NORM_TREND_VOLUME_SCALE,
            trend_authority=self.NORM_TREND_AUTHORITY,
            news_half_life_days=self.NORM_NEWS_HALF_LIFE_DAYS,
            news_default_domain_rank=self.NORM_NEWS_DEFAULT_DOMAIN_RANK,
            news_default_domain_weight=self.NORM_NEWS_DEFAULT_DOMAIN_WEIGHT,
            discussion_half_life_days=self.NORM_DISCUSSION_HALF_LIFE_DAYS,
            discussion_upvote_weight=self.NORM_DISCUSSION_UPVOTE_WEIGHT,
            discussion_comment_weight=self.NORM_DISCUSSION_COMMENT_WEIGHT,
            discussion_default_authority=self.NORM_DISCUSSION_DEFAULT_AUTHORITY,
            unknown_age_recency=self.NORM_UNKNOWN_AGE_RECENCY,
        )

    def quality_thresholds(self) -> QualityThresholds:
        return QualityThresholds(
            video_min_views=self.GATE_VIDEO_MIN_VIEWS,
            video_min_views_engaged=self.GATE_VIDEO_MIN_VIEWS_ENGAGED,
            video_min_like_rate=self.GATE_VIDEO_MIN_LIKE_RATE,
            discussion_min_upvotes=self.GATE_DISCUSSION_MIN_UPVOTES,
            discussion_min_comments=self.GATE_DISCUSSION_MIN_COMMENTS,
            trend_min_volume=self.GATE_TREND_MIN_VOLUME,
            trend_min_rank_delta=self.GATE_TREND_MIN_RANK_DELTA,
            min_score_by_provider=self.GATE_MIN_SCORE_BY_PROVIDER,
        )

    def log_startup_summary(self) -> None:
        """Log configuration summary on startup (without leaking secrets)."""
        logger.info("=" * 60)
        logger.info("TrendPulse - Configuration")
        logger.info("=" * 60)
        logger.info("Environment: %s", self.ENVIRONMENT)
        logger.info("Log Level: %s", self.LOG_LEVEL)
        logger.info("YouTube API Key: %s", "✓ Present" if self.YOUTUBE_API_KEY else "○ Not set (provider disabled)")
        logger.info("SerpApi Key: %s", "✓ Present" if self.SERPAPI_API_KEY else "○ Not set (provider disabled)")
        logger.info("Reddit Credentials: %s", "✓ Present" if self.reddit_configured else "○ Not set (provider disabled)")
        logger.info("GDELT: %s", "✓ Enabled" if self.GDELT_ENABLED else "○ Disabled")
        logger.info("Storage: %s", "Google Sheets" if self.storage_configured else "In-memory")
        logger.info(
            "Guard: timeout=%sms retries=%s breaker=%s/%sms",
            self.GUARD_TIMEOUT_MS,
            self.GUARD_MAX_RETRIES,
            self.BREAKER_FAILURE_THRESHOLD,
            self.BREAKER_OPEN_MS,
        )
        logger.info("=" * 60)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    settings.log_startup_summary()
    return settings
