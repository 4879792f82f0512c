from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trendpulse.core.config import MAX_CITATIONS, MAX_KEYWORD_LENGTH, MAX_REGION_LENGTH
from trendpulse.core.exceptions import ErrorKind

UnitFloat = Annotated[float, Field(ge=0.0, le=1.0, allow_inf_nan=False)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def entity_key(entity: str) -> str:
    """Case- and whitespace-insensitive grouping key for an entity name."""
    return " ".join(entity.split()).casefold()


class ProviderKind(str, Enum):
    """Provider families; each has its own normalization and quality rules."""

    VIDEO = "video"
    NEWS = "news"
    SEARCH_TREND = "search_trend"
    DISCUSSION = "discussion"


class Classification(str, Enum):
    ACT = "Act"
    WATCH = "Watch"
    AWARE = "Aware"


class BreakerStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    OPENED = "opened"


class RawItem(BaseModel):
    """Candidate record returned by a provider adapter before normalization."""

    provider: str
    source_id: str | None = None
    title: str | None = None
    url: str | None = None
    observed_at: datetime = Field(default_factory=utc_now)
    published_at: datetime | None = None
    metrics: dict[str, Any] = Field(default_factory=dict)
    engagement: float | None = None
    velocity: float | None = None
    authority: float | None = None

    @field_validator("observed_at", "published_at")
    @classmethod
    def ensure_aware(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class Signal(BaseModel):
    """One normalized observation of an entity's traction from one provider."""

    model_config = ConfigDict(frozen=True)

    region: str = Field(min_length=1)
    entity: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    source_id: str | None = None
    raw_metrics: dict[str, float] = Field(default_factory=dict)
    engagement: UnitFloat
    velocity: UnitFloat
    authority: UnitFloat
    score: UnitFloat = 0.0
    observed_at: datetime = Field(default_factory=utc_now)
    url: str | None = None
    title: str | None = None

    @field_validator("entity", "provider", "region")
    @classmethod
    def strip_required(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("must not be blank")
        return cleaned

    @field_validator("observed_at")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def volume(self) -> float:
        return float(self.raw_metrics.get("views", 0.0))


class ProviderCallResult(BaseModel):
    """Outcome of one guarded adapter invocation."""

    provider: str
    ok: bool
    items: list[Any] = Field(default_factory=list)
    error_kind: ErrorKind | None = None
    error: str | None = None
    attempts: int = 0
    breaker_state: BreakerStatus = BreakerStatus.CLOSED


class Citation(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    title: str
    url: str
    authority: float = 0.0
    observed_at: datetime | None = None


class EntityRollup(BaseModel):
    """Aggregated, immutable view of one entity within a region."""

    model_config = ConfigDict(frozen=True)

    entity: str
    region: str = "All"
    heat: float = Field(ge=0.0, le=1.0)
    momentum: float = Field(ge=-1.0, le=1.0)
    forecast: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    classification: Classification
    citations: list[Citation] = Field(default_factory=list, max_length=MAX_CITATIONS)
    link: str = Field(min_length=1)
    sample_count: int = 0
    volume: float = 0.0
    computed_at: datetime = Field(default_factory=utc_now)


def clean_keywords(values: list[str]) -> list[str]:
    """Trim, drop blanks and de-duplicate case-insensitively, keeping first spelling."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for keyword in values:
        term = " ".join(keyword.split())
        if not term:
            continue
        if len(term) > MAX_KEYWORD_LENGTH:
            raise ValueError(f"keyword '{term[:20]}...' exceeds {MAX_KEYWORD_LENGTH} characters")
        key = term.casefold()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(term)
    return cleaned


def clean_region(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("region must not be blank")
    return cleaned


class ResearchRequest(BaseModel):
    region: str = Field(default="All", min_length=1, max_length=MAX_REGION_LENGTH)
    keywords: list[str] = Field(default_factory=list)
    lookback_days: int = Field(default=14, ge=1, le=90)
    max_results_per_entity: int = Field(default=30, ge=1, le=50)

    @field_validator("region")
    @classmethod
    def strip_region(cls, v: str) -> str:
        return clean_region(v)

    @field_validator("keywords")
    @classmethod
    def strip_keywords(cls, v: list[str]) -> list[str]:
        return clean_keywords(v)


class ResearchResult(BaseModel):
    region: str
    keywords: list[str]
    entities: list[EntityRollup] = Field(default_factory=list)
    total_signals_processed: int = 0
    per_provider_counts: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)


class SourceLeader(BaseModel):
    key: str
    provider: str
    source: str
    samples: int
    avg_engagement: float
    authority: float
    rank: float


class WatchlistUpdate(BaseModel):
    """Keywords to add to and remove from a region's watchlist."""

    region: str = Field(default="All", min_length=1, max_length=MAX_REGION_LENGTH)
    keywords: list[str] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)

    @field_validator("region")
    @classmethod
    def strip_region(cls, v: str) -> str:
        return clean_region(v)

    @field_validator("keywords", "remove")
    @classmethod
    def strip_keywords(cls, v: list[str]) -> list[str]:
        return clean_keywords(v)


class Watchlist(BaseModel):
    region: str
    keywords: list[str] = Field(default_factory=list)


class FeedEntry(BaseModel):
    """One item of an editorial RSS or Atom feed, with markup stripped."""

    source: str
    weight: float = Field(ge=0.0, le=1.0)
    title: str = ""
    summary: str = ""
    url: str = Field(min_length=1)
    published_at: datetime | None = None


class EditorialCitation(BaseModel):
    entity: str
    source: str
    url: str
    title: str
    score: float


class NewsIngestRequest(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    limit_per_keyword: int = Field(default=3, ge=1, le=MAX_CITATIONS)

    @field_validator("keywords")
    @classmethod
    def strip_keywords(cls, v: list[str]) -> list[str]:
        return clean_keywords(v)


class NewsIngestResult(BaseModel):
    citations: list[EditorialCitation] = Field(default_factory=list)
    count: int = 0
    warnings: list[str] = Field(default_factory=list)
