from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import numpy as np

from trendpulse.core.exceptions import ProviderResponseError
from trendpulse.domain.models import ProviderKind, RawItem
from trendpulse.domain.sources import region_code, search_link
from trendpulse.providers.base import ProviderAdapter, parse_timestamp, to_number

# Share of the timeline treated as "recent" when computing the rank delta.
RECENT_SHARE = 0.25
INDEX_SCALE = 100.0


def _timeframe(lookback_days: int) -> str:
    if lookback_days <= 7:
        return "now 7-d"
    if lookback_days <= 30:
        return "today 1-m"
    return "today 3-m"


def rank_delta(values: list[float]) -> float:
    """Difference between the recent and earlier mean interest, scaled to -1..1."""
    if len(values) < 2:
        return 0.0
    split = max(1, int(round(len(values) * RECENT_SHARE)))
    recent = np.mean(values[-split:])
    earlier = np.mean(values[:-split])
    return float(np.clip((recent - earlier) / INDEX_SCALE, -1.0, 1.0))


class TrendsAdapter(ProviderAdapter):
    """
    Google Trends interest-over-time via the SerpApi JSON API (search-trend index).

    Emits a single item per query: the latest relative search volume (0..100)
    and the short-window rank delta.
    """

    name = "trends"
    kind = ProviderKind.SEARCH_TREND
    BASE_URL = "https://serpapi.com/search.json"

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    async def fetch(self, query: str, region: str, *, limit: int = 30, lookback_days: int = 14) -> list[RawItem]:
        if not query:
            return []

        payload = await self._get_json(
            self.BASE_URL,
            params={
                "engine": "google_trends",
                "q": query,
                "geo": region_code(region),
                "date": _timeframe(lookback_days),
                "data_type": "TIMESERIES",
                "api_key": self.api_key,
            },
        )
        if not isinstance(payload, dict):
            raise ProviderResponseError("trends returned an unexpected envelope", provider=self.name)
        if payload.get("error"):
            raise ProviderResponseError(f"trends error: {payload['error']}", provider=self.name)

        timeline: list[dict[str, Any]] = (payload.get("interest_over_time") or {}).get("timeline_data") or []
        values: list[float] = []
        last_timestamp: Any = None
        for point in timeline:
            point_values = point.get("values") or []
            if not point_values:
                continue
            first = point_values[0]
            values.append(to_number(first.get("extracted_value", first.get("value"))))
            last_timestamp = point.get("timestamp")
        if not values:
            return []

        # Last timeline point; the series is weekly for long windows.
        published_at = parse_timestamp(to_number(last_timestamp)) if last_timestamp else None
        return [
            RawItem(
                provider=self.name,
                source_id=f"{query}:{last_timestamp or ''}",
                title=f"Search interest for {query}",
                url=search_link(self.name, query, region),
                observed_at=datetime.now(timezone.utc),
                published_at=published_at,
                metrics={
                    "search_volume": values[-1],
                    "rank_delta": rank_delta(values),
                    "points": float(len(values)),
                },
            )
        ]
