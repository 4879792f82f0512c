from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urlparse

from trendpulse.core.exceptions import ProviderResponseError
from trendpulse.domain.models import ProviderKind, RawItem
from trendpulse.providers.base import ProviderAdapter, age_in_days, parse_timestamp

MAX_RECORDS = 75
MAX_TIMESPAN_HOURS = 90 * 24


class GdeltAdapter(ProviderAdapter):
    """GDELT DOC 2.0 article search (news index). Needs no credentials."""

    name = "gdelt"
    kind = ProviderKind.NEWS
    BASE_URL = "https://api.gdeltproject.org/api/v2/doc/doc"

    async def fetch(self, query: str, region: str, *, limit: int = 30, lookback_days: int = 14) -> list[RawItem]:
        if not query:
            return []

        payload = await self._get_json(
            self.BASE_URL,
            params={
                "query": f'"{query}"' if " " in query else query,
                "mode": "ArtList",
                "format": "json",
                "maxrecords": min(limit, MAX_RECORDS),
                "timespan": f"{min(lookback_days * 24, MAX_TIMESPAN_HOURS)}h",
                "sort": "DateDesc",
            },
        )
        if not isinstance(payload, dict):
            raise ProviderResponseError("gdelt returned an unexpected envelope", provider=self.name)

        now = datetime.now(timezone.utc)
        items: list[RawItem] = []
        for article in payload.get("articles") or []:
            if not isinstance(article, dict):
                continue
            link = article.get("url") or article.get("sourceurl") or ""
            if not link:
                continue
            published_at = parse_timestamp(article.get("seendate"))
            domain = (article.get("domain") or urlparse(link).hostname or "").lower()
            metrics: dict[str, object] = {"domain": domain}
            age = age_in_days(published_at, now)
            if age is not None:
                metrics["age_days"] = age
            items.append(
                RawItem(
                    provider=self.name,
                    source_id=link,
                    title=article.get("title") or domain,
                    url=link,
                    observed_at=now,
                    published_at=published_at,
                    metrics=metrics,
                )
            )
        return items[:limit]
