from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from trendpulse.domain.models import ProviderKind, RawItem
from trendpulse.domain.sources import region_code
from trendpulse.providers.base import ProviderAdapter, age_in_days, parse_timestamp, to_number

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50


class YouTubeAdapter(ProviderAdapter):
    """
    YouTube Data API v3 adapter (video platform).

    Runs search, then fetches video statistics and channel subscriber counts,
    which stand in for authority.
    """

    name = "youtube"
    kind = ProviderKind.VIDEO
    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    async def fetch(self, query: str, region: str, *, limit: int = 30, lookback_days: int = 14) -> list[RawItem]:
        if not query:
            return []

        published_after = datetime.now(timezone.utc) - timedelta(days=lookback_days)
        search = await self._get_json(
            f"{self.BASE_URL}/search",
            params={
                "key": self.api_key,
                "part": "id,snippet",
                "q": query,
                "type": "video",
                "order": "relevance",
                "maxResults": min(max(3, limit), MAX_SEARCH_RESULTS),
                "regionCode": region_code(region),
                "publishedAfter": published_after.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
        )
        video_ids = [
            item.get("id", {}).get("videoId")
            for item in search.get("items", [])
            if isinstance(item, dict) and isinstance(item.get("id"), dict)
        ]
        video_ids = [video_id for video_id in video_ids if video_id]
        if not video_ids:
            return []

        videos = await self._get_json(
            f"{self.BASE_URL}/videos",
            params={"key": self.api_key, "part": "id,snippet,statistics", "id": ",".join(video_ids)},
        )
        video_items: list[dict[str, Any]] = [v for v in videos.get("items", []) if isinstance(v, dict)]
        channel_subs = await self._channel_subscribers(video_items)

        now = datetime.now(timezone.utc)
        items: list[RawItem] = []
        for video in video_items:
            snippet = video.get("snippet") or {}
            stats = video.get("statistics") or {}
            video_id = video.get("id")
            published_at = parse_timestamp(snippet.get("publishedAt"))
            metrics: dict[str, Any] = {
                "views": to_number(stats.get("viewCount")),
                # likeCount is hidden on many videos
                "likes": to_number(stats.get("likeCount")),
                "comments": to_number(stats.get("commentCount")),
                "channel_followers": channel_subs.get(snippet.get("channelId", ""), 0.0),
            }
            age = age_in_days(published_at, now)
            if age is not None:
                metrics["age_days"] = age
            items.append(
                RawItem(
                    provider=self.name,
                    source_id=video_id,
                    title=snippet.get("title") or query,
                    url=f"https://www.youtube.com/watch?v={video_id}",
                    observed_at=now,
                    published_at=published_at,
                    metrics=metrics,
                )
            )

        items.sort(key=lambda item: item.metrics["views"], reverse=True)
        return items[:limit]

    async def _channel_subscribers(self, videos: list[dict[str, Any]]) -> dict[str, float]:
        channel_ids = sorted({(v.get("snippet") or {}).get("channelId") for v in videos} - {None, ""})
        if not channel_ids:
            return {}
        channels = await self._get_json(
            f"{self.BASE_URL}/channels",
            params={"key": self.api_key, "part": "statistics", "id": ",".join(channel_ids)},
        )
        return {
            channel["id"]: to_number((channel.get("statistics") or {}).get("subscriberCount"))
            for channel in channels.get("items", [])
            if isinstance(channel, dict) and channel.get("id")
        }
