from __future__ import annotations

import logging

from trendpulse.core.config import Settings
from trendpulse.providers.base import ProviderAdapter
from trendpulse.providers.gdelt import GdeltAdapter
from trendpulse.providers.reddit import RedditAdapter
from trendpulse.providers.trends import TrendsAdapter
from trendpulse.providers.youtube import YouTubeAdapter

logger = logging.getLogger(__name__)


def build_adapters(settings: Settings) -> list[ProviderAdapter]:
    """Instantiate every provider whose credentials are configured."""
    adapters: list[ProviderAdapter] = []
    if settings.YOUTUBE_API_KEY:
        adapters.append(YouTubeAdapter(settings.YOUTUBE_API_KEY))
    else:
        logger.warning("YOUTUBE_API_KEY not set; video provider disabled.")
    if settings.GDELT_ENABLED:
        adapters.append(GdeltAdapter())
    if settings.SERPAPI_API_KEY:
        adapters.append(TrendsAdapter(settings.SERPAPI_API_KEY))
    else:
        logger.warning("SERPAPI_API_KEY not set; search-trend provider disabled.")
    if settings.reddit_configured:
        adapters.append(
            RedditAdapter(
                client_id=settings.REDDIT_CLIENT_ID or "",
                client_secret=settings.REDDIT_CLIENT_SECRET or "",
                username=settings.REDDIT_USERNAME or "",
                password=settings.REDDIT_PASSWORD or "",
                user_agent=settings.REDDIT_USER_AGENT,
            )
        )
    else:
        logger.warning("Reddit credentials not set; discussion provider disabled.")
    return adapters


__all__ = [
    "GdeltAdapter",
    "ProviderAdapter",
    "RedditAdapter",
    "TrendsAdapter",
    "YouTubeAdapter",
    "build_adapters",
]
