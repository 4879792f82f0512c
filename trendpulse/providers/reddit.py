from __future__ import annotations

from datetime import datetime, timezone

from trendpulse.core.exceptions import ProviderError
from trendpulse.domain.models import ProviderKind, RawItem
from trendpulse.providers.base import ProviderAdapter, age_in_days, parse_timestamp, to_number

MAX_LIMIT = 100


class RedditAdapter(ProviderAdapter):
    """Official Reddit search API via OAuth2 password grant (discussion platform)."""

    name = "reddit"
    kind = ProviderKind.DISCUSSION
    TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
    SEARCH_URL = "https://oauth.reddit.com/search"

    def __init__(self, client_id: str, client_secret: str, username: str, password: str, user_agent: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.user_agent = user_agent

    async def _access_token(self) -> str:
        payload = await self._request_json(
            "POST",
            self.TOKEN_URL,
            data={"grant_type": "password", "username": self.username, "password": self.password},
            auth=(self.client_id, self.client_secret),
            headers={"User-Agent": self.user_agent},
        )
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise ProviderError("reddit token response missing access_token", provider=self.name)
        return token

    async def fetch(self, query: str, region: str, *, limit: int = 30, lookback_days: int = 14) -> list[RawItem]:
        if not query:
            return []

        token = await self._access_token()
        payload = await self._get_json(
            self.SEARCH_URL,
            params={"q": query, "sort": "new", "limit": min(limit, MAX_LIMIT), "type": "link"},
            headers={"Authorization": f"bearer {token}", "User-Agent": self.user_agent},
        )
        if not isinstance(payload, dict):
            raise ProviderError("reddit returned an unexpected envelope", provider=self.name)
        children = (payload.get("data") or {}).get("children") or []

        now = datetime.now(timezone.utc)
        items: list[RawItem] = []
        for child in children:
            post = child.get("data") if isinstance(child, dict) else None
            if not isinstance(post, dict):
                continue
            published_at = parse_timestamp(post.get("created_utc"))
            age = age_in_days(published_at, now)
            if age is not None and age > lookback_days:
                continue
            metrics: dict[str, object] = {
                "upvotes": to_number(post.get("ups")),
                "comments": to_number(post.get("num_comments")),
                "subreddit": post.get("subreddit") or "",
            }
            if age is not None:
                metrics["age_days"] = age
            permalink = post.get("permalink") or ""
            items.append(
                RawItem(
                    provider=self.name,
                    source_id=post.get("id"),
                    title=post.get("title"),
                    url=f"https://www.reddit.com{permalink}" if permalink else post.get("url"),
                    observed_at=now,
                    published_at=published_at,
                    metrics=metrics,
                )
            )
        return items
