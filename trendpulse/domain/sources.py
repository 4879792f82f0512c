from __future__ import annotations

from typing import NamedTuple
from urllib.parse import quote_plus, urlparse

# Curated publications accepted from the news index, with citation weights.
EDITORIAL_DOMAINS: dict[str, float] = {
    "vogue.com": 1.0,
    "businessoffashion.com": 1.0,
    "wwd.com": 0.9,
    "theguardian.com": 0.9,
    "thecut.com": 0.8,
    "gq.com": 0.8,
    "elle.com": 0.8,
    "harpersbazaar.com": 0.8,
    "highsnobiety.com": 0.7,
    "hypebeast.com": 0.7,
}


class EditorialFeed(NamedTuple):
    name: str
    url: str
    weight: float


# RSS and Atom feeds of the same publications, read for citation links.
FASHION_FEEDS: tuple[EditorialFeed, ...] = (
    EditorialFeed("Vogue", "https://www.vogue.com/rss", 1.0),
    EditorialFeed("Business of Fashion", "https://www.businessoffashion.com/feed", 1.0),
    EditorialFeed("WWD", "https://wwd.com/feed/", 0.9),
    EditorialFeed("The Guardian Fashion", "https://www.theguardian.com/fashion/rss", 0.9),
    EditorialFeed("GQ", "https://www.gq.com/rss", 0.8),
    EditorialFeed("ELLE", "https://www.elle.com/rss/all.xml", 0.8),
    EditorialFeed("Harper's Bazaar", "https://www.harpersbazaar.com/rss/all.xml", 0.8),
    EditorialFeed("Highsnobiety", "https://www.highsnobiety.com/rss", 0.7),
    EditorialFeed("Hypebeast", "https://hypebeast.com/feed", 0.7),
)

REGION_CODES: tuple[tuple[str, str], ...] = (
    ("nordic", "SE"),
    ("uk", "GB"),
    ("usa", "US"),
    ("us", "US"),
    ("america", "US"),
    ("fr", "FR"),
    ("de", "DE"),
)
DEFAULT_REGION_CODE = "US"

SEARCH_LINK_TEMPLATES: dict[str, str] = {
    "youtube": "https://www.youtube.com/results?search_query={query}",
    "gdelt": "https://news.google.com/search?q={query}",
    "trends": "https://trends.google.com/trends/explore?q={query}&geo={geo}",
    "reddit": "https://www.reddit.com/search/?q={query}",
}
GENERIC_SEARCH_TEMPLATE = "https://www.google.com/search?q={query}"


class EditorialAllowlist:
    """Domain allow-list for the news index. Non-listed domains are rejected outright."""

    def __init__(self, domains: list[str] | None = None, default_weight: float = 0.6) -> None:
        self.default_weight = default_weight
        if domains:
            self.weights = {domain: EDITORIAL_DOMAINS.get(domain, default_weight) for domain in domains}
        else:
            self.weights = dict(EDITORIAL_DOMAINS)

    def match(self, url_or_host: str | None) -> str | None:
        """Return the allow-listed domain that ``url_or_host`` belongs to, if any."""
        if not url_or_host:
            return None
        host = urlparse(url_or_host).hostname if "://" in url_or_host else url_or_host
        host = (host or "").lower().rstrip(".")
        for domain in self.weights:
            if host == domain or host.endswith("." + domain):
                return domain
        return None

    def is_allowed(self, url_or_host: str | None) -> bool:
        return self.match(url_or_host) is not None

    def weight_for(self, url_or_host: str | None) -> float:
        domain = self.match(url_or_host)
        if domain is None:
            return 0.0
        return self.weights[domain]


def region_code(label: str | None) -> str:
    """Best-effort mapping of a free-text region label to an ISO country code."""
    text = (label or "").strip().lower()
    words = text.replace(",", " ").replace("/", " ").split()
    for token, code in REGION_CODES:
        if token in words or (len(token) > 2 and token in text):
            return code
    if len(text) == 2 and text.isalpha():
        return text.upper()
    return DEFAULT_REGION_CODE


def search_link(provider: str, query: str, region: str | None = None) -> str:
    """Provider-appropriate search URL used when no signal carries a real link."""
    template = SEARCH_LINK_TEMPLATES.get(provider.lower(), GENERIC_SEARCH_TEMPLATE)
    return template.format(query=quote_plus(query), geo=region_code(region))
