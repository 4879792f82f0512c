from __future__ import annotations

import html
import logging
import re
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET
import httpx
from defusedxml import DefusedXmlException

from trendpulse.core.config import PROVIDER_HTTP_TIMEOUT_SECONDS
from trendpulse.core.exceptions import ProviderError, ProviderResponseError, ProviderTimeoutError
from trendpulse.domain.models import FeedEntry
from trendpulse.domain.sources import EditorialFeed
from trendpulse.providers.base import parse_timestamp

logger = logging.getLogger(__name__)

USER_AGENT = "TrendPulse/1.0 (+editorial citations)"
ENTRY_TAGS = ("item", "entry")
SUMMARY_TAGS = ("description", "summary", "content", "encoded")
DATE_TAGS = ("pubDate", "published", "updated", "date")

_MARKUP = re.compile(r"<[^>]+>")


def clean_text(value: str | None) -> str:
    """Drop HTML tags and entities and collapse whitespace."""
    text = _MARKUP.sub(" ", html.unescape(value or ""))
    return " ".join(text.split())


def _local_name(tag: object) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _child_text(node: Element, names: tuple[str, ...]) -> str:
    """Text of the first non-empty child matching ``names``, in priority order."""
    for name in names:
        for child in node:
            if _local_name(child.tag) == name and child.text and child.text.strip():
                return child.text.strip()
    return ""


def _entry_link(node: Element) -> str:
    fallback = ""
    for child in node:
        if _local_name(child.tag) != "link":
            continue
        if child.text and child.text.strip():
            return child.text.strip()
        href = (child.get("href") or "").strip()
        if href and child.get("rel", "alternate") == "alternate":
            return href
        fallback = fallback or href
    return fallback


def parse_feed(xml_text: str | bytes, feed: EditorialFeed) -> list[FeedEntry]:
    """Parse RSS ``<item>`` or Atom ``<entry>`` elements; entries without a link are skipped."""
    try:
        root = ET.fromstring(xml_text)
    except (ET.ParseError, DefusedXmlException) as exc:
        raise ProviderResponseError(f"{feed.name} returned an unreadable feed", provider=feed.name) from exc

    entries: list[FeedEntry] = []
    for node in root.iter():
        if _local_name(node.tag) not in ENTRY_TAGS:
            continue
        url = _entry_link(node)
        if not url:
            continue
        entries.append(
            FeedEntry(
                source=feed.name,
                weight=feed.weight,
                title=clean_text(_child_text(node, ("title",))),
                summary=clean_text(_child_text(node, SUMMARY_TAGS)),
                url=url,
                published_at=parse_timestamp(_child_text(node, DATE_TAGS)),
            )
        )
    return entries


class EditorialFeedReader:
    """Downloads editorial feeds. Like the adapters it never retries and raises ``ProviderError``."""

    def __init__(self, timeout: float = PROVIDER_HTTP_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    async def read(self, feed: EditorialFeed) -> list[FeedEntry]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(feed.url, headers={"User-Agent": USER_AGENT})
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"{feed.name} feed timed out", provider=feed.name) from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error("%s feed returned status %s", feed.name, status_code, extra={"provider": feed.name})
            raise ProviderResponseError(
                f"{feed.name} feed failed with status {status_code}",
                provider=feed.name,
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{feed.name} feed failed: {exc}", provider=feed.name) from exc

        entries = parse_feed(response.content, feed)
        logger.debug("Parsed %s entries from %s", len(entries), feed.name, extra={"provider": feed.name, "count": len(entries)})
        return entries
