from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, cast

import httpx
from dateutil import parser as date_parser

from trendpulse.core.config import PROVIDER_HTTP_TIMEOUT_SECONDS
from trendpulse.core.exceptions import ProviderError, ProviderResponseError, ProviderTimeoutError
from trendpulse.domain.models import ProviderKind, RawItem

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """
    One external data source.

    Adapters turn a keyword query into raw candidate items and nothing else:
    they keep no shared state, never retry, and signal failure by raising a
    ``ProviderError``. Retries, timeouts and circuit breaking belong to the
    resilience guard.
    """

    name: str
    kind: ProviderKind
    timeout: float = PROVIDER_HTTP_TIMEOUT_SECONDS

    @abstractmethod
    async def fetch(self, query: str, region: str, *, limit: int = 30, lookback_days: int = 14) -> list[RawItem]:
        """Return raw candidate items for ``query`` in ``region``."""

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> Any:
        """Perform one HTTP request and decode JSON, mapping transport failures to provider errors."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, params=params, headers=headers, data=data, auth=auth)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"{self.name} request timed out", provider=self.name) from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error("%s API returned status %s", self.name, status_code, extra={"provider": self.name})
            raise ProviderResponseError(
                f"{self.name} request failed with status {status_code}",
                provider=self.name,
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name} request failed: {exc}", provider=self.name) from exc

        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            logger.error(
                "%s returned invalid JSON. Raw body: %s",
                self.name,
                response.text[:200],
                extra={"provider": self.name},
            )
            raise ProviderResponseError(f"{self.name} returned invalid JSON", provider=self.name) from exc

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        return await self._request_json("GET", url, **kwargs)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO strings, compact GDELT stamps or epoch seconds into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = cast(datetime, date_parser.parse(str(value)))
    except (ValueError, TypeError, OverflowError, date_parser.ParserError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def age_in_days(published_at: datetime | None, now: datetime | None = None) -> float | None:
    if published_at is None:
        return None
    reference = now or datetime.now(timezone.utc)
    return max(0.0, (reference - published_at).total_seconds() / 86_400)


def to_number(value: Any) -> float:
    """Coerce provider counters (often strings) to float, defaulting to 0."""
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0
