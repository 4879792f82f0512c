"""Google Sheets repository for signals, rollups and watchlists."""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import gspread
from google.oauth2.service_account import Credentials
from pydantic import ValidationError as ModelValidationError

from trendpulse.core.config import Settings
from trendpulse.core.exceptions import PersistenceError
from trendpulse.domain.models import Citation, EntityRollup, Signal, entity_key, ensure_utc
from trendpulse.providers.base import parse_timestamp
from trendpulse.storage.repository import InMemoryRepository, SignalRepository, latest_rollups

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

SIGNAL_HEADERS = [
    "observed_at", "region", "entity", "provider", "source_id", "engagement",
    "velocity", "authority", "score", "url", "title", "raw_metrics",
]
ROLLUP_HEADERS = [
    "computed_at", "region", "entity", "heat", "momentum", "forecast", "confidence",
    "classification", "link", "sample_count", "volume", "citations",
]
WATCHLIST_HEADERS = ["region", "keywords", "updated_at"]


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _as_json(value: Any, default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return default


class SheetRepository:
    """Repository backed by three worksheet tabs; blocking gspread calls run in worker threads."""

    SIGNALS_TAB = "Signals"
    ROLLUPS_TAB = "Rollups"
    WATCHLIST_TAB = "Watchlist"

    def __init__(self, client: gspread.Client, spreadsheet_id: str) -> None:
        self.client = client
        self.spreadsheet_id = spreadsheet_id

    def _worksheet(self, title: str, headers: list[str]) -> gspread.Worksheet:
        try:
            spreadsheet = self.client.open_by_key(self.spreadsheet_id)
            try:
                return spreadsheet.worksheet(title)
            except gspread.exceptions.WorksheetNotFound:
                worksheet = spreadsheet.add_worksheet(title=title, rows=1000, cols=len(headers))
                worksheet.append_row(headers)
                return worksheet
        except gspread.exceptions.GSpreadException as sheet_error:
            raise PersistenceError(f"Failed to open worksheet '{title}': {sheet_error}", operation="open") from sheet_error

    async def _append(self, title: str, headers: list[str], rows: list[list[Any]], operation: str) -> None:
        if not rows:
            return
        try:
            worksheet = await asyncio.to_thread(self._worksheet, title, headers)
            await asyncio.to_thread(worksheet.append_rows, rows, value_input_option="RAW")
        except gspread.exceptions.GSpreadException as sheet_error:
            raise PersistenceError(f"Failed to write {title}: {sheet_error}", operation=operation) from sheet_error

    async def _records(self, title: str, headers: list[str], operation: str) -> list[dict[str, Any]]:
        try:
            worksheet = await asyncio.to_thread(self._worksheet, title, headers)
            return await asyncio.to_thread(worksheet.get_all_records)
        except gspread.exceptions.GSpreadException as sheet_error:
            raise PersistenceError(f"Failed to read {title}: {sheet_error}", operation=operation) from sheet_error

    @staticmethod
    def _signal_to_row(signal: Signal) -> list[Any]:
        return [
            signal.observed_at.isoformat(),
            signal.region,
            signal.entity,
            signal.provider,
            signal.source_id or "",
            signal.engagement,
            signal.velocity,
            signal.authority,
            signal.score,
            signal.url or "",
            signal.title or "",
            json.dumps(signal.raw_metrics),
        ]

    @staticmethod
    def _row_to_signal(record: dict[str, Any]) -> Signal | None:
        observed_at = parse_timestamp(record.get("observed_at"))
        try:
            return Signal(
                region=str(record.get("region", "")),
                entity=str(record.get("entity", "")),
                provider=str(record.get("provider", "")),
                source_id=str(record.get("source_id")) if record.get("source_id") else None,
                engagement=_as_float(record.get("engagement")),
                velocity=_as_float(record.get("velocity")),
                authority=_as_float(record.get("authority")),
                score=_as_float(record.get("score")),
                observed_at=observed_at or datetime.now(timezone.utc),
                url=record.get("url") or None,
                title=str(record.get("title")) if record.get("title") else None,
                raw_metrics=_as_json(record.get("raw_metrics"), {}),
            )
        except ModelValidationError as exc:
            logger.warning("Skipping malformed signal row: %s", exc)
            return None

    @staticmethod
    def _rollup_to_row(rollup: EntityRollup) -> list[Any]:
        return [
            rollup.computed_at.isoformat(),
            rollup.region,
            rollup.entity,
            rollup.heat,
            rollup.momentum,
            rollup.forecast,
            rollup.confidence,
            rollup.classification.value,
            rollup.link,
            rollup.sample_count,
            rollup.volume,
            json.dumps([citation.model_dump(mode="json") for citation in rollup.citations]),
        ]

    @staticmethod
    def _row_to_rollup(record: dict[str, Any]) -> EntityRollup | None:
        try:
            return EntityRollup(
                computed_at=parse_timestamp(record.get("computed_at")) or datetime.now(timezone.utc),
                region=str(record.get("region", "")),
                entity=str(record.get("entity", "")),
                heat=_as_float(record.get("heat")),
                momentum=_as_float(record.get("momentum")),
                forecast=_as_float(record.get("forecast")),
                confidence=_as_float(record.get("confidence")),
                classification=record.get("classification") or "Aware",
                link=str(record.get("link", "")),
                sample_count=int(_as_float(record.get("sample_count"))),
                volume=_as_float(record.get("volume")),
                citations=[Citation(**c) for c in _as_json(record.get("citations"), [])],
            )
        except (ModelValidationError, TypeError) as exc:
            logger.warning("Skipping malformed rollup row: %s", exc)
            return None

    async def save_signals(self, signals: Sequence[Signal]) -> None:
        await self._append(self.SIGNALS_TAB, SIGNAL_HEADERS, [self._signal_to_row(s) for s in signals], "save_signals")
        logger.info("Saved %s signals to Google Sheets", len(signals), extra={"count": len(signals)})

    async def _region_signals(self, region: str) -> list[Signal]:
        records = await self._records(self.SIGNALS_TAB, SIGNAL_HEADERS, "load_signals")
        signals = (self._row_to_signal(record) for record in records if str(record.get("region")) == region)
        return [signal for signal in signals if signal is not None]

    async def load_signals(self, region: str, entities: Sequence[str], since: datetime) -> list[Signal]:
        wanted = {entity_key(entity) for entity in entities}
        cutoff = ensure_utc(since)
        return [
            signal
            for signal in await self._region_signals(region)
            if entity_key(signal.entity) in wanted and signal.observed_at >= cutoff
        ]

    async def load_recent_signals(self, region: str, limit: int) -> list[Signal]:
        signals = await self._region_signals(region)
        signals.sort(key=lambda signal: signal.observed_at, reverse=True)
        return signals[:limit]

    async def save_rollups(self, region: str, rollups: Sequence[EntityRollup]) -> None:
        await self._append(self.ROLLUPS_TAB, ROLLUP_HEADERS, [self._rollup_to_row(r) for r in rollups], "save_rollups")

    async def _region_rollups(self, region: str, operation: str) -> list[EntityRollup]:
        records = await self._records(self.ROLLUPS_TAB, ROLLUP_HEADERS, operation)
        rollups = (self._row_to_rollup(record) for record in records if str(record.get("region")) == region)
        return [rollup for rollup in rollups if rollup is not None]

    async def load_prior_rollups(self, region: str, entities: Sequence[str], since: datetime) -> list[EntityRollup]:
        return latest_rollups(await self._region_rollups(region, "load_prior_rollups"), entities, since)

    async def load_latest_rollups(self, region: str) -> list[EntityRollup]:
        return latest_rollups(await self._region_rollups(region, "load_latest_rollups"))

    async def load_watchlist(self, region: str) -> list[str]:
        records = await self._records(self.WATCHLIST_TAB, WATCHLIST_HEADERS, "load_watchlist")
        for record in records:
            if str(record.get("region")) == region:
                keywords = _as_json(record.get("keywords"), [])
                return [str(keyword) for keyword in keywords] if isinstance(keywords, list) else []
        return []

    async def save_watchlist(self, region: str, keywords: Sequence[str]) -> None:
        def _write() -> None:
            worksheet = self._worksheet(self.WATCHLIST_TAB, WATCHLIST_HEADERS)
            regions = worksheet.col_values(1)[1:]
            row = [region, json.dumps(list(keywords)), datetime.now(timezone.utc).isoformat()]
            if region in regions:
                row_index = regions.index(region) + 2  # row 1 holds the headers
                if keywords:
                    worksheet.update(range_name=f"A{row_index}:C{row_index}", values=[row])
                else:
                    worksheet.delete_rows(row_index)
            elif keywords:
                worksheet.append_row(row)

        try:
            await asyncio.to_thread(_write)
        except gspread.exceptions.GSpreadException as sheet_error:
            raise PersistenceError(f"Failed to write watchlist: {sheet_error}", operation="save_watchlist") from sheet_error


def build_repository(settings: Settings) -> SignalRepository:
    """Google Sheets repository when configured, otherwise the in-process one."""
    if not settings.storage_configured:
        logger.warning("Google credentials or Sheet ID not configured; using in-memory repository")
        return InMemoryRepository()
    try:
        credentials = Credentials.from_service_account_info(
            json.loads(settings.GOOGLE_CREDENTIALS or "{}"),
            scopes=SCOPES,
        )
        client = gspread.authorize(credentials)
    except (json.JSONDecodeError, ValueError, TypeError) as credential_error:
        logger.error("Failed to parse Google credentials payload: %s", credential_error)
        return InMemoryRepository()
    except gspread.exceptions.GSpreadException as gspread_error:
        logger.error("Failed to authorise Google Sheets client: %s", gspread_error)
        return InMemoryRepository()
    logger.info("Repository initialised with Google Sheets persistence")
    return SheetRepository(client, settings.SHEET_ID or "")
