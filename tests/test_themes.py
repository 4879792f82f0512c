"""
Tests for top theme ranking over stored rollups.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trendpulse.domain.models import Classification, EntityRollup
from trendpulse.services.themes_svc import TopThemesService, rank_themes
from trendpulse.storage.repository import InMemoryRepository

NOW = datetime(2024, 10, 1, tzinfo=timezone.utc)


def _rollup(entity: str, heat: float, momentum: float = 0.0, days_ago: int = 0, region: str = "UK") -> EntityRollup:
    return EntityRollup(
        entity=entity,
        region=region,
        heat=heat,
        momentum=momentum,
        forecast=heat,
        confidence=0.5,
        classification=Classification.WATCH,
        link=f"https://www.google.com/search?q={entity}",
        computed_at=NOW - timedelta(days=days_ago),
    )


def test_rank_themes_orders_by_heat_then_momentum():
    rollups = [_rollup("loafers", 0.4), _rollup("trenchcoat", 0.7), _rollup("ballet flats", 0.4, momentum=0.2)]

    ranked = rank_themes(rollups)

    assert [rollup.entity for rollup in ranked] == ["trenchcoat", "ballet flats", "loafers"]
    assert len(rank_themes(rollups, limit=1)) == 1


@pytest.mark.asyncio
async def test_latest_rollup_per_entity_is_ranked():
    repository = InMemoryRepository()
    await repository.save_rollups("UK", [_rollup("trenchcoat", 0.9, days_ago=3), _rollup("loafers", 0.5, days_ago=3)])
    await repository.save_rollups("UK", [_rollup("Trenchcoat", 0.2), _rollup("quiet luxury", 0.6)])
    await repository.save_rollups("US", [_rollup("cargo pants", 1.0, region="US")])

    themes = await TopThemesService(repository).top("UK")

    assert [(theme.entity, theme.heat) for theme in themes] == [
        ("quiet luxury", 0.6),
        ("loafers", 0.5),
        ("Trenchcoat", 0.2),
    ]


@pytest.mark.asyncio
async def test_limit_is_clamped():
    repository = InMemoryRepository()
    await repository.save_rollups("UK", [_rollup(f"entity {i}", i / 100) for i in range(60)])
    service = TopThemesService(repository)

    assert len(await service.top("UK", limit=100)) == 50
    assert len(await service.top("UK", limit=0)) == 1
    assert len(await service.top("UK")) == 10
    assert (await service.top("UK", limit=1))[0].entity == "entity 59"
    assert await service.top("FR") == []
