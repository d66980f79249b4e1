"""Tests for service wiring and the background cache sweeper"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

from lyrics import LyricsCacheService
from services import Services


def test_from_config_wires_components(tmp_path):
    services = Services.from_config(cache_dir=tmp_path / "cache")

    assert services.cache.root == tmp_path / "cache"
    assert services.lastfm.cache is services.cache
    assert services.proxy.client is services.navidrome
    assert services.enrichment.library.client is services.navidrome
    assert isinstance(services.lyrics, LyricsCacheService)
    assert [p.name for p in services.lyrics.providers] == ["navidrome", "lrclib"]


def _services(sweep_interval):
    cache = MagicMock()
    cache.sweep = AsyncMock(return_value=0)
    return Services(cache=cache, navidrome=MagicMock(), proxy=MagicMock(), lastfm=MagicMock(),
                    enrichment=MagicMock(), lyrics=MagicMock(), sweep_interval=sweep_interval)


async def test_sweeper_runs_periodically_and_stops():
    services = _services(sweep_interval=0.01)

    services.start_background_tasks()
    services.start_background_tasks()  # second start is a no-op
    assert len(services._background_tasks) == 1

    await asyncio.sleep(0.05)
    assert services.cache.sweep.await_count >= 1

    await services.stop_background_tasks()
    await asyncio.sleep(0)
    assert not services._background_tasks


async def test_sweeper_survives_disk_errors():
    services = _services(sweep_interval=0.01)
    services.cache.sweep.side_effect = OSError("disk full")

    services.start_background_tasks()
    await asyncio.sleep(0.05)

    assert services.cache.sweep.await_count >= 2
    await services.stop_background_tasks()


async def test_sweeper_disabled_with_zero_interval():
    services = _services(sweep_interval=0)
    services.start_background_tasks()
    assert not services._background_tasks
