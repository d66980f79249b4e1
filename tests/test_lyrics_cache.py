"""Tests for the content-addressed lyrics cache and provider fallback chain"""
from unittest.mock import AsyncMock

import pytest

from errors import UpstreamUnavailable, ValidationError
from lyrics import LyricsCacheService, entry_id, normalize_key
from models import SourceProvider, SyncedLine
from providers.base import LyricsProvider

SYNCED_RESULT = {
    "plain_lyrics": "Karma police\nArrest this man",
    "synced_lyrics": [SyncedLine(1000, "Karma police"), SyncedLine(4000, "Arrest this man")],
    "is_instrumental": False,
}


class FakeProvider(LyricsProvider):
    def __init__(self, name, priority, result=None, error=None):
        super().__init__(provider_name=name)
        self.enabled = True
        self.priority = priority
        self.fetch = AsyncMock(return_value=result, side_effect=error)


@pytest.fixture
def navidrome():
    return FakeProvider("navidrome", 1)


@pytest.fixture
def lrclib():
    return FakeProvider("lrclib", 2, result=SYNCED_RESULT)


@pytest.fixture
def service(cache_store, dt_clock, navidrome, lrclib):
    return LyricsCacheService(cache_store, [lrclib, navidrome], clock=dt_clock)


async def test_miss_then_hit_is_idempotent(service, lrclib, navidrome):
    first = await service.get_lyrics("Radiohead", "Karma Police", "OK Computer", 264)
    second = await service.get_lyrics("Radiohead", "Karma Police", "OK Computer", 264)

    assert first.source == SourceProvider.LRCLIB
    assert first.synced_lyrics == SYNCED_RESULT["synced_lyrics"]
    assert second.to_dict() == first.to_dict()
    assert lrclib.fetch.await_count == 1
    assert navidrome.fetch.await_count == 1


async def test_providers_tried_in_priority_order(service, lrclib, navidrome):
    navidrome.fetch.return_value = {"plain_lyrics": "embedded", "synced_lyrics": None, "is_instrumental": False}

    entry = await service.get_lyrics("Radiohead", "Karma Police")

    assert entry.source == SourceProvider.NAVIDROME
    assert entry.lyrics == "embedded"
    lrclib.fetch.assert_not_awaited()


async def test_provider_failure_falls_through(service, lrclib, navidrome):
    navidrome.fetch.side_effect = UpstreamUnavailable("down", code="NAVIDROME_TIMEOUT")

    entry = await service.get_lyrics("Radiohead", "Karma Police")

    assert entry.source == SourceProvider.LRCLIB


async def test_negative_result_is_cached(service, lrclib, navidrome):
    lrclib.fetch.return_value = None

    first = await service.get_lyrics("Nobody", "Nothing")
    second = await service.get_lyrics("Nobody", "Nothing")

    assert first.source == SourceProvider.NONE
    assert first.lyrics is None
    assert first.synced_lyrics is None
    assert first.instrumental is False
    assert second.id == first.id
    assert lrclib.fetch.await_count == 1
    assert navidrome.fetch.await_count == 1


async def test_instrumental_kept_from_provider(service, lrclib):
    lrclib.fetch.return_value = {"plain_lyrics": None, "synced_lyrics": None, "is_instrumental": True}

    entry = await service.get_lyrics("Boards of Canada", "Roygbiv")

    assert entry.instrumental is True
    assert entry.source == SourceProvider.LRCLIB


async def test_expired_entry_is_refetched(service, lrclib, dt_clock):
    first = await service.get_lyrics("Radiohead", "Karma Police")
    assert first.expires_at - first.fetched_at == service.ttl

    dt_clock.advance(days=30)
    await service.get_lyrics("Radiohead", "Karma Police")
    assert lrclib.fetch.await_count == 1

    dt_clock.advance(seconds=1)
    refreshed = await service.get_lyrics("Radiohead", "Karma Police")
    assert lrclib.fetch.await_count == 2
    assert refreshed.fetched_at == dt_clock.now
    assert refreshed.id == first.id


async def test_missing_duration_and_zero_are_different_keys(service, lrclib):
    without = await service.get_lyrics("A", "T", duration=None)
    zero = await service.get_lyrics("A", "T", duration="0")

    assert without.id != zero.id
    assert without.duration is None
    assert zero.duration == "0"
    assert lrclib.fetch.await_count == 2


async def test_key_normalization():
    assert normalize_key("  Radiohead ", "Karma   Police", None, 263.6) == ("radiohead", "karma police", None, "264")
    assert entry_id(normalize_key("RADIOHEAD", "karma police")) == entry_id(normalize_key("radiohead", " Karma Police "))
    assert entry_id(normalize_key("a", "t", "")) == entry_id(normalize_key("a", "t", None))


async def test_queries_are_cleaned_but_key_is_not(service, lrclib):
    entry = await service.get_lyrics("Artist feat. Guest", "Song (feat. Guest)")

    args = lrclib.fetch.await_args.args
    assert args[0] == "Artist"
    assert args[1] == "Song"
    assert entry.artist == "Artist feat. Guest"
    assert entry.title == "Song (feat. Guest)"
    assert entry.id != entry_id(normalize_key("Artist", "Song"))


async def test_duration_passed_to_providers_as_seconds(service, lrclib):
    await service.get_lyrics("A", "T", "Album", "215.4")
    assert lrclib.fetch.await_args.args[2:] == ("Album", 215)


@pytest.mark.parametrize("artist,title,duration", [
    ("", "T", None),
    ("   ", "T", None),
    ("A", "", None),
    ("A", "T", "abc"),
    ("A", "T", "-5"),
])
async def test_validation(service, artist, title, duration):
    with pytest.raises(ValidationError):
        await service.get_lyrics(artist, title, duration=duration)


async def test_unavailable_provider_skipped(service, navidrome, lrclib):
    navidrome.enabled = False

    await service.get_lyrics("A", "T")

    navidrome.fetch.assert_not_awaited()
    lrclib.fetch.assert_awaited_once()


async def test_invalidate(service, lrclib):
    await service.get_lyrics("A", "T")

    assert await service.invalidate("a", " t ") is True
    await service.get_lyrics("A", "T")
    assert lrclib.fetch.await_count == 2
    assert await service.invalidate("never", "cached") is False
