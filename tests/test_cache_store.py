"""Tests for the namespaced JSON cache store"""
from datetime import timedelta

import pytest

from errors import ValidationError


async def test_put_then_get(cache_store, dt_clock):
    expires = dt_clock.now + timedelta(minutes=5)
    await cache_store.put("lastfm", "similar:a:b", [{"name": "x"}], expires_at=expires)

    record = await cache_store.get("lastfm", "similar:a:b")

    assert record is not None
    assert record.value == [{"name": "x"}]
    assert record.expires_at == expires
    assert record.stored_at == dt_clock.now


async def test_missing_key_returns_none(cache_store):
    assert await cache_store.get("lyrics", "nope") is None


async def test_expired_record_is_dropped_on_read(cache_store, dt_clock):
    await cache_store.put("lyrics", "k", {"v": 1}, expires_at=dt_clock.now + timedelta(seconds=10))
    path = cache_store._path("lyrics", "k")
    assert path.exists()

    dt_clock.advance(seconds=11)

    assert await cache_store.get("lyrics", "k") is None
    assert not path.exists()


async def test_record_is_live_at_exact_expiry(cache_store, dt_clock):
    await cache_store.put("lyrics", "k", {"v": 1}, expires_at=dt_clock.now + timedelta(seconds=10))
    dt_clock.advance(seconds=10)
    assert await cache_store.get("lyrics", "k") is not None


async def test_put_overwrites(cache_store, dt_clock):
    expires = dt_clock.now + timedelta(days=1)
    await cache_store.put("lyrics", "k", {"v": 1}, expires_at=expires)
    await cache_store.put("lyrics", "k", {"v": 2}, expires_at=expires)

    record = await cache_store.get("lyrics", "k")
    assert record.value == {"v": 2}
    assert len(list((cache_store.root / "lyrics").glob("*.json"))) == 1
    assert not list((cache_store.root / "lyrics").glob("*.tmp"))


async def test_sweep_removes_only_expired(cache_store, dt_clock):
    await cache_store.put("lyrics", "old", 1, expires_at=dt_clock.now + timedelta(hours=1))
    await cache_store.put("lastfm", "old", 2, expires_at=dt_clock.now + timedelta(hours=1))
    await cache_store.put("lyrics", "new", 3, expires_at=dt_clock.now + timedelta(days=30))

    dt_clock.advance(hours=2)
    removed = await cache_store.sweep()

    assert removed == 2
    assert await cache_store.get("lyrics", "new") is not None


async def test_clear_namespace(cache_store, dt_clock):
    expires = dt_clock.now + timedelta(days=1)
    await cache_store.put("lyrics", "a", 1, expires_at=expires)
    await cache_store.put("lyrics", "b", 2, expires_at=expires)
    await cache_store.put("lastfm", "c", 3, expires_at=expires)

    assert await cache_store.clear("lyrics") == 2
    assert await cache_store.get("lastfm", "c") is not None
    assert await cache_store.clear("unknown") == 0


@pytest.mark.parametrize("namespace", ["", "../etc", "Lyrics", "a/b"])
async def test_invalid_namespace_rejected(cache_store, namespace):
    with pytest.raises(ValidationError):
        await cache_store.clear(namespace)


async def test_stats(cache_store, dt_clock):
    await cache_store.put("lyrics", "a", 1, expires_at=dt_clock.now + timedelta(hours=1))
    await cache_store.put("lyrics", "b", 2, expires_at=dt_clock.now + timedelta(days=1))
    dt_clock.advance(hours=2)

    stats = await cache_store.stats()

    assert stats["lyrics"]["entries"] == 2
    assert stats["lyrics"]["expired"] == 1
    assert stats["lyrics"]["bytes"] > 0


async def test_corrupt_record_is_discarded(cache_store, dt_clock):
    await cache_store.put("lyrics", "k", 1, expires_at=dt_clock.now + timedelta(days=1))
    path = cache_store._path("lyrics", "k")
    path.write_text("{not json", encoding="utf-8")

    assert await cache_store.get("lyrics", "k") is None
    assert not path.exists()
