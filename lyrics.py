"""
Lyrics lookup with a content-addressed cache.

Each (artist, title, album, duration) combination maps to exactly one cache
entry whose id is the sha256 of the normalized tuple. Misses walk the provider
chain in priority order; when nobody has lyrics a negative entry is cached so
the same song is not looked up again until it expires.
"""

import hashlib
import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from cache_store import CacheStore, utcnow
from errors import ServiceError, ValidationError
from logging_config import get_logger
from models import LyricsCacheEntry, SourceProvider
from normalize import clean_artist, clean_title, normalize_duration, normalize_text
from providers.base import LyricsProvider

logger = get_logger(__name__)

CACHE_NAMESPACE = "lyrics"
DEFAULT_TTL = timedelta(days=30)

LyricsKey = Tuple[str, str, Optional[str], Optional[str]]


def normalize_key(artist: Any, title: Any, album: Optional[str] = None, duration: Any = None) -> LyricsKey:
    """Validate the lookup fields and return the normalized key tuple."""
    if not isinstance(artist, str) or not artist.strip():
        raise ValidationError("Missing required parameter: artist", code="MISSING_PARAMETER")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Missing required parameter: title", code="MISSING_PARAMETER")
    norm_album = normalize_text(album) if album and album.strip() else None
    return normalize_text(artist), normalize_text(title), norm_album, normalize_duration(duration)


def entry_id(key: LyricsKey) -> str:
    # JSON keeps None (null) and "0" apart
    payload = json.dumps(list(key), ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _normalize_provider_result(result: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Drop empty results so the chain moves on to the next provider."""
    if not result:
        return None
    plain = result.get("plain_lyrics") or None
    synced = result.get("synced_lyrics") or None
    instrumental = bool(result.get("is_instrumental"))
    if not plain and not synced and not instrumental:
        return None
    return {"plain_lyrics": plain, "synced_lyrics": synced, "is_instrumental": instrumental}


class LyricsCacheService:
    def __init__(self, store: CacheStore, providers: List[LyricsProvider],
                 ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.providers = sorted(providers, key=lambda p: p.priority)
        self.ttl = ttl
        self._clock = clock

    async def _fetch_from_providers(self, artist: str, title: str, album: Optional[str],
                                    duration: Optional[str]) -> Tuple[Optional[Dict[str, Any]], SourceProvider]:
        query_artist = clean_artist(artist)
        query_title = clean_title(title)
        seconds = int(duration) if duration is not None else None

        for provider in self.providers:
            if not provider.available:
                continue
            try:
                result = _normalize_provider_result(
                    await provider.fetch(query_artist, query_title, album, seconds)
                )
            except ServiceError as e:
                logger.warning(f"{provider.name} failed for {query_artist} - {query_title}: {e.message}")
                continue
            except Exception as e:
                logger.error(f"{provider.name} crashed for {query_artist} - {query_title}: {e}", exc_info=True)
                continue
            if result:
                logger.info(f"Lyrics found via {provider.name}: {query_artist} - {query_title}")
                return result, SourceProvider(provider.name)

        return None, SourceProvider.NONE

    async def get_lyrics(self, artist: str, title: str, album: Optional[str] = None,
                         duration: Any = None) -> LyricsCacheEntry:
        key = normalize_key(artist, title, album, duration)
        cache_id = entry_id(key)
        now = self._clock()

        record = await self.store.get(CACHE_NAMESPACE, cache_id, now=now)
        if record is not None:
            try:
                cached = LyricsCacheEntry.from_dict(record.value)
                logger.info(f"Lyrics cache HIT: {artist} - {title} ({cached.source.value})")
                return cached
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Corrupt lyrics cache entry {cache_id}: {e}")

        logger.info(f"Lyrics cache MISS: {artist} - {title}")
        album = album.strip() if album and album.strip() else None
        result, source = await self._fetch_from_providers(artist.strip(), title.strip(), album, key[3])

        entry = LyricsCacheEntry(
            id=cache_id,
            artist=artist.strip(),
            title=title.strip(),
            album=album,
            duration=key[3],
            lyrics=result["plain_lyrics"] if result else None,
            synced_lyrics=result["synced_lyrics"] if result else None,
            source=source,
            instrumental=result["is_instrumental"] if result else False,
            fetched_at=now,
            expires_at=now + self.ttl,
        )

        try:
            await self.store.put(CACHE_NAMESPACE, cache_id, entry.to_dict(), expires_at=entry.expires_at, now=now)
        except OSError as e:
            logger.error(f"Failed to save lyrics cache entry: {e}")
        return entry

    async def invalidate(self, artist: str, title: str, album: Optional[str] = None, duration: Any = None) -> bool:
        cache_id = entry_id(normalize_key(artist, title, album, duration))
        removed = await self.store.delete(CACHE_NAMESPACE, cache_id)
        if removed:
            logger.info(f"Removed cached lyrics for {artist} - {title}")
        return removed
