"""
Library enrichment: marks Last.fm tracks that already exist in the local
Navidrome library.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Union

from errors import UpstreamUnavailable
from logging_config import get_logger
from models import EnrichedTrack, SimilarTrack, TopTrack
from normalize import library_key
from providers.navidrome import NavidromeClient

logger = get_logger(__name__)


@dataclass
class LibrarySong:
    id: str
    artist: str
    title: str
    album: Optional[str] = None


class LibraryIndex:
    """Normalized (artist, title) -> song. The first song seen for a key wins."""

    def __init__(self, songs: Iterable[LibrarySong] = ()):
        self._songs: Dict[str, LibrarySong] = {}
        for song in songs:
            self.add(song)

    def add(self, song: LibrarySong) -> None:
        self._songs.setdefault(library_key(song.artist, song.title), song)

    def match(self, artist: str, title: str) -> Optional[LibrarySong]:
        return self._songs.get(library_key(artist, title))

    def __len__(self) -> int:
        return len(self._songs)


class NavidromeLibrary:
    """
    Builds a LibraryIndex from Navidrome and keeps it in memory for ``ttl`` seconds.

    Concurrent callers share one in-flight build. A failed build is remembered
    for ``failure_backoff`` seconds, during which ``get_index`` fails fast
    instead of logging in to Navidrome again.
    """

    def __init__(self, client: NavidromeClient, ttl: int = 1800, page_size: int = 500,
                 max_songs: int = 5000, failure_backoff: int = 60,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.ttl = ttl
        self.page_size = page_size
        self.max_songs = max_songs
        self.failure_backoff = failure_backoff
        self._clock = clock
        self._index: Optional[LibraryIndex] = None
        self._built_at = 0.0
        self._failed_until = 0.0
        self._building: Optional[asyncio.Future] = None

    def _is_fresh(self) -> bool:
        return self._index is not None and self._clock() - self._built_at < self.ttl

    def invalidate(self) -> None:
        self._index = None
        self._failed_until = 0.0

    async def get_index(self) -> LibraryIndex:
        if self._is_fresh():
            return self._index

        now = self._clock()
        if now < self._failed_until:
            raise UpstreamUnavailable(
                f"Library index unavailable, retrying in {self._failed_until - now:.0f}s",
                code="LIBRARY_INDEX_UNAVAILABLE",
            )

        if self._building is None or self._building.done():
            self._building = asyncio.ensure_future(self._build())
            self._building.add_done_callback(self._build_finished)
        return await asyncio.shield(self._building)

    def _build_finished(self, task: asyncio.Future) -> None:
        if self._building is task:
            self._building = None
        # Waiters get the exception through the shield
        if not task.cancelled():
            task.exception()

    async def _build(self) -> LibraryIndex:
        index = LibraryIndex()
        try:
            async for song in self.client.iter_library_songs(self.page_size, self.max_songs):
                if not song.get("id"):
                    continue
                index.add(LibrarySong(
                    id=str(song["id"]),
                    artist=song.get("artist") or "",
                    title=song.get("title") or song.get("name") or "",
                    album=song.get("album"),
                ))
        except Exception:
            self._failed_until = self._clock() + self.failure_backoff
            logger.warning(f"Library index build failed, not retrying for {self.failure_backoff}s")
            raise

        self._index = index
        self._built_at = self._clock()
        self._failed_until = 0.0
        logger.info(f"Library index built with {len(index)} songs")
        return index


class LibraryEnrichment:
    def __init__(self, library):
        # Anything with ``async get_index() -> LibraryIndex``
        self.library = library

    async def enrich(self, candidates: List[Union[SimilarTrack, TopTrack]]) -> List[EnrichedTrack]:
        """Annotate each candidate with ``in_library`` / ``library_track_id``. Never raises on index failure."""
        try:
            index = await self.library.get_index()
        except Exception as e:
            logger.warning(f"Library index unavailable, returning tracks without library status: {e}")
            index = None

        enriched = []
        for candidate in candidates:
            song = index.match(candidate.artist, candidate.title) if index is not None else None
            track = EnrichedTrack(
                artist=candidate.artist,
                title=candidate.title,
                in_library=song is not None,
                library_track_id=song.id if song else None,
                library_album=song.album if song else None,
                url=candidate.url,
                image=candidate.image,
            )
            if isinstance(candidate, SimilarTrack):
                track.match_score = candidate.match_score
                track.duration = candidate.duration
            else:
                track.play_count = candidate.play_count
                track.rank = candidate.rank
            enriched.append(track)
        return enriched
