"""
Service wiring: builds the component graph once per process from config.

Tests build their own ``Services`` (or a fake) and put it in
``server.app.config["SERVICES"]``.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Optional, Set

from cache_store import CacheStore
from config import CACHE_DIR, LASTFM, LIBRARY, LYRICS_CACHE, NAVIDROME, SERVER
from enrichment import LibraryEnrichment, NavidromeLibrary
from logging_config import get_logger
from lyrics import LyricsCacheService
from navidrome_proxy import NavidromeProxy
from providers.lastfm import LastFmClient
from providers.lrclib import LRCLIBProvider
from providers.navidrome import NavidromeClient, NavidromeSession
from providers.navidrome_lyrics import NavidromeLyricsProvider

logger = get_logger(__name__)


class Services:
    def __init__(self, cache: CacheStore, navidrome: NavidromeClient, proxy: NavidromeProxy,
                 lastfm: LastFmClient, enrichment: LibraryEnrichment, lyrics: LyricsCacheService,
                 sweep_interval: int = 21600, api_token: str = ""):
        self.cache = cache
        self.navidrome = navidrome
        self.proxy = proxy
        self.lastfm = lastfm
        self.enrichment = enrichment
        self.lyrics = lyrics
        self.sweep_interval = sweep_interval
        self.api_token = api_token
        self._background_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, cache_dir: Optional[Path] = None) -> "Services":
        cache = CacheStore(cache_dir or CACHE_DIR)

        session = NavidromeSession(
            NAVIDROME["url"],
            NAVIDROME["username"],
            NAVIDROME["password"],
            timeout=NAVIDROME["timeout"],
            token_ttl=NAVIDROME["token_ttl"],
            refresh_threshold=NAVIDROME["refresh_threshold"],
        )
        navidrome = NavidromeClient(session)

        lastfm = LastFmClient(
            LASTFM["api_key"],
            base_url=LASTFM["base_url"],
            timeout=LASTFM["timeout"],
            cache=cache,
            cache_ttl=LASTFM["cache_ttl"],
            backoff=LASTFM["backoff"],
        )

        library = NavidromeLibrary(
            navidrome,
            ttl=LIBRARY["index_ttl"],
            page_size=LIBRARY["page_size"],
            max_songs=LIBRARY["max_songs"],
            failure_backoff=LIBRARY["failure_backoff"],
        )

        lyrics = LyricsCacheService(
            cache,
            [NavidromeLyricsProvider(navidrome), LRCLIBProvider()],
            ttl=timedelta(days=LYRICS_CACHE["ttl_days"]),
        )

        if not session.is_configured:
            logger.warning("Navidrome not configured - library status, proxy and embedded lyrics are disabled")
        if not lastfm.is_configured:
            logger.warning("LASTFM_API_KEY not set - similar/top tracks will return LASTFM_NOT_CONFIGURED")

        return cls(
            cache=cache,
            navidrome=navidrome,
            proxy=NavidromeProxy(navidrome, cors_origin=SERVER["cors_origin"]),
            lastfm=lastfm,
            enrichment=LibraryEnrichment(library),
            lyrics=lyrics,
            sweep_interval=LYRICS_CACHE["sweep_interval"],
            api_token=SERVER["api_token"],
        )

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _create_tracked_task(self, coro) -> asyncio.Task:
        """Background task with automatic cleanup and error logging."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)

        def cleanup(t):
            self._background_tasks.discard(t)
            try:
                t.result()
            except asyncio.CancelledError:
                pass  # Expected during shutdown
            except Exception as e:
                logger.error(f"Background task failed: {e}", exc_info=True)

        task.add_done_callback(cleanup)
        return task

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.cache.sweep()
            except OSError as e:
                logger.error(f"Cache sweep failed: {e}")

    def start_background_tasks(self) -> None:
        if self.sweep_interval > 0 and not self._background_tasks:
            self._create_tracked_task(self._sweep_loop())
            logger.info(f"Cache sweeper started (every {self.sweep_interval}s)")

    async def stop_background_tasks(self) -> None:
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


_shared_services: Optional[Services] = None


def get_services() -> Services:
    """Shared singleton so every route uses the same session, caches and clients."""
    global _shared_services
    if _shared_services is None:
        _shared_services = Services.from_config()
    return _shared_services
