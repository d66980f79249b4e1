"""
Last.fm API Client
Fetches similar tracks and artist top tracks. Raw track lists are cached for a
few minutes; library status is added later by the enrichment layer.
"""

import asyncio
import json
import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

import requests

from cache_store import CacheStore
from errors import NotConfigured, UpstreamUnavailable
from logging_config import get_logger
from models import SimilarTrack, TopTrack
from normalize import normalize_text

logger = get_logger(__name__)

DEFAULT_SIMILAR_LIMIT = 20
DEFAULT_TOP_LIMIT = 10
MIN_LIMIT = 1
MAX_LIMIT = 100

CACHE_NAMESPACE = "lastfm"

# Last.fm API error numbers -> our codes
API_ERROR_CODES = {
    10: "LASTFM_INVALID_API_KEY",  # Invalid API key
    26: "LASTFM_INVALID_API_KEY",  # Suspended API key
    29: "LASTFM_RATE_LIMITED",
    6: "LASTFM_NOT_FOUND",  # Artist/track not found
    11: "LASTFM_SERVICE_UNAVAILABLE",
    16: "LASTFM_SERVICE_UNAVAILABLE",  # Temporarily offline
}

IMAGE_SIZE_ORDER = ["mega", "extralarge", "large", "medium", "small", ""]


def clamp_limit(raw: Any, default: int) -> int:
    """Parse a caller-supplied limit. Malformed -> default, otherwise clamped to [1, 100]."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return max(MIN_LIMIT, min(MAX_LIMIT, value))


def make_cache_key(*parts: Any) -> str:
    # JSON keeps "a:b","c" and "a","b:c" apart
    return json.dumps(list(parts), ensure_ascii=False, separators=(",", ":"))


def _as_list(value: Any) -> List[Dict[str, Any]]:
    # Last.fm collapses one-element arrays into a bare object
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    if isinstance(value, dict):
        return [value]
    return []


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _artist_name(artist: Any) -> str:
    if isinstance(artist, str):
        return artist
    if isinstance(artist, dict):
        return artist.get("name") or artist.get("#text") or "Unknown Artist"
    return "Unknown Artist"


def _largest_image(images: Any) -> Optional[str]:
    images = _as_list(images)
    for size in IMAGE_SIZE_ORDER:
        for image in images:
            if image.get("size") == size and image.get("#text"):
                return image["#text"]
    for image in images:
        if image.get("#text"):
            return image["#text"]
    return None


class LastFmClient:
    def __init__(self, api_key: str, base_url: str = "https://ws.audioscrobbler.com/2.0/",
                 timeout: float = 5.0, cache: Optional[CacheStore] = None, cache_ttl: int = 300,
                 backoff: int = 60, http: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time):
        self.api_key = api_key or ""
        self.base_url = base_url
        self.timeout = timeout
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.backoff = backoff
        self.http = http or requests.Session()
        self._clock = clock
        self._backoff_until = 0.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> None:
        if not self.api_key:
            raise NotConfigured("Last.fm API key not configured", code="LASTFM_NOT_CONFIGURED")

    def _start_backoff(self, seconds: float, reason: str) -> None:
        self._backoff_until = self._clock() + seconds
        logger.warning(f"Last.fm {reason}. Backing off for {seconds:.0f}s")

    def _get(self, params: Dict[str, Any]) -> requests.Response:
        return self.http.get(self.base_url, params=params, timeout=self.timeout)

    async def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        now = self._clock()
        if now < self._backoff_until:
            logger.debug(f"In backoff period. Skipping {method}. Resuming in {self._backoff_until - now:.1f}s")
            raise UpstreamUnavailable("Last.fm service is temporarily unavailable", code="LASTFM_SERVICE_UNAVAILABLE")

        query = {"method": method, "api_key": self.api_key, "format": "json", **params}
        try:
            response = await asyncio.to_thread(self._get, query)
        except requests.RequestException as e:
            logger.error(f"Last.fm {method} request failed: {e}", exc_info=True)
            raise UpstreamUnavailable("Failed to connect to Last.fm", code="LASTFM_ERROR")

        if response.status_code == 429:
            self._start_backoff(_to_int(response.headers.get("Retry-After"), self.backoff), "rate limit hit")
            raise UpstreamUnavailable("Last.fm rate limit exceeded", code="LASTFM_RATE_LIMITED")
        if response.status_code >= 500:
            self._start_backoff(self.backoff, f"server error {response.status_code}")
            raise UpstreamUnavailable(f"Last.fm server error: {response.status_code}", code="LASTFM_SERVICE_UNAVAILABLE")
        if not response.ok:
            raise UpstreamUnavailable(f"Last.fm HTTP {response.status_code}", code="LASTFM_ERROR")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Last.fm {method} returned invalid JSON: {e}")
            raise UpstreamUnavailable("Invalid JSON from Last.fm", code="LASTFM_ERROR")
        if not isinstance(data, dict):
            raise UpstreamUnavailable("Unexpected Last.fm response", code="LASTFM_ERROR")

        if data.get("error"):
            api_code = _to_int(data.get("error"), -1)
            code = API_ERROR_CODES.get(api_code, "LASTFM_ERROR")
            logger.warning(f"Last.fm {method} returned error {api_code}: {data.get('message')}")
            raise UpstreamUnavailable(data.get("message") or "Unknown Last.fm API error", code=code,
                                      retryable=code in ("LASTFM_RATE_LIMITED", "LASTFM_SERVICE_UNAVAILABLE"))
        return data

    async def _cached_tracks(self, cache_key: str, method: str, params: Dict[str, Any],
                             extract: Callable[[Dict[str, Any]], Any]) -> List[Dict[str, Any]]:
        if self.cache is not None:
            record = await self.cache.get(CACHE_NAMESPACE, cache_key)
            if record is not None:
                logger.debug(f"Last.fm cache hit: {cache_key}")
                return record.value

        tracks = _as_list(extract(await self._call(method, params)))

        if self.cache is not None:
            try:
                await self.cache.put(CACHE_NAMESPACE, cache_key, tracks,
                                     expires_at=self.cache.now() + timedelta(seconds=self.cache_ttl))
            except OSError as e:
                logger.warning(f"Could not cache Last.fm response {cache_key}: {e}")
        return tracks

    async def get_similar_tracks(self, artist: str, track: str, limit: Any = DEFAULT_SIMILAR_LIMIT) -> List[SimilarTrack]:
        """Tracks similar to ``artist - track``, best match first."""
        self._require_key()
        limit = clamp_limit(limit, DEFAULT_SIMILAR_LIMIT)
        logger.info(f"Fetching similar tracks for '{artist} - {track}' (limit {limit})")

        raw = await self._cached_tracks(
            make_cache_key("similar-tracks", normalize_text(artist), normalize_text(track), limit),
            "track.getsimilar",
            {"artist": artist, "track": track, "limit": limit},
            lambda data: (data.get("similartracks") or {}).get("track"),
        )
        return [
            SimilarTrack(
                artist=_artist_name(item.get("artist")),
                title=item.get("name") or "",
                match_score=_to_float(item.get("match")),
                url=item.get("url"),
                image=_largest_image(item.get("image")),
                duration=_to_int(item.get("duration")) or None,
            )
            for item in raw[:limit]
        ]

    async def get_top_tracks(self, artist: str, limit: Any = DEFAULT_TOP_LIMIT) -> List[TopTrack]:
        self._require_key()
        limit = clamp_limit(limit, DEFAULT_TOP_LIMIT)
        logger.info(f"Fetching top tracks for '{artist}' (limit {limit})")

        raw = await self._cached_tracks(
            make_cache_key("top-tracks", normalize_text(artist), limit),
            "artist.gettoptracks",
            {"artist": artist, "limit": limit},
            lambda data: (data.get("toptracks") or {}).get("track"),
        )
        tracks = []
        for index, item in enumerate(raw[:limit], start=1):
            attrs = item.get("@attr") or {}
            tracks.append(TopTrack(
                artist=_artist_name(item.get("artist")),
                title=item.get("name") or "",
                play_count=_to_int(item.get("playcount")),
                rank=_to_int(attrs.get("rank"), index),
                listeners=_to_int(item.get("listeners")),
                url=item.get("url"),
                image=_largest_image(item.get("image")),
            ))
        return tracks
