"""LRCLIB Provider for synchronized lyrics"""

from typing import Optional, Dict, Any, List

import requests as req

from .base import LyricsProvider, parse_lrc
from config import get_provider_config, VERSION
from errors import UpstreamUnavailable
from logging_config import get_logger

logger = get_logger(__name__)


class LRCLIBProvider(LyricsProvider):
    # Define constants for the API
    BASE_URL = "https://lrclib.net/api"
    HEADERS = {
        "User-Agent": f"TrackMeta v{VERSION}",
        "Lrclib-Client": f"TrackMeta v{VERSION}",
    }

    def __init__(self, http: Optional[req.Session] = None):
        """Initialize LRCLIB provider with config settings"""
        super().__init__(provider_name="lrclib")

        config = get_provider_config("lrclib")
        self.BASE_URL = config.get("base_url", self.BASE_URL).rstrip("/")
        self.session = http or req.Session()

    def _request(self, endpoint: str, params: Dict[str, Any]) -> req.Response:
        try:
            return self.session.get(
                f"{self.BASE_URL}/{endpoint}",
                params=params,
                headers=self.HEADERS,
                timeout=self.timeout,
            )
        except req.Timeout:
            raise UpstreamUnavailable(f"LRCLIB {endpoint} timed out", code="LRCLIB_TIMEOUT")
        except req.RequestException as e:
            logger.error(f"LRCLib - {endpoint} request failed: {e}", exc_info=True)
            raise UpstreamUnavailable(f"LRCLIB {endpoint} request failed", code="LRCLIB_ERROR")

    @staticmethod
    def _process(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Turn one LRCLIB record into a provider result, or None if it has no lyrics."""
        if not isinstance(data, dict):
            return None
        if data.get("instrumental"):
            return {"plain_lyrics": None, "synced_lyrics": None, "is_instrumental": True}

        plain = data.get("plainLyrics") or None
        synced = parse_lrc(data.get("syncedLyrics"))
        if synced:
            return {
                "plain_lyrics": plain or "\n".join(line.text for line in synced),
                "synced_lyrics": synced,
                "is_instrumental": False,
            }
        if plain:
            return {"plain_lyrics": plain, "synced_lyrics": None, "is_instrumental": False}
        return None

    def get_lyrics(self, artist: str, title: str, album: str = None, duration: int = None) -> Optional[Dict[str, Any]]:
        """
        Get lyrics using LRCLIB API
        Args:
            artist (str): Artist name
            title (str): Track title
            album (str): Album name (optional)
            duration (int): Track duration in seconds (optional)
        """
        artist = artist.strip()
        title = title.strip()
        album = album.strip() if album else None

        # 1. /api/get needs the full signature (album + duration)
        if album and duration and duration > 0:
            params = {
                "artist_name": artist,
                "track_name": title,
                "album_name": album,
                "duration": int(round(duration)),
            }
            logger.info(f"LRCLib - Trying exact match with params: {params}")
            resp = self._request("get", params)
            if resp.status_code == 200:
                try:
                    result = self._process(resp.json())
                except ValueError as e:
                    logger.error(f"LRCLib - invalid JSON: {e}")
                    raise UpstreamUnavailable("LRCLIB returned invalid JSON", code="LRCLIB_ERROR")
                if result:
                    return result
                logger.info("LRCLib - Exact match had no lyrics, trying search")
            elif resp.status_code == 404:
                logger.info("LRCLib - Exact match 404 Not Found")
            else:
                logger.warning(f"LRCLib - Exact match returned status {resp.status_code}")

        # 2. Fallback to /api/search by artist and title
        logger.info(f"LRCLib - Searching for: {artist} - {title}")
        search_resp = self._request("search", {"track_name": title, "artist_name": artist})
        if search_resp.status_code != 200:
            raise UpstreamUnavailable(f"LRCLIB search failed: HTTP {search_resp.status_code}", code="LRCLIB_ERROR")
        try:
            results: List[Dict[str, Any]] = search_resp.json()
        except ValueError as e:
            logger.error(f"LRCLib - invalid JSON: {e}")
            raise UpstreamUnavailable("LRCLIB returned invalid JSON", code="LRCLIB_ERROR")

        if not isinstance(results, list) or not results:
            logger.info(f"LRCLib - No search results found for: {artist} - {title}")
            return None

        for record in results:
            if not isinstance(record, dict):
                continue
            result = self._process(record)
            if result:
                logger.info(f"LRCLib - Found match in search results: {record.get('trackName')} by {record.get('artistName')} (instrumental: {result['is_instrumental']})")
                return result

        logger.info("LRCLib - Search results found but none had lyrics")
        return None
