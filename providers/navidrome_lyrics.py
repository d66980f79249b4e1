"""Navidrome Provider for lyrics embedded in the local library files"""

from typing import Any, Dict, List, Optional

from .base import LyricsProvider
from .navidrome import NavidromeClient
from logging_config import get_logger
from models import SyncedLine
from normalize import normalize_text

logger = get_logger(__name__)


class NavidromeLyricsProvider(LyricsProvider):
    """
    Looks the song up in Navidrome by title and reads its embedded lyrics
    through the OpenSubsonic ``getLyricsBySongId`` endpoint.
    """

    SEARCH_LIMIT = 20

    def __init__(self, client: NavidromeClient):
        super().__init__(provider_name="navidrome")
        self.client = client

    @property
    def available(self) -> bool:
        return self.enabled and self.client.is_configured

    def _find_song(self, songs: List[Dict[str, Any]], artist: str, title: str,
                   album: Optional[str]) -> Optional[Dict[str, Any]]:
        want_artist = normalize_text(artist)
        want_title = normalize_text(title)
        matches = [
            song for song in songs
            if normalize_text(song.get("title") or song.get("name")) == want_title
            and want_artist in (normalize_text(song.get("artist")), normalize_text(song.get("albumArtist")))
        ]
        if album:
            want_album = normalize_text(album)
            for song in matches:
                if normalize_text(song.get("album")) == want_album:
                    return song
        return matches[0] if matches else None

    @staticmethod
    def _pick(structured: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        synced = [entry for entry in structured if entry.get("synced") and entry.get("line")]
        if synced:
            return synced[0]
        unsynced = [entry for entry in structured if entry.get("line")]
        return unsynced[0] if unsynced else None

    async def fetch(self, artist: str, title: str,
                    album: Optional[str] = None, duration: Optional[int] = None) -> Optional[Dict[str, Any]]:
        if not self.available:
            return None

        songs = await self.client.search_songs(title, limit=self.SEARCH_LIMIT)
        song = self._find_song(songs, artist, title, album)
        if not song:
            logger.info(f"Navidrome - No library song for: {artist} - {title}")
            return None

        entry = self._pick(await self.client.get_song_lyrics(song["id"]))
        if not entry:
            logger.info(f"Navidrome - Song {song['id']} has no embedded lyrics")
            return None

        texts = [(line.get("value") or "").strip() for line in entry["line"]]
        plain = "\n".join(text for text in texts if text) or None
        if not entry.get("synced"):
            return {"plain_lyrics": plain, "synced_lyrics": None, "is_instrumental": False} if plain else None

        synced = [
            SyncedLine(time_ms=int(line.get("start") or 0), text=text)
            for line, text in zip(entry["line"], texts)
            if text
        ]
        synced.sort(key=lambda line: line.time_ms)
        logger.info(f"Navidrome - Found {len(synced)} synced lines for: {artist} - {title}")
        return {"plain_lyrics": plain, "synced_lyrics": synced or None, "is_instrumental": False}
