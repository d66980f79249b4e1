"""
Data records passed between the clients, the caches and the HTTP layer.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceProvider(str, Enum):
    NAVIDROME = "navidrome"
    LRCLIB = "lrclib"
    NONE = "none"


@dataclass
class SyncedLine:
    time_ms: int
    text: str


@dataclass
class LyricsCacheEntry:
    """One cached lyrics lookup. ``source == none`` is a negative result."""
    id: str
    artist: str
    title: str
    album: Optional[str]
    duration: Optional[str]
    lyrics: Optional[str]
    synced_lyrics: Optional[List[SyncedLine]]
    source: SourceProvider
    fetched_at: datetime
    expires_at: datetime
    instrumental: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "artist": self.artist,
            "title": self.title,
            "album": self.album,
            "duration": self.duration,
            "lyrics": self.lyrics,
            "synced_lyrics": [asdict(line) for line in self.synced_lyrics] if self.synced_lyrics is not None else None,
            "source": self.source.value,
            "instrumental": self.instrumental,
            "fetched_at": self.fetched_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LyricsCacheEntry":
        synced = data.get("synced_lyrics")
        return cls(
            id=data["id"],
            artist=data["artist"],
            title=data["title"],
            album=data.get("album"),
            duration=data.get("duration"),
            lyrics=data.get("lyrics"),
            synced_lyrics=[SyncedLine(int(line["time_ms"]), line["text"]) for line in synced] if synced is not None else None,
            source=SourceProvider(data.get("source", "none")),
            instrumental=bool(data.get("instrumental", False)),
            fetched_at=datetime.fromisoformat(data["fetched_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


@dataclass
class SimilarTrack:
    artist: str
    title: str
    match_score: float
    url: Optional[str] = None
    image: Optional[str] = None
    duration: Optional[int] = None


@dataclass
class TopTrack:
    artist: str
    title: str
    play_count: int
    rank: int
    listeners: int = 0
    url: Optional[str] = None
    image: Optional[str] = None


@dataclass
class EnrichedTrack:
    """A Last.fm track annotated with local library presence."""
    artist: str
    title: str
    in_library: bool = False
    library_track_id: Optional[str] = None
    library_album: Optional[str] = None
    match_score: Optional[float] = None
    play_count: Optional[int] = None
    rank: Optional[int] = None
    url: Optional[str] = None
    image: Optional[str] = None
    duration: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        # Drop fields that don't apply to this kind of track
        return {k: v for k, v in asdict(self).items() if v is not None or k == "library_track_id"}


@dataclass
class ProxyResponse:
    status: int
    body: Any
    headers: Dict[str, str] = field(default_factory=dict)
