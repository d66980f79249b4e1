"""Text normalization shared by the lyrics cache key and library matching."""

import re
from typing import Optional, Union

from errors import ValidationError

_WHITESPACE_RE = re.compile(r"\s+")

_TITLE_DECORATIONS = [
    re.compile(r"\s*\(feat\..*?\)", re.IGNORECASE),
    re.compile(r"\s*\[feat\..*?\]", re.IGNORECASE),
    re.compile(r"\s*ft\..*$", re.IGNORECASE),
    re.compile(r"\s*\(remix\)", re.IGNORECASE),
    re.compile(r"\s*\[remix\]", re.IGNORECASE),
]
_ARTIST_DECORATIONS = [
    re.compile(r"\s*feat\..*$", re.IGNORECASE),
    re.compile(r"\s*ft\..*$", re.IGNORECASE),
]


def normalize_text(value: Optional[str]) -> str:
    """Trimmed, casefolded, whitespace collapsed. None becomes ''."""
    return _WHITESPACE_RE.sub(" ", (value or "").strip()).casefold()


def library_key(artist: Optional[str], title: Optional[str]) -> str:
    """Single key for (artist, title) used to match Last.fm tracks to library songs."""
    return f"{normalize_text(artist)}|{normalize_text(title)}"


def normalize_duration(duration: Union[str, int, float, None]) -> Optional[str]:
    """
    Duration in seconds as a rounded integer string.

    None and '' stay None so an omitted duration never collides with "0".
    """
    if duration is None:
        return None
    if isinstance(duration, str):
        duration = duration.strip()
        if not duration:
            return None
    try:
        seconds = float(duration)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid duration: {duration!r}", code="INVALID_DURATION")
    if seconds != seconds or seconds in (float("inf"), float("-inf")) or seconds < 0:
        raise ValidationError(f"Invalid duration: {duration!r}", code="INVALID_DURATION")
    return str(int(round(seconds)))


def clean_title(title: str) -> str:
    """Strip featured-artist and remix decorations before querying a provider."""
    for pattern in _TITLE_DECORATIONS:
        title = pattern.sub("", title)
    return title.strip()


def clean_artist(artist: str) -> str:
    for pattern in _ARTIST_DECORATIONS:
        artist = pattern.sub("", artist)
    return artist.strip()
