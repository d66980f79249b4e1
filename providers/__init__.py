"""
Upstream Providers Package
Lyrics providers plus the Navidrome and Last.fm API clients.
"""

from .base import LyricsProvider, parse_lrc
from .lrclib import LRCLIBProvider
from .navidrome import NavidromeClient, NavidromeSession
from .navidrome_lyrics import NavidromeLyricsProvider
from .lastfm import LastFmClient, clamp_limit

__all__ = [
    'LyricsProvider',
    'LRCLIBProvider',
    'NavidromeLyricsProvider',
    'NavidromeClient',
    'NavidromeSession',
    'LastFmClient',
    'clamp_limit',
    'parse_lrc',
]
