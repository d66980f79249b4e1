"""
Base Provider Class
All lyrics providers must inherit from this base class.
"""

import asyncio
import re
from abc import ABC
from typing import Any, Dict, List, Optional

from config import get_provider_config
from logging_config import get_logger
from models import SyncedLine

logger = get_logger(__name__)

# [mm:ss.xx] or [mm:ss.xxx]
LRC_LINE_RE = re.compile(r"\[(\d{2}):(\d{2})\.(\d{2,3})\](.*)")


def parse_lrc(text: Optional[str]) -> List[SyncedLine]:
    """
    Parse LRC text into timed lines sorted by time.
    Metadata tags ([ar:...], [by:...]) and lines with blank text are skipped.
    """
    lines: List[SyncedLine] = []
    if not text:
        return lines
    for raw in text.splitlines():
        match = LRC_LINE_RE.search(raw)
        if not match:
            continue
        minutes, seconds, fraction, body = match.groups()
        body = body.strip()
        if not body:
            continue
        millis = int(fraction.ljust(3, "0"))
        time_ms = (int(minutes) * 60 + int(seconds)) * 1000 + millis
        lines.append(SyncedLine(time_ms=time_ms, text=body))
    lines.sort(key=lambda line: line.time_ms)
    return lines


class LyricsProvider(ABC):
    """Base class for all lyrics providers."""

    def __init__(self, provider_name: str):
        """
        Initialize the provider using configuration from config.py

        Args:
            provider_name (str): Name of the provider (must match config key)
        """
        config = get_provider_config(provider_name.lower())

        self.name = provider_name
        self.priority = config.get('priority', 100)
        self.enabled = config.get('enabled', True)
        self.timeout = config.get('timeout', 10)

        if self.enabled:
            logger.info(f"Initialized {self.name} provider (priority: {self.priority})")
        else:
            logger.info(f"{self.name} provider is disabled")

    @property
    def available(self) -> bool:
        """Whether the provider can be queried right now (enabled and configured)."""
        return self.enabled

    def get_lyrics(self, artist: str, title: str,
                   album: Optional[str] = None, duration: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Blocking lookup, run in a worker thread by ``fetch``.

        Returns:
            Optional[Dict[str, Any]]: None when the provider has nothing, otherwise
                {
                    "plain_lyrics": Optional[str],
                    "synced_lyrics": Optional[List[SyncedLine]],
                    "is_instrumental": bool,
                }

        Raises:
            UpstreamUnavailable: transport failure or unexpected response
        """
        raise NotImplementedError

    async def fetch(self, artist: str, title: str,
                    album: Optional[str] = None, duration: Optional[int] = None) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.get_lyrics, artist, title, album, duration)

    def __str__(self) -> str:
        status = "enabled" if self.enabled else "disabled"
        return f"{self.name} Provider (Priority: {self.priority}, Status: {status})"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name='{self.name}' priority={self.priority} enabled={self.enabled}>"
