"""
TrackMeta Settings Manager

Optional overrides live in settings.json as flat dotted keys
(``"navidrome.url": "http://nas:4533"``). Each known key is converted to its
declared type and range-checked; a bad value falls back to the default.
Credentials are never read from this file, see ``SECRET_KEYS``.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from logging_config import get_logger

logger = get_logger(__name__)

ROOT_DIR = Path(__file__).parent

# Allow overriding the settings file location via environment variable (Docker volumes)
SETTINGS_FILE = Path(os.getenv("TRACKMETA_SETTINGS_FILE", str(ROOT_DIR / "settings.json")))

# Environment only: NAVIDROME_PASSWORD, LASTFM_API_KEY, TRACKMETA_API_TOKEN
SECRET_KEYS = {"navidrome.password", "lastfm.api_key", "server.api_token"}

Number = Union[int, float]


@dataclass
class Setting:
    label: str
    type: type
    default: Any
    minimum: Optional[Number] = None
    maximum: Optional[Number] = None
    description: str = ""

    def convert(self, value: Any) -> Any:
        """Typed value, or the default when ``value`` is unusable."""
        try:
            if self.type is bool:
                converted = value.strip().lower() in ('true', '1', 'yes', 'on') if isinstance(value, str) else bool(value)
            else:
                converted = self.type(value)
        except (ValueError, TypeError):
            logger.warning(f"Invalid value {value!r} for '{self.label}', using default {self.default!r}")
            return self.default

        out_of_range = (
            (self.minimum is not None and converted < self.minimum)
            or (self.maximum is not None and converted > self.maximum)
        )
        if out_of_range:
            logger.warning(f"'{self.label}' = {converted!r} outside [{self.minimum}, {self.maximum}], "
                           f"using default {self.default!r}")
            return self.default
        return converted


DEFINITIONS: Dict[str, Setting] = {
    "debug.enabled": Setting("Debug", bool, False),
    "debug.log_file": Setting("Log File", str, "trackmeta.log"),
    "debug.log_level": Setting("Log Level", str, "INFO", description="Console verbosity"),
    "debug.log_detailed": Setting("Detailed Logging", bool, False, description="DEBUG level in the log file"),
    "debug.log_providers": Setting("Log Providers", bool, True),
    "debug.log_to_console": Setting("Log to Console", bool, True),
    "debug.log_rotation.max_bytes": Setting("Max Log Size", int, 10485760, minimum=1024),
    "debug.log_rotation.backup_count": Setting("Log Backups", int, 5, minimum=0),

    "server.port": Setting("Port", int, 9020, minimum=1, maximum=65535),
    "server.host": Setting("Host", str, "0.0.0.0"),
    "server.debug": Setting("Server Debug", bool, False),
    "server.cors_origin": Setting("CORS Origin", str, "*", description="Access-Control-Allow-Origin on proxy responses"),

    "navidrome.url": Setting("Navidrome URL", str, ""),
    "navidrome.username": Setting("Navidrome User", str, ""),
    "navidrome.timeout": Setting("Navidrome Timeout", float, 5.0, minimum=0.5, maximum=120),
    "navidrome.token_ttl": Setting("Token TTL", int, 3600, minimum=60),
    "navidrome.refresh_threshold": Setting("Refresh Threshold", int, 300, minimum=0),

    "lastfm.timeout": Setting("Last.fm Timeout", float, 5.0, minimum=0.5, maximum=120),
    "lastfm.cache_ttl": Setting("Last.fm Cache TTL", int, 300, minimum=0),
    "lastfm.backoff": Setting("Last.fm Backoff", int, 60, minimum=0, description="Pause after 429/5xx (s)"),

    "providers.navidrome.enabled": Setting("Navidrome Lyrics", bool, True),
    "providers.navidrome.priority": Setting("Navidrome Priority", int, 1, description="Lower runs first"),
    "providers.lrclib.enabled": Setting("LRCLIB", bool, True),
    "providers.lrclib.priority": Setting("LRCLIB Priority", int, 2, description="Lower runs first"),
    "providers.lrclib.timeout": Setting("LRCLIB Timeout", float, 10.0, minimum=0.5, maximum=120),

    "lyrics_cache.ttl_days": Setting("Lyrics TTL", int, 30, minimum=1),
    "lyrics_cache.sweep_interval": Setting("Sweep Interval", int, 21600, minimum=0, description="0 disables the sweeper"),

    "library.index_ttl": Setting("Library Index TTL", int, 1800, minimum=0),
    "library.page_size": Setting("Library Page Size", int, 500, minimum=1, maximum=5000),
    "library.max_songs": Setting("Library Max Songs", int, 5000, minimum=1),
    "library.failure_backoff": Setting("Library Retry Delay", int, 60, minimum=0, description="Pause after a failed index build (s)"),
}


class SettingsManager:
    def __init__(self, settings_file: Path = SETTINGS_FILE):
        self.settings_file = Path(settings_file)
        self._values: Dict[str, Any] = {}
        self.load_settings()

    def _read_file(self) -> Dict[str, Any]:
        if not self.settings_file.exists():
            return {}
        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load {self.settings_file.name}: {e} - using defaults")
            return {}
        if not isinstance(data, dict):
            logger.error(f"{self.settings_file.name} must contain a JSON object - using defaults")
            return {}
        return data

    def load_settings(self) -> None:
        """(Re)build the effective values: declared defaults overlaid with settings.json."""
        values = {key: setting.default for key, setting in DEFINITIONS.items()}

        for key, raw in self._read_file().items():
            if key in SECRET_KEYS:
                logger.warning(f"Ignoring '{key}' in {self.settings_file.name}; set it in the environment instead")
            elif key in DEFINITIONS:
                values[key] = DEFINITIONS[key].convert(raw)
            else:
                logger.debug(f"Unknown setting '{key}' kept as-is")
                values[key] = raw

        self._values = values

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def definition(self, key: str) -> Optional[Setting]:
        return DEFINITIONS.get(key)


settings = SettingsManager()
