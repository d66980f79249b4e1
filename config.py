"""
TrackMeta Configuration Loader
Loads values from the environment and settings.json via the settings manager.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

from settings import settings, SETTINGS_FILE

# ==========================================
# Path Configuration
# ==========================================
ROOT_DIR = Path(__file__).parent

# ==========================================
# Version
# ==========================================
VERSION = "0.4.0"

# Only load .env if it exists
env_file = ROOT_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)

# Helper to prefer Env Var > Settings JSON > Default
def conf(key, default=None):
    # 1. Check Env Var (Highest Priority - good for docker/dev)
    env_val = os.getenv(key.upper().replace('.', '_'))
    if env_val is not None:
        return env_val

    # 2. Check Settings JSON
    json_val = settings.get(key)
    if json_val is not None:
        return json_val

    # 3. Default
    return default


def _flag(value) -> bool:
    # Env vars arrive as strings
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)

# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

# Cache directory can be overridden for persistent storage (Docker volumes)
CACHE_DIR = Path(os.getenv("TRACKMETA_CACHE_DIR", str(ROOT_DIR / "cache")))

DEBUG = {
    "enabled": _flag(conf("debug.enabled", False)),
    "log_file": conf("debug.log_file", "trackmeta.log"),
    "log_level": conf("debug.log_level", "INFO"),
    "log_providers": _flag(conf("debug.log_providers", True)),
    "log_to_console": _flag(conf("debug.log_to_console", True)),
    "log_detailed": _flag(conf("debug.log_detailed", False)),
    "log_rotation": {
        "max_bytes": int(conf("debug.log_rotation.max_bytes", 10485760)),
        "backup_count": int(conf("debug.log_rotation.backup_count", 5))
    }
}

SERVER = {
    "port": int(conf("server.port", 9020)),
    "host": conf("server.host", "0.0.0.0"),
    "debug": _flag(conf("server.debug", False)),
    "cors_origin": conf("server.cors_origin", "*"),
    # Bearer token for the API; unset means every caller is accepted.
    # Secret, so only read from the environment (never settings.json)
    "api_token": os.getenv("TRACKMETA_API_TOKEN", ""),
}

NAVIDROME = {
    "url": (conf("navidrome.url", "") or "").rstrip("/"),
    "username": conf("navidrome.username", ""),
    # Note: password is NOT in settings.json - it's only read from environment variable
    "password": os.getenv("NAVIDROME_PASSWORD", ""),
    "timeout": float(conf("navidrome.timeout", 5.0)),
    "token_ttl": int(conf("navidrome.token_ttl", 3600)),
    "refresh_threshold": int(conf("navidrome.refresh_threshold", 300)),
}

LASTFM = {
    # Same as the Navidrome password: environment only
    "api_key": os.getenv("LASTFM_API_KEY", ""),
    "base_url": os.getenv("LASTFM_BASE_URL", "https://ws.audioscrobbler.com/2.0/"),
    "timeout": float(conf("lastfm.timeout", 5.0)),
    "cache_ttl": int(conf("lastfm.cache_ttl", 300)),
    "backoff": int(conf("lastfm.backoff", 60)),
}

PROVIDERS = {
    "navidrome": {
        "enabled": _flag(conf("providers.navidrome.enabled", True)),
        "priority": int(conf("providers.navidrome.priority", 1)),
        "timeout": float(conf("navidrome.timeout", 5.0)),
    },
    "lrclib": {
        "enabled": _flag(conf("providers.lrclib.enabled", True)),
        "priority": int(conf("providers.lrclib.priority", 2)),
        "base_url": os.getenv("LRCLIB_BASE_URL", "https://lrclib.net/api"),
        "timeout": float(conf("providers.lrclib.timeout", 10)),
    },
}

LYRICS_CACHE = {
    "ttl_days": int(conf("lyrics_cache.ttl_days", 30)),
    "sweep_interval": int(conf("lyrics_cache.sweep_interval", 21600)),
}

LIBRARY = {
    "index_ttl": int(conf("library.index_ttl", 1800)),
    "page_size": int(conf("library.page_size", 500)),
    "max_songs": int(conf("library.max_songs", 5000)),
    "failure_backoff": int(conf("library.failure_backoff", 60)),
}

# Helper functions
def get_provider_config(name: str) -> dict:
    return PROVIDERS.get(name, {"enabled": False, "priority": 0})
