"""
Centralized logging configuration for TrackMeta

One stdout handler plus a rotating file under ``logs/``. Every record passes
through ``RedactSecretsFilter`` because request exceptions from ``requests``
embed the full URL, which carries the Last.fm ``api_key`` and the Subsonic
``t``/``s`` auth params.
"""

import logging
import logging.handlers
import os
import re
import sys
from pathlib import Path
from typing import Dict, Optional

ROOT_DIR = Path(__file__).parent

# Log directory can be moved for container deployments
LOGS_DIR = Path(os.getenv("TRACKMETA_LOGS_DIR", str(ROOT_DIR / "logs")))

CONSOLE_FORMAT = '(%(filename)s:%(lineno)d) %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'

# Third-party loggers that are only interesting when something breaks
NOISY_LOGGERS = ('urllib3', 'hypercorn.error', 'hypercorn.access', 'quart.serving', 'asyncio')

_SECRET_PARAM_RE = re.compile(r"([?&](?:api_key|t|s|p)=)[^&\s'\"]+")
_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+")

_logging_initialized = False


class RedactSecretsFilter(logging.Filter):
    """Masks credentials in query strings and bearer headers before a record is emitted."""

    @staticmethod
    def redact(text: str) -> str:
        text = _SECRET_PARAM_RE.sub(r"\1***", text)
        return _BEARER_RE.sub(r"\1***", text)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _level(name: str, fallback: int = logging.INFO) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else fallback


def parse_level_overrides(spec: Optional[str]) -> Dict[str, int]:
    """
    Parse ``TRACKMETA_LOG_LEVELS`` style overrides, e.g.
    ``providers.lastfm=DEBUG,cache_store=WARNING``. Malformed items are skipped.
    """
    overrides: Dict[str, int] = {}
    for item in (spec or "").split(","):
        name, sep, level = item.partition("=")
        name, level = name.strip(), level.strip()
        if not sep or not name or not isinstance(logging.getLevelName(level.upper()), int):
            continue
        overrides[name] = logging.getLevelName(level.upper())
    return overrides


def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    console: bool = True,
    log_file: Optional[str] = None,
    log_providers: bool = True,
    max_bytes: int = 1 * 1024 * 1024,
    backup_count: int = 10
) -> None:
    """
    Set up logging configuration with separate console and file handlers

    Args:
        console_level: Logging level for console output (default: INFO)
        file_level: Logging level for file output (default: DEBUG)
        console: Whether to enable console logging (default: True)
        log_file: Optional custom log file name
        log_providers: Whether upstream client logs follow the console level (default: True)
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
    """
    global _logging_initialized
    if _logging_initialized:
        return

    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    log_path = LOGS_DIR / (log_file or "trackmeta.log")
    redactor = RedactSecretsFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers = []

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(_level(console_level))
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.addFilter(redactor)
        root_logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(_level(file_level, logging.DEBUG))
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    file_handler.addFilter(redactor)
    root_logger.addHandler(file_handler)

    logging.getLogger('providers').setLevel(_level(console_level) if log_providers else logging.WARNING)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for name, level in parse_level_overrides(os.getenv("TRACKMETA_LOG_LEVELS")).items():
        logging.getLogger(name).setLevel(level)

    _logging_initialized = True

    root_logger.info(f"Logging initialized - Console: {console_level}, File: {file_level}")
    root_logger.debug(f"Log file: {log_path}")


def reset_logging() -> None:
    """Drop our handlers so ``setup_logging`` can run again (tests, reconfiguration)."""
    global _logging_initialized
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    _logging_initialized = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    # setup_logging() must be called explicitly by the entry point.
    return logging.getLogger(name)
