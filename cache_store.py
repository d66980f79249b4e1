"""
Namespaced key/value cache persisted as one JSON file per key.

Layout: ``<root>/<namespace>/<sha256(key)>.json``. Every record carries its
own ``expires_at``; expired records are dropped when read and purged in bulk
by ``sweep()``. Writes go through a temp file plus ``os.replace`` so a crash
never leaves a half-written record behind (last writer wins).
"""

import asyncio
import hashlib
import json
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from errors import ValidationError
from logging_config import get_logger

logger = get_logger(__name__)

_NAMESPACE_RE = re.compile(r"^[a-z0-9_-]{1,64}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheRecord:
    namespace: str
    key: str
    value: Any
    stored_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_json(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "key": self.key,
            "value": self.value,
            "stored_at": self.stored_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CacheRecord":
        return cls(
            namespace=data["namespace"],
            key=data["key"],
            value=data["value"],
            stored_at=datetime.fromisoformat(data["stored_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


class CacheStore:
    def __init__(self, root: Path, clock: Optional[Callable[[], datetime]] = None):
        self.root = Path(root)
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @staticmethod
    def _check_namespace(namespace: str) -> str:
        if not isinstance(namespace, str) or not _NAMESPACE_RE.match(namespace):
            raise ValidationError(f"Invalid cache namespace: {namespace!r}", code="INVALID_NAMESPACE")
        return namespace

    def _path(self, namespace: str, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root / self._check_namespace(namespace) / f"{digest}.json"

    # ------------------------------------------------------------------
    # Blocking helpers (run in worker threads)
    # ------------------------------------------------------------------

    def _read(self, path: Path) -> Optional[CacheRecord]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return CacheRecord.from_json(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache record {path.name}: {e}")
            self._unlink(path)
            return None

    def _write(self, path: Path, record: CacheRecord) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Temp file must live in the same directory for the rename to be atomic
        fd, temp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_json(), f, ensure_ascii=False)
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    def _namespaces(self):
        if not self.root.exists():
            return []
        return sorted(p for p in self.root.iterdir() if p.is_dir())

    def _sweep_sync(self, now: datetime) -> int:
        removed = 0
        for ns_dir in self._namespaces():
            for path in ns_dir.glob("*.json"):
                record = self._read(path)
                if record is not None and record.is_expired(now):
                    if self._unlink(path):
                        removed += 1
        return removed

    def _clear_sync(self, namespace: str) -> int:
        ns_dir = self.root / namespace
        if not ns_dir.exists():
            return 0
        return sum(1 for path in ns_dir.glob("*.json") if self._unlink(path))

    def _stats_sync(self, now: datetime) -> Dict[str, Dict[str, int]]:
        stats = {}
        for ns_dir in self._namespaces():
            entries = expired = size = 0
            for path in ns_dir.glob("*.json"):
                record = self._read(path)
                if record is None:
                    continue
                entries += 1
                size += path.stat().st_size
                if record.is_expired(now):
                    expired += 1
            stats[ns_dir.name] = {"entries": entries, "expired": expired, "bytes": size}
        return stats

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, namespace: str, key: str, now: Optional[datetime] = None) -> Optional[CacheRecord]:
        """Return the live record for ``key`` or None. Expired records are deleted."""
        path = self._path(namespace, key)
        record = await asyncio.to_thread(self._read, path)
        if record is None:
            return None
        if record.key != key:
            # sha256 collision or a hand-edited file
            logger.warning(f"Cache key mismatch in {namespace}/{path.name}")
            return None
        if record.is_expired(now or self._clock()):
            await asyncio.to_thread(self._unlink, path)
            logger.debug(f"Cache record expired: {namespace}/{key}")
            return None
        return record

    async def put(self, namespace: str, key: str, value: Any, expires_at: datetime,
                  now: Optional[datetime] = None) -> CacheRecord:
        record = CacheRecord(
            namespace=namespace,
            key=key,
            value=value,
            stored_at=now or self._clock(),
            expires_at=expires_at,
        )
        await asyncio.to_thread(self._write, self._path(namespace, key), record)
        return record

    async def delete(self, namespace: str, key: str) -> bool:
        return await asyncio.to_thread(self._unlink, self._path(namespace, key))

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Physically remove every expired record across all namespaces."""
        removed = await asyncio.to_thread(self._sweep_sync, now or self._clock())
        if removed:
            logger.info(f"Cache sweep removed {removed} expired records")
        return removed

    async def clear(self, namespace: str) -> int:
        self._check_namespace(namespace)
        removed = await asyncio.to_thread(self._clear_sync, namespace)
        logger.info(f"Cleared {removed} records from cache namespace '{namespace}'")
        return removed

    async def stats(self) -> Dict[str, Dict[str, int]]:
        return await asyncio.to_thread(self._stats_sync, self._clock())
