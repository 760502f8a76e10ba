"""
PolyNBA Pipeline — Fetch Cache
Explicit TTL cache handed to the fetch layer. Nothing here is module-global:
callers construct a cache and pass it to espn_client functions.

Two backends:
  MemoryCache    — per-process dict, for a single runner pass
  JsonFileCache  — one JSON file per key under CACHE_DIR, survives restarts
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from espn_config import CACHE_DIR, CACHE_TTL_SECONDS

log = logging.getLogger(__name__)


class FetchCache(ABC):
    """Key/value store with per-entry expiry. Values must be JSON-serialisable."""

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock

    @abstractmethod
    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def _write(self, key: str, entry: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        entry = self._read(key)
        if entry is None:
            return None
        age = self._clock() - entry["timestamp"]
        if age > entry["expires_in"]:
            log.debug(f"Cache expired: {key} (age {age:.0f}s)")
            self._delete(key)
            return None
        return entry["data"]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._write(key, {
            "data":       value,
            "timestamp":  self._clock(),
            "expires_in": self.ttl if ttl is None else ttl,
        })


class MemoryCache(FetchCache):
    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        super().__init__(ttl, clock)
        self._store: Dict[str, Dict[str, Any]] = {}

    def _read(self, key):
        return self._store.get(key)

    def _write(self, key, entry):
        self._store[key] = entry

    def _delete(self, key):
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class JsonFileCache(FetchCache):
    """
    File-backed cache. Keys are hashed into file names so URLs are safe to use
    directly. Unreadable files are treated as misses.
    """

    VERSION = "1"

    def __init__(
        self,
        directory: Path = CACHE_DIR,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl, clock)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(f"{self.VERSION}:{key}".encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _read(self, key):
        p = self._path(key)
        if not p.exists():
            return None
        try:
            return json.loads(p.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            log.warning(f"Could not read cache entry for {key} ({exc}), ignoring")
            return None

    def _write(self, key, entry):
        try:
            self._path(key).write_text(json.dumps(entry))
        except (OSError, TypeError) as exc:
            log.warning(f"Could not write cache entry for {key}: {exc}")

    def _delete(self, key):
        p = self._path(key)
        if p.exists():
            p.unlink()

    def clear(self) -> None:
        for p in self.directory.glob("*.json"):
            p.unlink()

