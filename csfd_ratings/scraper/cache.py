"""Persistent enrichment cache shared by all workers of a run."""
from __future__ import annotations

import time
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from . import config
from .models import CacheEntry
from .utils import load_json_file, log_line, save_json_file


class CacheStore:
    """Flat JSON map ``<sourceUrl>::details`` -> :class:`CacheEntry`.

    All access is serialised by one lock. A disabled store behaves as an
    always-empty cache and never touches the disk.
    """

    def __init__(self, path: Path = config.CACHE_FILE, *, enabled: bool = True) -> None:
        self.path = Path(path)
        self.enabled = enabled
        self._lock = Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._dirty = False

    def load(self) -> int:
        """Read the cache file; missing or corrupt files start an empty cache."""

        if not self.enabled:
            return 0
        raw = load_json_file(self.path, default={})
        entries: Dict[str, CacheEntry] = {}
        if isinstance(raw, dict):
            for key, payload in raw.items():
                if isinstance(payload, dict):
                    entries[str(key)] = CacheEntry.from_dict(payload)
        else:
            log_line(f"[CACHE][WARN] Ignoring cache file {self.path}: not a JSON object")
        with self._lock:
            self._entries = entries
            self._dirty = False
        log_line(f"[CACHE] Loaded {len(entries)} cached entries from {self.path}")
        return len(entries)

    def get(self, key: str) -> Optional[CacheEntry]:
        if not self.enabled:
            return None
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        if not self.enabled:
            return
        if not entry.cached_at:
            entry.cached_at = time.strftime("%Y-%m-%dT%H:%M:%S")
        with self._lock:
            self._entries[key] = entry
            self._dirty = True

    def flush(self, *, force: bool = False) -> bool:
        """Write the whole map atomically; returns ``True`` when written."""

        if not self.enabled:
            return False
        with self._lock:
            if not self._dirty and not force:
                return False
            payload = {key: entry.to_dict() for key, entry in self._entries.items()}
            save_json_file(self.path, payload)
            self._dirty = False
        log_line(f"[CACHE] Flushed {len(payload)} entries to {self.path}")
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not self.enabled:
            return False
        with self._lock:
            return key in self._entries


__all__ = ["CacheStore"]
