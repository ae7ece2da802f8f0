"""
Read-through cache with per-entry expiry for reference data and FX snapshots.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached value together with its expiry timestamp."""
    value: Any
    expires_at: datetime
    stored_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now()) >= self.expires_at


class ExpiringCache:
    """
    Key/value cache where every entry carries its own expiry.

    Entries live in memory; when ``cache_dir`` is given, JSON-serialisable
    values are also mirrored to disk so a restarted process can reuse them.
    """

    def __init__(self, cache_dir: Optional[str] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the cache.

        Args:
            cache_dir: Optional directory for on-disk copies of entries
            clock: Callable returning the current time (injectable for tests)
        """
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock or datetime.now
        self.cache_dir = Path(cache_dir) if cache_dir else None
        if self.cache_dir is not None:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    def now(self) -> datetime:
        return self._clock()

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value for ``key`` or None when missing or expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = self._load_from_disk(key)
            if entry is not None:
                self._entries[key] = entry

        if entry is None:
            return None

        if entry.is_expired(self.now()):
            logger.info(f"Cache entry expired: {key}")
            self.invalidate(key)
            return None

        return entry.value

    def put(self, key: str, value: Any, ttl: Optional[timedelta] = None,
            expires_at: Optional[datetime] = None) -> None:
        """
        Store ``value`` under ``key`` until ``expires_at`` or for ``ttl``.
        """
        now = self.now()
        if expires_at is None:
            if ttl is None:
                raise ValueError("Either ttl or expires_at is required")
            expires_at = now + ttl

        entry = CacheEntry(value=value, expires_at=expires_at, stored_at=now)
        self._entries[key] = entry
        self._save_to_disk(key, entry)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one entry, or every entry when ``key`` is None."""
        keys = [key] if key is not None else list(self._entries.keys())
        for k in keys:
            self._entries.pop(k, None)
            if self.cache_dir is not None:
                cache_file = self._cache_file(k)
                if cache_file.exists():
                    cache_file.unlink()

        if key is None and self.cache_dir is not None:
            for cache_file in self.cache_dir.glob("*_cache.json"):
                cache_file.unlink()

    def keys(self):
        return list(self._entries.keys())

    def get_stats(self) -> Dict[str, Any]:
        """Summary of cached entries for diagnostics."""
        return {
            key: {
                'stored_at': entry.stored_at.isoformat(),
                'expires_at': entry.expires_at.isoformat(),
                'expired': entry.is_expired(self.now())
            }
            for key, entry in self._entries.items()
        }

    def _cache_file(self, key: str) -> Path:
        return self.cache_dir / f"{key}_cache.json"

    def _save_to_disk(self, key: str, entry: CacheEntry) -> None:
        if self.cache_dir is None:
            return

        try:
            cache_data = {
                'value': entry.value,
                'expires_at': entry.expires_at.isoformat(),
                'stored_at': entry.stored_at.isoformat()
            }
            with open(self._cache_file(key), 'w') as f:
                json.dump(cache_data, f, indent=2)
        except (TypeError, OSError) as e:
            logger.error(f"Error saving {key} cache to disk: {str(e)}")

    def _load_from_disk(self, key: str) -> Optional[CacheEntry]:
        if self.cache_dir is None:
            return None

        cache_file = self._cache_file(key)
        if not cache_file.exists():
            return None

        try:
            with open(cache_file, 'r') as f:
                cache_data = json.load(f)

            logger.info(f"Loaded {key} cache from disk")
            return CacheEntry(
                value=cache_data['value'],
                expires_at=datetime.fromisoformat(cache_data['expires_at']),
                stored_at=datetime.fromisoformat(cache_data['stored_at'])
            )
        except (ValueError, KeyError, OSError) as e:
            logger.error(f"Error loading {key} cache from disk: {str(e)}")
            return None
