"""
Cache store for raw provider payloads.

The store only keeps and returns entries; whether an entry is still fresh
is decided by the caller with `is_fresh`, so invalidation tooling can bypass
the policy by deleting entries outright.

Two implementations:
    MemoryCacheStore  - process-local dict (tests, single-process gateway)
    SQLiteCacheStore  - one-table SQLite file, upsert by plate
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from .models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS = timedelta(days=30)


def is_fresh(entry: CacheEntry, now: datetime, window: timedelta = DEFAULT_FRESHNESS) -> bool:
    """True if the entry is no older than `window` (boundary inclusive)."""
    return now - entry.fetched_at <= window


class CacheStore(ABC):
    """Keyed store of CacheEntry by canonical plate."""

    @abstractmethod
    async def get(self, plate: str) -> Optional[CacheEntry]:
        """Return the authoritative entry for a plate, or None."""
        pass

    @abstractmethod
    async def put(self, plate: str, entry: CacheEntry) -> None:
        """Insert or replace the entry for a plate."""
        pass

    @abstractmethod
    async def delete(self, plate: str) -> bool:
        """Remove the entry for a plate. Returns True if one existed."""
        pass

    async def close(self) -> None:
        pass


class MemoryCacheStore(CacheStore):
    """In-process cache. Entries are lost on restart."""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, plate: str) -> Optional[CacheEntry]:
        return self._entries.get(plate)

    async def put(self, plate: str, entry: CacheEntry) -> None:
        self._entries[plate] = entry

    async def delete(self, plate: str) -> bool:
        return self._entries.pop(plate, None) is not None

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS vehicle_cache (
    plate       TEXT PRIMARY KEY,
    fetched_at  TEXT NOT NULL,
    payloads    TEXT NOT NULL
)
"""

_UPSERT = """
INSERT INTO vehicle_cache (plate, fetched_at, payloads) VALUES (?, ?, ?)
ON CONFLICT(plate) DO UPDATE SET
    fetched_at = excluded.fetched_at,
    payloads = excluded.payloads
"""


class SQLiteCacheStore(CacheStore):
    """
    SQLite-backed cache.

    Rows hold the fetch timestamp (ISO 8601, UTC) and the raw payloads as
    JSON. Queries are single-row primary-key lookups, so they run inline on
    the event loop.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = str(path)
        self._conn = sqlite3.connect(self.path, timeout=5)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute(_SCHEMA)
        logger.info(f"Vehicle cache opened at {self.path}")

    async def get(self, plate: str) -> Optional[CacheEntry]:
        row = self._conn.execute(
            "SELECT plate, fetched_at, payloads FROM vehicle_cache WHERE plate = ?",
            (plate,)
        ).fetchone()
        if not row:
            return None
        try:
            payloads = json.loads(row["payloads"])
        except json.JSONDecodeError as e:
            # A corrupt row is treated as a miss; the next fetch overwrites it.
            logger.warning(f"Unreadable cache row for {plate}: {e}")
            return None
        fetched_at = datetime.fromisoformat(row["fetched_at"])
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        return CacheEntry(plate=row["plate"], payloads=payloads, fetched_at=fetched_at)

    async def put(self, plate: str, entry: CacheEntry) -> None:
        with self._conn:
            self._conn.execute(
                _UPSERT,
                (plate, entry.fetched_at.isoformat(), json.dumps(entry.payloads)),
            )

    async def delete(self, plate: str) -> bool:
        with self._conn:
            cursor = self._conn.execute("DELETE FROM vehicle_cache WHERE plate = ?", (plate,))
        return cursor.rowcount > 0

    async def close(self) -> None:
        self._conn.close()
