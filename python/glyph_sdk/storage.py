"""
storage.py — Persistence Boundary

Manifests, genesis records and cached stories live in a plain key-value
store keyed by string id. No transactional guarantees are assumed.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from .compression import compress, decompress, from_base64, to_base64
from .errors import DecodeFailure
from .manifest import Manifest
from .records import PlatformGenesis, Record, UserGenesis, record_from_dict

logger = logging.getLogger(__name__)

MANIFEST_PREFIX = "manifest:"
GENESIS_PREFIX = "genesis:"
STORY_CACHE_PREFIX = "story:"


class RecordStore(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, value: Dict[str, Any]) -> None: ...

    def list(self, prefix: str = "") -> List[str]: ...

    def delete(self, key: str) -> bool: ...


class MemoryStore:
    """Dict-backed store."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = json.dumps(value)

    def list(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class SqliteStore:
    """JSON documents in a single SQLite table."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                body TEXT NOT NULL,
                updated REAL
            )
        """)
        self.conn.commit()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            cur = self.conn.execute("SELECT body FROM documents WHERE id = ?", (key,))
            row = cur.fetchone()
        if row:
            return json.loads(row[0])
        return None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self.conn.execute("""
                INSERT OR REPLACE INTO documents (id, body, updated)
                VALUES (?, ?, ?)
            """, (key, json.dumps(value), time.time()))
            self.conn.commit()

    def list(self, prefix: str = "") -> List[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._lock:
            cur = self.conn.execute(
                "SELECT id FROM documents WHERE id LIKE ? ESCAPE '\\' ORDER BY id",
                (escaped + "%",),
            )
            return [row[0] for row in cur.fetchall()]

    def delete(self, key: str) -> bool:
        with self._lock:
            cur = self.conn.execute("DELETE FROM documents WHERE id = ?", (key,))
            self.conn.commit()
        return cur.rowcount > 0

    def close(self):
        self.conn.close()


# ============================================================================
# TYPED HELPERS
# ============================================================================

def save_manifest(store: RecordStore, manifest: Manifest) -> None:
    manifest.validate()
    store.set(MANIFEST_PREFIX + manifest.story_id, manifest.to_dict())


def load_manifest(store: RecordStore, story_id: str) -> Optional[Manifest]:
    data = store.get(MANIFEST_PREFIX + story_id)
    return Manifest.from_dict(data) if data is not None else None


def list_manifests(store: RecordStore) -> List[str]:
    return [k[len(MANIFEST_PREFIX):] for k in store.list(MANIFEST_PREFIX)]


def save_genesis(store: RecordStore, key: str, record: Union[PlatformGenesis, UserGenesis]) -> None:
    store.set(GENESIS_PREFIX + key, record.to_dict())


def load_genesis(store: RecordStore, key: str) -> Optional[Record]:
    data = store.get(GENESIS_PREFIX + key)
    return record_from_dict(data) if data is not None else None


# ============================================================================
# STORY CACHE
# ============================================================================

class StoryCache:
    """
    Fully assembled stories, stored compressed. Entries older than `ttl`
    seconds are dropped on read.
    """

    def __init__(self, store: RecordStore, ttl: float = 24 * 60 * 60,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def put(self, story_id: str, text: str, root_hash: Optional[str] = None) -> None:
        self.store.set(STORY_CACHE_PREFIX + story_id, {
            "body": to_base64(compress(text)),
            "root_hash": root_hash,
            "cached_at": self.clock(),
        })

    def get(self, story_id: str, root_hash: Optional[str] = None) -> Optional[str]:
        """Cached text, or None if missing, expired, stale or unreadable."""
        key = STORY_CACHE_PREFIX + story_id
        entry = self.store.get(key)
        if entry is None:
            return None
        if self.clock() - entry.get("cached_at", 0) > self.ttl:
            self.store.delete(key)
            return None
        if root_hash is not None and entry.get("root_hash") != root_hash:
            return None
        try:
            return decompress(from_base64(entry["body"]))
        except (KeyError, DecodeFailure) as e:
            logger.warning(f"Dropping unreadable cache entry for {story_id}: {e}")
            self.store.delete(key)
            return None

    def evict(self, story_id: str) -> bool:
        return self.store.delete(STORY_CACHE_PREFIX + story_id)

    def stories(self) -> List[str]:
        return [k[len(STORY_CACHE_PREFIX):] for k in self.store.list(STORY_CACHE_PREFIX)]
