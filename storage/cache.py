"""
SQLite-backed result cache.
Stores unified record collections as JSON keyed by logical query key (a date string or the
work-items token) together with the time they were stored.
"""

import sqlite3
import json
import time
import logging
import threading
from contextlib import contextmanager
from typing import Optional, Any, Dict, Callable, List

logger = logging.getLogger(__name__)

DB_PATH = None  # can be overridden by caller

COMMITS_KEY_PREFIX = "commits:"
WORK_ITEMS_KEY = "work-items"
WORK_ITEMS_TTL_SECONDS = 5 * 60

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS result_cache (
    key TEXT PRIMARY KEY,
    payload TEXT,
    stored_at REAL
);
"""


class Cache:
    def __init__(self, path: Optional[str] = None, max_entries: Optional[int] = None, clock: Callable[[], float] = time.time):
        """Create a cache instance.

        :param path: SQLite file path or None for in-memory.
        :param max_entries: optional maximum number of entries to keep; oldest entries are pruned when exceeded.
        :param clock: source of "now" in epoch seconds, replaceable in tests.
        """
        self.path = path or DB_PATH or ':memory:'
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()
        self.max_entries = int(max_entries) if max_entries is not None else None
        self.clock = clock
        self._init_db()

    def _init_db(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(SQL_CREATE)
            self.conn.commit()

    @contextmanager
    def key_lock(self, key: str):
        """Serialize readers and writers of a single key; different keys never contend."""
        with self._key_locks_guard:
            lock = self._key_locks.setdefault(key, threading.Lock())
        with lock:
            yield

    def close(self):
        with self._lock:
            if getattr(self, 'conn', None) is not None:
                try:
                    self.conn.close()
                finally:
                    self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # noinspection SqlResolve
    def stats(self) -> Dict[str, Any]:
        """Return basic statistics about the cache: count, oldest and newest stored_at."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT COUNT(1), MIN(stored_at), MAX(stored_at) FROM result_cache')
            count, oldest, newest = cur.fetchone()
        return {
            'path': self.path,
            'count': int(count or 0),
            'oldest': float(oldest) if oldest is not None else None,
            'newest': float(newest) if newest is not None else None,
        }

    # noinspection SqlResolve
    def list_keys(self, limit: int = 1000) -> List[Dict[str, Any]]:
        """Return cache keys with their stored_at and payload size, newest first."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT key, stored_at, payload FROM result_cache ORDER BY stored_at DESC LIMIT ?', (limit,))
            rows = cur.fetchall()
        items = []
        for k, stored_at, payload in rows:
            try:
                size = len(json.loads(payload))
            except (TypeError, ValueError):
                size = 0
            items.append({'key': k, 'stored_at': float(stored_at or 0), 'records': size})
        return items

    # noinspection SqlWithoutWhere
    def clear(self):
        """Clear all entries from the cache."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM result_cache')
            self.conn.commit()

    # noinspection SqlResolve
    def delete_key(self, key: str) -> int:
        """Delete a specific cache key. Returns number of rows deleted."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM result_cache WHERE key = ?', (key,))
            self.conn.commit()
            return cur.rowcount

    # noinspection SqlResolve
    def get(self, key: str, max_age: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Return ``{'payload', 'stored_at'}`` for key, or None on a miss.

        An entry older than max_age seconds counts as a miss; max_age None means it never expires.
        """
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT payload, stored_at FROM result_cache WHERE key = ?', (key,))
            row = cur.fetchone()
        if not row:
            return None
        payload, stored_at = row
        if max_age is not None and self.clock() - float(stored_at or 0) > float(max_age):
            return None
        try:
            parsed = json.loads(payload)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable cache entry %s", key)
            return None
        return {'payload': parsed, 'stored_at': float(stored_at)}

    # noinspection SqlResolve
    def set(self, key: str, payload: Any, stored_at: Optional[float] = None):
        """Store payload under key, replacing any previous entry in a single statement."""
        encoded = json.dumps(payload)
        when = self.clock() if stored_at is None else float(stored_at)
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('REPLACE INTO result_cache(key, payload, stored_at) VALUES (?, ?, ?)', (key, encoded, when))
            self.conn.commit()
            self._prune_if_needed(cur)

    # noinspection SqlResolve
    def _prune_if_needed(self, cur):
        if self.max_entries is None:
            return
        cur.execute('SELECT COUNT(1) FROM result_cache')
        count = cur.fetchone()[0] or 0
        if count > self.max_entries:
            cur.execute('SELECT key FROM result_cache ORDER BY stored_at ASC LIMIT ?', (int(count - self.max_entries),))
            keys = [r[0] for r in cur.fetchall()]
            cur.executemany('DELETE FROM result_cache WHERE key = ?', [(k,) for k in keys])
            self.conn.commit()


class ResultCache:
    """Query-level cache policies on top of Cache.

    Commits for a date never expire: history for a past day does not change, so the entry only
    answers "was this exact question already asked". Work items expire after five minutes because
    their state moves during a session.
    """

    def __init__(self, cache: Cache, work_items_ttl: float = WORK_ITEMS_TTL_SECONDS):
        self.cache = cache
        self.work_items_ttl = work_items_ttl

    @staticmethod
    def commits_key(date_string: str) -> str:
        return f"{COMMITS_KEY_PREFIX}{date_string}"

    def _read(self, key: str, max_age: Optional[float]) -> Optional[List[Dict[str, Any]]]:
        with self.cache.key_lock(key):
            entry = self.cache.get(key, max_age=max_age)
        if entry is None:
            logger.debug("Cache miss for %s", key)
            return None
        logger.debug("Cache hit for %s (stored at %s)", key, entry['stored_at'])
        return entry['payload']

    def _write(self, key: str, payload: List[Dict[str, Any]]) -> bool:
        """Store payload under key. Returns False, after logging a warning, when the write fails."""
        try:
            with self.cache.key_lock(key):
                self.cache.set(key, payload)
            return True
        except (sqlite3.Error, TypeError, ValueError, AttributeError) as ex:
            logger.warning("Failed to store cache entry %s: %s", key, ex)
            return False

    def get_commits(self, date_string: str) -> Optional[List[Dict[str, Any]]]:
        return self._read(self.commits_key(date_string), max_age=None)

    def put_commits(self, date_string: str, payload: List[Dict[str, Any]]) -> bool:
        return self._write(self.commits_key(date_string), payload)

    def get_work_items(self) -> Optional[List[Dict[str, Any]]]:
        return self._read(WORK_ITEMS_KEY, max_age=self.work_items_ttl)

    def put_work_items(self, payload: List[Dict[str, Any]]) -> bool:
        return self._write(WORK_ITEMS_KEY, payload)


__all__ = ["Cache", "ResultCache", "WORK_ITEMS_KEY", "WORK_ITEMS_TTL_SECONDS"]
