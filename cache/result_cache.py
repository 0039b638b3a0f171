"""
Result Cache - Versioned store for projection and scenario results

Rows are keyed by (subject_id, scenario_id, model_version). Bumping the model
version makes every older row invisible to readers without touching it, and
explicit invalidation removes rows by scenario, by version or by key.

Writes are single-statement upserts, so a reader never sees half a payload and
concurrent writers for the same key converge to one row (last writer wins).
Batch writes commit entry by entry and report per-key failures instead of
aborting.

Author: Trading Bot Arsenal
Created: January 2026
"""

import os
import json
import sqlite3
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from config.projection_config import ProjectionConfig
from simulation.errors import CacheWriteFailure

logger = logging.getLogger('ResultCache')


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class CacheKey:
    subject_id: str      # Portfolio or ticker the result describes
    scenario_id: str     # Scenario / analog id, or 'current' for current conditions
    version: int

    def __str__(self):
        return f"{self.subject_id}/{self.scenario_id}@v{self.version}"


@dataclass
class CacheEntry:
    key: CacheKey
    payload: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)
    computed_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def version(self) -> int:
        return self.key.version


@dataclass
class UpsertSummary:
    succeeded: int = 0
    failed: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.failed == 0


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# RESULT CACHE
# =============================================================================

class ResultCache:
    """SQLite-backed versioned result cache."""

    def __init__(self, config: Optional[ProjectionConfig] = None, db_path: Optional[str] = None,
                 model_version: Optional[int] = None):
        self.config = config or ProjectionConfig()
        self.db_path = db_path or self.config.cache.db_path
        self.model_version = self.config.cache.model_version if model_version is None else model_version
        self.busy_timeout_ms = self.config.cache.busy_timeout_ms

        self._lock = threading.Lock()
        self._key_locks: Dict[CacheKey, Tuple[threading.Lock, int]] = {}
        self._key_locks_guard = threading.Lock()

        # An in-memory database only lives as long as its connection
        self._shared_conn = None
        if self.db_path == ':memory:':
            self._shared_conn = sqlite3.connect(':memory:', check_same_thread=False)
        else:
            directory = os.path.dirname(os.path.abspath(self.db_path))
            os.makedirs(directory, exist_ok=True)

        self._init_db()

    # -------------------------------------------------------------------------
    # Connection handling
    # -------------------------------------------------------------------------

    def _connect(self):
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_ms / 1000.0)
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connection(self):
        if self._shared_conn is not None:
            yield self._shared_conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self):
        with self._lock, self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projection_cache (
                    subject_id TEXT NOT NULL,
                    scenario_id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    metadata TEXT,
                    computed_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (subject_id, scenario_id, version)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_projection_cache_scenario ON projection_cache(scenario_id, version)"
            )
            conn.commit()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def key(self, subject_id: str, scenario_id: str) -> CacheKey:
        """Key for the current model version."""
        return CacheKey(str(subject_id), str(scenario_id), self.model_version)

    def is_fresh(self, version) -> bool:
        """True when a version (or an entry's version) matches the current model."""
        if isinstance(version, CacheEntry):
            version = version.version
        return version == self.model_version

    @staticmethod
    def _row_to_entry(row) -> CacheEntry:
        subject_id, scenario_id, version, payload, metadata, computed_at, updated_at = row
        return CacheEntry(
            key=CacheKey(subject_id, scenario_id, int(version)),
            payload=json.loads(payload),
            metadata=json.loads(metadata) if metadata else {},
            computed_at=computed_at,
            updated_at=updated_at,
        )

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT subject_id, scenario_id, version, payload, metadata, computed_at, updated_at "
                "FROM projection_cache WHERE subject_id = ? AND scenario_id = ? AND version = ?",
                (key.subject_id, key.scenario_id, key.version)
            ).fetchone()

        if row is None:
            logger.debug(f"Cache miss for {key}")
            return None
        logger.debug(f"Cache hit for {key}")
        return self._row_to_entry(row)

    def get_scenario(self, scenario_id: str, version: Optional[int] = None) -> List[CacheEntry]:
        """All rows for a scenario at a version (current by default)."""
        version = self.model_version if version is None else version
        with self._lock, self._connection() as conn:
            rows = conn.execute(
                "SELECT subject_id, scenario_id, version, payload, metadata, computed_at, updated_at "
                "FROM projection_cache WHERE scenario_id = ? AND version = ? ORDER BY subject_id",
                (scenario_id, version)
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _serialize(self, entry: CacheEntry) -> Tuple:
        key = entry.key
        if not key.subject_id or not key.scenario_id:
            raise ValueError("subject_id and scenario_id are required")
        if not isinstance(entry.payload, dict):
            raise TypeError(f"payload must be a dict, got {type(entry.payload).__name__}")
        payload = json.dumps(entry.payload, allow_nan=False, default=str)
        metadata = json.dumps(entry.metadata or {}, allow_nan=False, default=str)
        now = _now()
        return (key.subject_id, key.scenario_id, int(key.version), payload, metadata,
                entry.computed_at or now, now)

    def put(self, entry: CacheEntry) -> CacheEntry:
        """
        Insert or replace one entry atomically.

        Raises:
            CacheWriteFailure: the entry could not be serialized or written
        """
        try:
            row = self._serialize(entry)
            with self._lock, self._connection() as conn:
                conn.execute("""
                    INSERT INTO projection_cache
                        (subject_id, scenario_id, version, payload, metadata, computed_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(subject_id, scenario_id, version) DO UPDATE SET
                        payload = excluded.payload,
                        metadata = excluded.metadata,
                        computed_at = excluded.computed_at,
                        updated_at = excluded.updated_at
                """, row)
                conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise CacheWriteFailure(entry.key, str(e)) from e

        entry.computed_at = row[5]
        entry.updated_at = row[6]
        return entry

    def upsert_batch(self, entries: Iterable[CacheEntry]) -> UpsertSummary:
        """
        Upsert many entries. Each entry commits on its own; failures are
        collected per key and never abort the rest of the batch.
        """
        summary = UpsertSummary()
        for entry in entries:
            try:
                self.put(entry)
                summary.succeeded += 1
            except CacheWriteFailure as e:
                summary.failed += 1
                summary.failures[str(e.key)] = e.reason
                logger.warning(f"Cache write failed for {e.key}: {e.reason}")

        logger.info(f"Cache batch upsert: {summary.succeeded} succeeded, {summary.failed} failed")
        return summary

    @contextmanager
    def _key_lock(self, key: CacheKey):
        """Per-key lock, dropped once no caller holds or waits on it."""
        with self._key_locks_guard:
            lock, users = self._key_locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._key_locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._key_locks_guard:
                lock, users = self._key_locks[key]
                if users <= 1:
                    del self._key_locks[key]
                else:
                    self._key_locks[key] = (lock, users - 1)

    def get_or_compute(self, key: CacheKey, compute: Callable[[], Dict[str, Any]],
                       metadata: Optional[Dict[str, Any]] = None) -> Tuple[CacheEntry, bool]:
        """
        Return the cached entry for a key, computing and storing it on a miss.

        At most one computation runs per key at a time within this cache
        instance; concurrent callers for the same key wait and then read the
        stored result.

        Returns:
            (entry, computed) - computed is False on a cache hit
        """
        cached = self.get(key)
        if cached is not None:
            return cached, False

        with self._key_lock(key):
            cached = self.get(key)
            if cached is not None:
                return cached, False

            payload = compute()
            entry = CacheEntry(key=key, payload=payload, metadata=dict(metadata or {}))
            try:
                self.put(entry)
            except CacheWriteFailure as e:
                # The computed value is still valid for this caller
                logger.warning(f"Computed {key} but could not cache it: {e.reason}")
            return entry, True

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def _delete(self, where: str, params: Tuple) -> int:
        with self._lock, self._connection() as conn:
            cursor = conn.execute(f"DELETE FROM projection_cache WHERE {where}", params)
            conn.commit()
            return cursor.rowcount

    def delete(self, key: CacheKey) -> bool:
        return self._delete(
            "subject_id = ? AND scenario_id = ? AND version = ?",
            (key.subject_id, key.scenario_id, key.version)
        ) > 0

    def invalidate_scenario(self, scenario_id: str, version: Optional[int] = None) -> int:
        """Remove every row for a scenario (all versions unless one is given)."""
        if version is None:
            removed = self._delete("scenario_id = ?", (scenario_id,))
        else:
            removed = self._delete("scenario_id = ? AND version = ?", (scenario_id, version))
        logger.info(f"Invalidated {removed} cache rows for scenario {scenario_id}")
        return removed

    def invalidate_version(self, version: int) -> int:
        removed = self._delete("version = ?", (version,))
        logger.info(f"Invalidated {removed} cache rows for version {version}")
        return removed

    def prune_stale_versions(self) -> int:
        """Remove rows written under any version other than the current one."""
        removed = self._delete("version != ?", (self.model_version,))
        if removed:
            logger.info(f"Pruned {removed} stale cache rows (current version {self.model_version})")
        return removed

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        with self._lock, self._connection() as conn:
            total, subjects, scenarios, oldest, newest = conn.execute(
                "SELECT COUNT(*), COUNT(DISTINCT subject_id), COUNT(DISTINCT scenario_id), "
                "MIN(updated_at), MAX(updated_at) FROM projection_cache WHERE version = ?",
                (self.model_version,)
            ).fetchone()
            stale = conn.execute(
                "SELECT COUNT(*) FROM projection_cache WHERE version != ?", (self.model_version,)
            ).fetchone()[0]

        return {
            'model_version': self.model_version,
            'total_entries': total,
            'unique_subjects': subjects,
            'unique_scenarios': scenarios,
            'stale_entries': stale,
            'oldest_update': oldest,
            'newest_update': newest,
        }

    def close(self):
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None
