"""
Volatility Cache - Day-TTL store for historical volatility estimates

Estimating volatility needs two years of daily prices, so estimates are kept
for a day (configurable) in memory and in SQLite.
"""

import os
import time
import sqlite3
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Optional

from config.projection_config import ProjectionConfig

logger = logging.getLogger('VolatilityCache')


class VolatilityCache:
    """Caches annualized volatility per ticker with a time-to-live"""

    def __init__(self, config: Optional[ProjectionConfig] = None, db_path: Optional[str] = None,
                 ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.config = config or ProjectionConfig()
        self.db_path = db_path or self.config.cache.db_path
        self.default_ttl = self.config.data.volatility_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.clock = clock

        self._lock = threading.Lock()
        # In-memory layer in front of SQLite: ticker -> (volatility, timestamp)
        self.memory_cache: Dict[str, tuple] = {}

        if self.db_path != ':memory:':
            os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False) if self.db_path == ':memory:' else None
        self._init_db()

    def _connect(self):
        if self._conn is not None:
            return self._conn
        conn = sqlite3.connect(self.db_path)
        conn.execute(f"PRAGMA busy_timeout={int(self.config.cache.busy_timeout_ms)}")
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _release(self, conn):
        if conn is not self._conn:
            conn.close()

    @contextmanager
    def _connection(self):
        conn = self._connect()
        try:
            yield conn
        finally:
            self._release(conn)

    def _init_db(self):
        with self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS volatility_cache (
                    ticker TEXT PRIMARY KEY,
                    volatility REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)
            conn.commit()

    @staticmethod
    def _normalize(ticker: str) -> str:
        return ticker.strip().upper()

    def _is_cache_valid(self, timestamp: float, ttl: int = None) -> bool:
        if ttl is None:
            ttl = self.default_ttl
        return (self.clock() - timestamp) < ttl

    def get(self, ticker: str, ttl: int = None) -> Optional[float]:
        """Cached volatility if present and not expired."""
        ticker = self._normalize(ticker)

        cached = self.memory_cache.get(ticker)
        if cached and self._is_cache_valid(cached[1], ttl):
            logger.debug(f"Memory cache hit for {ticker}")
            return cached[0]

        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT volatility, updated_at FROM volatility_cache WHERE ticker = ?", (ticker,)
            ).fetchone()

        if row and self._is_cache_valid(row[1], ttl):
            self.memory_cache[ticker] = (row[0], row[1])
            logger.debug(f"DB cache hit for {ticker}")
            return row[0]

        logger.debug(f"Cache miss for {ticker}")
        return None

    def set(self, ticker: str, volatility: float):
        self.set_many({ticker: volatility})

    def set_many(self, volatilities: Dict[str, float]) -> int:
        """Store several estimates in one transaction. Returns rows written."""
        now = self.clock()
        rows = [(self._normalize(t), float(v), now) for t, v in volatilities.items()]
        if not rows:
            return 0

        with self._lock, self._connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO volatility_cache (ticker, volatility, updated_at) VALUES (?, ?, ?)",
                rows
            )
            conn.commit()

        for ticker, volatility, ts in rows:
            self.memory_cache[ticker] = (volatility, ts)
        logger.debug(f"Cached volatility for {len(rows)} tickers")
        return len(rows)

    def get_all(self) -> Dict[str, float]:
        """Every unexpired estimate."""
        with self._lock, self._connection() as conn:
            rows = conn.execute("SELECT ticker, volatility, updated_at FROM volatility_cache").fetchall()
        return {t: v for t, v, ts in rows if self._is_cache_valid(ts)}

    def cleanup_expired_cache(self) -> int:
        """Remove expired rows. Returns the number removed."""
        cutoff = self.clock() - self.default_ttl
        with self._lock, self._connection() as conn:
            cursor = conn.execute("DELETE FROM volatility_cache WHERE updated_at <= ?", (cutoff,))
            conn.commit()
            removed = cursor.rowcount

        for ticker in [t for t, (_, ts) in self.memory_cache.items() if ts <= cutoff]:
            del self.memory_cache[ticker]

        if removed:
            logger.info(f"Removed {removed} expired volatility entries")
        return removed

    def clear_cache(self):
        with self._lock, self._connection() as conn:
            conn.execute("DELETE FROM volatility_cache")
            conn.commit()
        self.memory_cache.clear()
