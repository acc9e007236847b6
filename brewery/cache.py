import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Optional

from brewery.config import CACHE_TTL_HOURS


class MetadataCache:
    """SQLite-based cache for API responses with TTL support.

    Keys are namespaced by the caller, e.g. ``formula/wget`` or ``manifest/wget/1.24.5``.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS api_cache (
                    cache_key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    stored_at REAL NOT NULL,
                    ttl_hours REAL NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_stored_at ON api_cache(stored_at)")
            conn.commit()

    @staticmethod
    def _expired(stored_at: float, ttl_hours: float, now: float) -> bool:
        return (now - stored_at) / 3600 >= ttl_hours

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the cached payload, or None when absent or expired."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT payload, stored_at, ttl_hours FROM api_cache WHERE cache_key = ?", (key,)
            ).fetchone()
            if not row:
                return None

            payload, stored_at, ttl_hours = row
            if self._expired(stored_at, ttl_hours, time.time()):
                conn.execute("DELETE FROM api_cache WHERE cache_key = ?", (key,))
                conn.commit()
                return None
            return json.loads(payload)

    def set(self, key: str, data: Dict[str, Any], ttl_hours: float = CACHE_TTL_HOURS):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO api_cache (cache_key, payload, stored_at, ttl_hours) VALUES (?, ?, ?, ?)",
                (key, json.dumps(data), time.time(), ttl_hours),
            )
            conn.commit()

    def invalidate(self, prefix: str):
        """Drop every key equal to ``prefix`` or nested under it."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "DELETE FROM api_cache WHERE cache_key = ? OR cache_key LIKE ?",
                (prefix, f"{prefix}/%"),
            )
            conn.commit()

    def clear_expired(self) -> int:
        now = time.time()
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT cache_key, stored_at, ttl_hours FROM api_cache").fetchall()
            expired = [(key,) for key, stored_at, ttl in rows if self._expired(stored_at, ttl, now)]
            if expired:
                conn.executemany("DELETE FROM api_cache WHERE cache_key = ?", expired)
                conn.commit()
            return len(expired)
