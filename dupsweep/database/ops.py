import sqlite3
import logging
from datetime import datetime, UTC
from pathlib import Path
from typing import Optional

from .db import DBManager
from .schema import HASH_TABLES

class HashCache:
    """
    Lookaside cache of computed hashes keyed by (path, size, mtime).

    A miss is always safe: callers recompute. Stale rows (size or mtime
    changed) are deleted on lookup. Database errors are logged and treated
    as misses so the cache can never fail a scan.
    """

    def __init__(self, manager: DBManager):
        self.manager = manager
        self.conn = manager.connect()

    def lookup(self, kind: str, path: Path, size: int, mtime: float) -> Optional[str]:
        table = HASH_TABLES[kind]
        key = str(path)
        try:
            with self.manager.lock:
                cur = self.conn.cursor()
                cur.execute(f"SELECT size_bytes, mtime, hash FROM {table} WHERE path = ?", (key,))
                row = cur.fetchone()
                if row is None:
                    return None

                cached_size, cached_mtime, value = row
                if cached_size != size or cached_mtime != mtime:
                    # File changed since it was hashed
                    with self.conn:
                        self.conn.execute(f"DELETE FROM {table} WHERE path = ?", (key,))
                    return None
                return value
        except sqlite3.Error as e:
            logging.warning(f"Hash cache lookup failed for {path}: {e}")
            return None

    def store(self, kind: str, path: Path, size: int, mtime: float, value: str):
        table = HASH_TABLES[kind]
        now_iso = datetime.now(UTC).isoformat()
        try:
            with self.manager.lock, self.conn:
                self.conn.execute(f"""
                    INSERT INTO {table} (path, size_bytes, mtime, hash, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(path) DO UPDATE SET
                        size_bytes = excluded.size_bytes,
                        mtime = excluded.mtime,
                        hash = excluded.hash,
                        updated_at = excluded.updated_at
                """, (str(path), int(size), float(mtime), value, now_iso))
        except sqlite3.Error as e:
            logging.warning(f"Hash cache write failed for {path}: {e}")

    def clear(self):
        with self.manager.lock, self.conn:
            for table in HASH_TABLES.values():
                self.conn.execute(f"DELETE FROM {table}")
        logging.info("Hash cache cleared.")

    def count(self, kind: str) -> int:
        with self.manager.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT COUNT(*) FROM {HASH_TABLES[kind]}")
            return cur.fetchone()[0]
