"""
Connection handling for the on-disk hash cache.
"""
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .schema import init_schema

MEMORY = ":memory:"


class DBManager:
    """
    Owns the single sqlite connection shared by all hashing workers.

    The cache only ever holds data that can be recomputed, so an unreadable
    or corrupt database file is discarded and rebuilt instead of failing
    the scan.
    """

    def __init__(self, db_path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        # Workers share one connection; every statement goes through this lock
        self._lock = threading.Lock()

    @property
    def in_memory(self) -> bool:
        return str(self.db_path) == MEMORY

    def connect(self) -> sqlite3.Connection:
        if self._conn:
            return self._conn

        if not self.in_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        logging.info(f"Opening hash cache: {self.db_path}")
        try:
            self._conn = self._open()
        except sqlite3.DatabaseError as e:
            if self.in_memory:
                raise
            logging.warning(f"Hash cache {self.db_path} is unusable ({e}); rebuilding it.")
            Path(self.db_path).unlink(missing_ok=True)
            self._conn = self._open()
        return self._conn

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        try:
            # Losing the cache is harmless, so favour speed over durability
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            init_schema(conn)
        except sqlite3.DatabaseError:
            conn.close()
            raise
        return conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def lock(self) -> threading.Lock:
        return self._lock
