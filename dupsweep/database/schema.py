"""
Hash cache schema.
"""
import sqlite3

CURRENT_SCHEMA_VERSION = 1

# One table per hash tier
HASH_TABLES = {
    "quick": "quick_hashes",
    "full": "full_hashes",
}


def init_schema(conn: sqlite3.Connection):
    """Creates the cache tables. Idempotent: safe to run on every startup."""
    with conn:
        conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)")
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        if row is None:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # A row is valid only while size and mtime still match the file on disk
        for table in HASH_TABLES.values():
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    path        TEXT PRIMARY KEY,
                    size_bytes  INTEGER NOT NULL,
                    mtime       REAL NOT NULL,
                    hash        TEXT NOT NULL,
                    updated_at  TEXT NOT NULL
                )
            """)
