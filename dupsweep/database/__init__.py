"""SQLite hash cache."""
