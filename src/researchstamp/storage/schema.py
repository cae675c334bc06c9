"""
Database schema definitions for researchstamp's SQLite store.

The store is a plain key-value table: the registry cache and the local
ledger each keep one JSON blob under their own key.

Tables:
    - kv_entries: Key to blob mapping with last update time
    - schema_version: Schema versioning for migrations
"""

import hashlib

# Schema version for migration tracking
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
-- Durable key-value entries
CREATE TABLE IF NOT EXISTS kv_entries (
    key TEXT PRIMARY KEY,
    blob TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Schema versioning for migrations
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);
"""

INDEXES_SQL = """
-- Index for listing entries by recency
CREATE INDEX IF NOT EXISTS idx_kv_entries_updated_at ON kv_entries (updated_at);
"""


def get_schema_hash() -> str:
    """
    Compute a SHA-256 hash of the schema definition.

    The hash changes whenever CREATE_TABLES_SQL changes and can be used to
    detect stores written by a different schema.

    Returns:
        A 64-character lowercase hexadecimal string.
    """
    return hashlib.sha256(CREATE_TABLES_SQL.encode("utf-8")).hexdigest()
