"""
researchstamp storage module.

Provides the durable key-value media used to persist the registry.
"""

from researchstamp.storage.store import (
    KeyValueStore,
    MemoryStore,
    JsonFileStore,
    SqliteStore,
    open_store,
)
from researchstamp.storage.schema import (
    SCHEMA_VERSION,
    CREATE_TABLES_SQL,
    INDEXES_SQL,
    get_schema_hash,
)

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "SqliteStore",
    "open_store",
    "SCHEMA_VERSION",
    "CREATE_TABLES_SQL",
    "INDEXES_SQL",
    "get_schema_hash",
]
