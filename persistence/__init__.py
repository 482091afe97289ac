# persistence/__init__.py
"""
Persistence layer.

Provides SQLite-backed storage for:
- Usage counters (the ledger's durable store)
- Founder seat purchases
"""

from persistence.db import get_db, init_db, close_db
from persistence.usage import SqliteUsageStore, get_usage_history

__all__ = [
    "get_db",
    "init_db",
    "close_db",
    "SqliteUsageStore",
    "get_usage_history",
]
