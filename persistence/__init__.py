# persistence/__init__.py
"""
Persistence layer.

Provides SQLite-backed storage for:
- User accounts (tier, usage, subscription state)
- Billing webhook audit trail
"""

from persistence.db import Database, StorageError

__all__ = [
    "Database",
    "StorageError",
]
