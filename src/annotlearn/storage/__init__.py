"""Storage backends for annotlearn.

Provides the persistence contract used by the workers and a SQLite backend.
"""

from annotlearn.storage.base import RecordStore
from annotlearn.storage.sqlite import SQLiteStorage

__all__ = ["RecordStore", "SQLiteStorage"]
