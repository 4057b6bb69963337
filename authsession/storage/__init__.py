"""
Durable Storage Package.

``PersistentKeyValueStore`` implementations and the keys the controller
writes through them.
"""

from authsession.storage.memory import InMemoryKeyValueStore
from authsession.storage.sqlite_store import SQLiteKeyValueStore

__all__ = ["InMemoryKeyValueStore", "SQLiteKeyValueStore"]
