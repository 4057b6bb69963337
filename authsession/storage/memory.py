"""
In-Memory Key/Value Store.

Dict-backed ``PersistentKeyValueStore`` for tests and for sessions that
do not need to survive a restart.
"""

from __future__ import annotations

from typing import Optional


class InMemoryKeyValueStore:
    """Non-durable key/value store with the same contract as the SQLite one."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    async def get_value(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set_value(self, key: str, value: str) -> None:
        self._values[key] = value

    async def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the current contents."""
        return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values
