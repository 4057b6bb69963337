"""
SQLite Key/Value Store.

Durable ``PersistentKeyValueStore`` backed by a single key/value table in
a local SQLite file, accessed through ``aiosqlite``.

The table is created idempotently by ``initialize()``::

    CREATE TABLE IF NOT EXISTS auth_settings (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )

Unlike a preferences store, read and write failures are not swallowed:
they are logged and raised as ``StorageError`` so the calling flow fails.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import aiosqlite

from authsession.errors import StorageError
from authsession.logger import StructuredLogger


class SQLiteKeyValueStore:
    """Key/value persistence in local SQLite.

    Call ``initialize()`` (or use ``await SQLiteKeyValueStore.open(...)``)
    before the first read or write, and ``close()`` when done.

    Parameters
    ----------
    path:
        Filesystem path for the SQLite database file, or ``":memory:"``.
    logger:
        Structured logger instance.
    table:
        Table name.  Must be a plain identifier.
    """

    def __init__(
        self,
        path: Union[str, Path],
        logger: StructuredLogger,
        table: str = "auth_settings",
    ) -> None:
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")
        self._path: str = str(path)
        self._logger: StructuredLogger = logger
        self._table: str = table
        self._conn: Optional[aiosqlite.Connection] = None

    @classmethod
    async def open(
        cls,
        path: Union[str, Path],
        logger: StructuredLogger,
        table: str = "auth_settings",
    ) -> "SQLiteKeyValueStore":
        """Construct and initialize a store in one step."""
        store = cls(path, logger, table)
        await store.initialize()
        return store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open (or create) the database and ensure the table exists.

        Raises
        ------
        StorageError
            If the OS denies access to the file or the DDL fails.
        """
        if self._conn is not None:
            return
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(self._path)
            await self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            await self._conn.commit()
        except (aiosqlite.Error, OSError) as exc:
            msg = (
                f"Cannot open the local key/value store at '{self._path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            self._logger.error(msg)
            raise StorageError(msg, exc) from exc

        self._logger.info("SQLite key/value store opened at %s", self._path)

    async def close(self) -> None:
        """Close the connection.  Safe to call multiple times."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()
        self._logger.info("SQLite key/value store closed.")

    async def __aenter__(self) -> "SQLiteKeyValueStore":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # PersistentKeyValueStore
    # ------------------------------------------------------------------

    async def get_value(self, key: str) -> Optional[str]:
        conn = self._connection()
        try:
            async with conn.execute(
                f"SELECT value FROM {self._table} WHERE key = ?",
                (key,),
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            self._logger.error("Failed to read %s[%s]: %s", self._table, key, exc)
            raise StorageError(f"Failed to read '{key}'", exc) from exc
        return row[0] if row is not None else None

    async def set_value(self, key: str, value: str) -> None:
        conn = self._connection()
        try:
            await conn.execute(
                f"""
                INSERT INTO {self._table} (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value      = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            await conn.commit()
        except aiosqlite.Error as exc:
            self._logger.error("Failed to write %s[%s]: %s", self._table, key, exc)
            raise StorageError(f"Failed to write '{key}'", exc) from exc
        self._logger.debug("%s[%s] updated.", self._table, key)

    async def remove(self, key: str) -> None:
        conn = self._connection()
        try:
            await conn.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))
            await conn.commit()
        except aiosqlite.Error as exc:
            self._logger.error("Failed to delete %s[%s]: %s", self._table, key, exc)
            raise StorageError(f"Failed to delete '{key}'", exc) from exc

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("Key/value store is not open")
        return self._conn
