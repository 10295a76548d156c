"""Durable string-keyed store backed by SQLite."""

import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from fintrack.db.migrations import pending_migrations

log = logging.getLogger("fintrack.db")


class KeyValueStore:
    """Async key-value store over a single SQLite settings table."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def is_connected(self) -> bool:
        """Check if the database connection is open."""
        return self._connection is not None

    async def connect(self) -> None:
        """Connect to the database and run migrations."""
        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _run_migrations(self) -> None:
        """Run pending schema migrations."""
        pending = pending_migrations(await self._get_schema_version())
        for migration in pending:
            log.info(f"Applying schema {migration.version}: {migration.description}")
            await self._connection.executescript(migration.script)
        if pending:
            await self._connection.commit()

    async def _get_schema_version(self) -> int:
        """Get current schema version from database."""
        try:
            cursor = await self._connection.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = await cursor.fetchone()
            return row["version"] if row else 0
        except aiosqlite.OperationalError:
            return 0

    def _require_connection(self) -> aiosqlite.Connection:
        """Return the open connection or fail like any other store error."""
        if self._connection is None:
            raise aiosqlite.OperationalError("Key-value store is not connected")
        return self._connection

    async def get(self, key: str) -> str | None:
        """Get a value by key."""
        cursor = await self._require_connection().execute(
            'SELECT value FROM settings WHERE key = ?', (key,)
        )
        row = await cursor.fetchone()
        return row['value'] if row else None

    async def set(self, key: str, value: str) -> None:
        """Store a value, replacing any existing one."""
        connection = self._require_connection()
        await connection.execute(
            'INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?) '
            'ON CONFLICT(key) DO UPDATE SET value = excluded.value, '
            'updated_at = excluded.updated_at',
            (key, value, datetime.now().isoformat()),
        )
        await connection.commit()

    async def delete(self, key: str) -> None:
        """Delete a key if present."""
        connection = self._require_connection()
        await connection.execute('DELETE FROM settings WHERE key = ?', (key,))
        await connection.commit()

    async def keys(self) -> list[str]:
        """List stored keys in sorted order."""
        cursor = await self._require_connection().execute(
            'SELECT key FROM settings ORDER BY key'
        )
        rows = await cursor.fetchall()
        return [row['key'] for row in rows]
