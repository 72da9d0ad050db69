"""aiosqlite connection owner for the local record store.

The schema is an ordered list of migrations; entry N brings the database
to version N + 1. connect() applies whatever is pending, so an existing
file from an older release is upgraded in place.
"""

import os
from typing import Self

import aiosqlite

from wealthdesk.logging import get_logger

logger = get_logger(__name__)

_MIGRATIONS: list[str] = [
    # 1: collections, session, settings
    """
    CREATE TABLE IF NOT EXISTS records (
        collection TEXT NOT NULL,
        record_id TEXT NOT NULL,
        payload TEXT NOT NULL,
        updated_at INTEGER NOT NULL,
        PRIMARY KEY (collection, record_id)
    );
    CREATE TABLE IF NOT EXISTS session (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """,
    # 2: per-collection scans ordered by recency
    """
    CREATE INDEX IF NOT EXISTS idx_records_collection_updated
        ON records(collection, updated_at);
    """,
]

SCHEMA_VERSION = len(_MIGRATIONS)


class LocalDatabase:
    """Owns the single aiosqlite connection used by LocalStore.

    Usage:
        async with LocalDatabase("data/wealthdesk.db") as database:
            store = LocalStore(database)

    ":memory:" gives a throwaway database (tests).
    """

    def __init__(self, db_path: str = "data/wealthdesk.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def in_memory(self) -> bool:
        return self._db_path == ":memory:"

    @property
    def db(self) -> aiosqlite.Connection:
        """The open connection. Raises RuntimeError before connect()."""
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        if not self.in_memory:
            parent = os.path.dirname(self._db_path)
            if parent:
                os.makedirs(parent, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        if not self.in_memory:
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._migrate()
        logger.info("local_db_connected", db_path=self._db_path, schema_version=SCHEMA_VERSION)

    async def close(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.info("local_db_closed", db_path=self._db_path)

    async def schema_version(self) -> int:
        cursor = await self.db.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        return (row[0] or 0) if row else 0

    async def _migrate(self) -> None:
        await self.db.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)")
        current = await self.schema_version()
        for version in range(current + 1, SCHEMA_VERSION + 1):
            await self.db.executescript(_MIGRATIONS[version - 1])
            await self.db.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
            await self.db.commit()
            logger.info("local_db_migrated", version=version)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
