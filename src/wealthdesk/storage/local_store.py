"""Typed SQLite read/write abstraction for persisted collections.

All SQL is isolated behind LocalStore. Records are opaque JSON payloads
keyed by (collection, record_id); validation happens one layer up.

Multi-statement writes (replace_all, put_many) run in one transaction and
are all-or-nothing.
"""

import asyncio
import json
import time
from typing import Any

from wealthdesk.logging import get_logger
from wealthdesk.storage.database import LocalDatabase

logger = get_logger(__name__)

_SESSION_KEY = "current_user"


class LocalStore:
    """Async SQLite store for collection records, the session and settings.

    Usage:
        async with LocalDatabase("data/wealthdesk.db") as database:
            store = LocalStore(database)
            await store.replace_all("cash", [("c1", {"id": "c1", ...})])
    """

    def __init__(self, database: LocalDatabase) -> None:
        self._database = database
        self._write_lock = asyncio.Lock()

    # ──────────────────────────────────────────────
    # Records
    # ──────────────────────────────────────────────

    async def get_all(self, collection: str) -> list[dict[str, Any]]:
        """Return every record of a collection in insertion order."""
        cursor = await self._database.db.execute(
            "SELECT payload FROM records WHERE collection = ? ORDER BY rowid",
            (collection,),
        )
        rows = await cursor.fetchall()
        return [json.loads(row[0]) for row in rows]

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        cursor = await self._database.db.execute(
            "SELECT payload FROM records WHERE collection = ? AND record_id = ?",
            (collection, record_id),
        )
        row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def put(self, collection: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.put_many(collection, [(record_id, payload)])

    async def put_many(self, collection: str, records: list[tuple[str, dict[str, Any]]]) -> int:
        """Upsert records in a single transaction. Returns the number written."""
        if not records:
            return 0
        async with self._write_lock:
            await self._write(collection, records, replace=False)
        logger.debug("local_records_upserted", collection=collection, count=len(records))
        return len(records)

    async def replace_all(self, collection: str, records: list[tuple[str, dict[str, Any]]]) -> None:
        """Clear the collection and write records, as one transaction."""
        async with self._write_lock:
            await self._write(collection, records, replace=True)
        logger.debug("local_collection_replaced", collection=collection, count=len(records))

    async def _write(
        self,
        collection: str,
        records: list[tuple[str, dict[str, Any]]],
        *,
        replace: bool,
    ) -> None:
        db = self._database.db
        now_ms = int(time.time() * 1000)
        rows = [(collection, str(rid), json.dumps(payload), now_ms) for rid, payload in records]
        try:
            if replace:
                await db.execute("DELETE FROM records WHERE collection = ?", (collection,))
            await db.executemany(
                "INSERT OR REPLACE INTO records (collection, record_id, payload, updated_at) "
                "VALUES (?, ?, ?, ?)",
                rows,
            )
        except Exception:
            await db.rollback()
            raise
        await db.commit()

    async def delete(self, collection: str, record_id: str) -> bool:
        """Delete one record. Returns True if it existed."""
        async with self._write_lock:
            cursor = await self._database.db.execute(
                "DELETE FROM records WHERE collection = ? AND record_id = ?",
                (collection, record_id),
            )
            await self._database.db.commit()
        return cursor.rowcount > 0

    async def clear(self, collection: str | None = None) -> None:
        """Remove one collection's records, or every record when collection is None."""
        async with self._write_lock:
            if collection is None:
                await self._database.db.execute("DELETE FROM records")
            else:
                await self._database.db.execute(
                    "DELETE FROM records WHERE collection = ?", (collection,)
                )
            await self._database.db.commit()

    async def count(self, collection: str) -> int:
        cursor = await self._database.db.execute(
            "SELECT COUNT(*) FROM records WHERE collection = ?", (collection,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    # ──────────────────────────────────────────────
    # Session
    # ──────────────────────────────────────────────

    async def get_session(self) -> str | None:
        cursor = await self._database.db.execute(
            "SELECT value FROM session WHERE key = ?", (_SESSION_KEY,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set_session(self, username: str) -> None:
        async with self._write_lock:
            await self._database.db.execute(
                "INSERT OR REPLACE INTO session (key, value) VALUES (?, ?)",
                (_SESSION_KEY, username),
            )
            await self._database.db.commit()

    async def clear_session(self) -> None:
        async with self._write_lock:
            await self._database.db.execute("DELETE FROM session")
            await self._database.db.commit()

    # ──────────────────────────────────────────────
    # Settings
    # ──────────────────────────────────────────────

    async def get_setting(self, key: str) -> str | None:
        cursor = await self._database.db.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        async with self._write_lock:
            await self._database.db.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value),
            )
            await self._database.db.commit()

    async def delete_setting(self, key: str) -> None:
        async with self._write_lock:
            await self._database.db.execute("DELETE FROM settings WHERE key = ?", (key,))
            await self._database.db.commit()
