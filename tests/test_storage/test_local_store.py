"""Tests for LocalStore records, session and settings over in-memory SQLite."""

import pytest
import pytest_asyncio

from wealthdesk.storage.database import SCHEMA_VERSION, LocalDatabase
from wealthdesk.storage.local_store import LocalStore


@pytest_asyncio.fixture
async def store():
    async with LocalDatabase(":memory:") as database:
        yield LocalStore(database)


class TestDatabase:
    @pytest.mark.asyncio
    async def test_db_requires_connect(self) -> None:
        database = LocalDatabase(":memory:")
        assert not database.is_connected
        with pytest.raises(RuntimeError, match="not connected"):
            _ = database.db

    @pytest.mark.asyncio
    async def test_migrations_apply_once(self) -> None:
        async with LocalDatabase(":memory:") as database:
            assert await database.schema_version() == SCHEMA_VERSION
            await database._migrate()
            cursor = await database.db.execute("SELECT COUNT(*) FROM schema_version")
            assert (await cursor.fetchone())[0] == SCHEMA_VERSION

    @pytest.mark.asyncio
    async def test_file_database_survives_reconnect(self, tmp_path) -> None:
        path = str(tmp_path / "nested" / "wealthdesk.db")
        async with LocalDatabase(path) as database:
            await LocalStore(database).put("cash", "c1", {"id": "c1"})

        async with LocalDatabase(path) as database:
            assert await LocalStore(database).get("cash", "c1") == {"id": "c1"}
            assert await database.schema_version() == SCHEMA_VERSION


class TestRecords:
    @pytest.mark.asyncio
    async def test_replace_all_overwrites_collection(self, store: LocalStore) -> None:
        await store.replace_all("cash", [("c1", {"id": "c1"}), ("c2", {"id": "c2"})])
        await store.replace_all("cash", [("c3", {"id": "c3"})])

        assert await store.get_all("cash") == [{"id": "c3"}]

    @pytest.mark.asyncio
    async def test_collections_are_isolated(self, store: LocalStore) -> None:
        await store.replace_all("cash", [("x", {"id": "x", "kind": "cash"})])
        await store.replace_all("portfolio", [("x", {"id": "x", "kind": "stock"})])

        assert await store.get("cash", "x") == {"id": "x", "kind": "cash"}
        assert await store.get("portfolio", "x") == {"id": "x", "kind": "stock"}
        assert await store.count("cash") == 1

    @pytest.mark.asyncio
    async def test_get_all_keeps_insertion_order(self, store: LocalStore) -> None:
        await store.replace_all("cash", [("b", {"id": "b"}), ("a", {"id": "a"}), ("c", {"id": "c"})])

        assert [r["id"] for r in await store.get_all("cash")] == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_put_many_upserts(self, store: LocalStore) -> None:
        await store.replace_all("cash", [("c1", {"id": "c1", "amount": "1"})])

        written = await store.put_many("cash", [("c1", {"id": "c1", "amount": "2"}), ("c2", {"id": "c2"})])

        assert written == 2
        assert await store.get("cash", "c1") == {"id": "c1", "amount": "2"}
        assert await store.count("cash") == 2

    @pytest.mark.asyncio
    async def test_put_many_empty_is_noop(self, store: LocalStore) -> None:
        assert await store.put_many("cash", []) == 0

    @pytest.mark.asyncio
    async def test_delete(self, store: LocalStore) -> None:
        await store.put("cash", "c1", {"id": "c1"})

        assert await store.delete("cash", "c1") is True
        assert await store.delete("cash", "c1") is False
        assert await store.get("cash", "c1") is None

    @pytest.mark.asyncio
    async def test_clear_one_or_all(self, store: LocalStore) -> None:
        await store.put("cash", "c1", {"id": "c1"})
        await store.put("portfolio", "p1", {"id": "p1"})

        await store.clear("cash")
        assert await store.count("cash") == 0
        assert await store.count("portfolio") == 1

        await store.clear()
        assert await store.count("portfolio") == 0


class TestSessionAndSettings:
    @pytest.mark.asyncio
    async def test_session_roundtrip(self, store: LocalStore) -> None:
        assert await store.get_session() is None
        await store.set_session("alice")
        assert await store.get_session() == "alice"
        await store.clear_session()
        assert await store.get_session() is None

    @pytest.mark.asyncio
    async def test_settings(self, store: LocalStore) -> None:
        await store.set_setting("cloud_config", "{}")
        await store.set_setting("cloud_config", '{"projectId": "p"}')
        assert await store.get_setting("cloud_config") == '{"projectId": "p"}'
        await store.delete_setting("cloud_config")
        assert await store.get_setting("cloud_config") is None
