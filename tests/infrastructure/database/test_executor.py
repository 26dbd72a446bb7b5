"""Tests for SqlExecutor over SQLAlchemy Core async."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy import Column, Integer, MetaData, Table, Text, text
from sqlalchemy.ext.asyncio import AsyncEngine

from metaforge.errors import ConfigurationError, StorageError
from metaforge.infrastructure.database.engine import create_db_engine
from metaforge.infrastructure.database.executor import SqlExecutor


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    eng = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'exec.db'}")
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
async def executor(engine: AsyncEngine) -> SqlExecutor:
    metadata = MetaData()
    Table(
        "items",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("name", Text, nullable=False),
        Column("qty", Integer),
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    return SqlExecutor(engine, metadata)


async def _seed(executor: SqlExecutor, *names: str) -> None:
    async with executor.transaction() as conn:
        table = await executor.resolve_table(conn, "items")
        for i, name in enumerate(names):
            await executor.insert_returning(conn, table, {"name": name, "qty": i})


class TestResolveTable:
    @pytest.mark.asyncio
    async def test_known_table(self, executor: SqlExecutor) -> None:
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "items")
        assert table is executor.metadata.tables["items"]

    @pytest.mark.asyncio
    async def test_reflects_unknown_table(self, engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.execute(text("CREATE TABLE legacy (id TEXT PRIMARY KEY, note TEXT)"))
        executor = SqlExecutor(engine)
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "legacy")
        assert [c.name for c in table.columns] == ["id", "note"]

    @pytest.mark.asyncio
    async def test_missing_table(self, executor: SqlExecutor) -> None:
        async with executor.connect() as conn:
            with pytest.raises(ConfigurationError, match="does not exist"):
                await executor.resolve_table(conn, "ghosts")


class TestStatements:
    @pytest.mark.asyncio
    async def test_insert_returning(self, executor: SqlExecutor) -> None:
        async with executor.transaction() as conn:
            table = await executor.resolve_table(conn, "items")
            row = await executor.insert_returning(conn, table, {"name": "bolt", "qty": 3})
        assert row == {"id": 1, "name": "bolt", "qty": 3}

    @pytest.mark.asyncio
    async def test_select_one_and_all(self, executor: SqlExecutor) -> None:
        await _seed(executor, "a", "b", "c")
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "items")
            one = await executor.select_one(conn, table, {"name": "b"})
            missing = await executor.select_one(conn, table, {"name": "z"})
            ordered = await executor.select_all(conn, table, order_by=[("qty", True)])
            page = await executor.select_all(
                conn, table, order_by=[("qty", False)], limit=1, offset=1
            )
        assert one is not None and one["qty"] == 1
        assert missing is None
        assert [r["name"] for r in ordered] == ["c", "b", "a"]
        assert [r["name"] for r in page] == ["b"]

    @pytest.mark.asyncio
    async def test_null_criteria(self, executor: SqlExecutor) -> None:
        async with executor.transaction() as conn:
            table = await executor.resolve_table(conn, "items")
            await executor.insert_returning(conn, table, {"name": "x", "qty": None})
            assert await executor.count(conn, table, {"qty": None}) == 1

    @pytest.mark.asyncio
    async def test_update_and_delete(self, executor: SqlExecutor) -> None:
        await _seed(executor, "a")
        async with executor.transaction() as conn:
            table = await executor.resolve_table(conn, "items")
            updated = await executor.update_returning(conn, table, {"id": 1}, {"qty": 9})
            none = await executor.update_returning(conn, table, {"id": 99}, {"qty": 9})
            unchanged = await executor.update_returning(conn, table, {"id": 1}, {})
            assert await executor.delete(conn, table, {"id": 1}) == 1
            assert await executor.delete(conn, table, {"id": 1}) == 0
        assert updated is not None and updated["qty"] == 9
        assert none is None
        assert unchanged is not None and unchanged["qty"] == 9

    @pytest.mark.asyncio
    async def test_count(self, executor: SqlExecutor) -> None:
        await _seed(executor, "a", "b")
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "items")
            assert await executor.count(conn, table) == 2
            assert await executor.count(conn, table, {"name": "a"}) == 1

    @pytest.mark.asyncio
    async def test_unknown_column(self, executor: SqlExecutor) -> None:
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "items")
            with pytest.raises(ConfigurationError, match="no column"):
                await executor.count(conn, table, {"color": "red"})

    @pytest.mark.asyncio
    async def test_driver_failure_is_storage_error(self, executor: SqlExecutor) -> None:
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "items")
        with pytest.raises(StorageError, match="insert on items failed"):
            async with executor.transaction() as conn:
                await executor.insert_returning(conn, table, {"qty": 1})


class TestTransactions:
    @pytest.mark.asyncio
    async def test_rollback_on_error(self, executor: SqlExecutor) -> None:
        with pytest.raises(RuntimeError):
            async with executor.transaction() as conn:
                table = await executor.resolve_table(conn, "items")
                await executor.insert_returning(conn, table, {"name": "temp"})
                raise RuntimeError("abort")
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "items")
            assert await executor.count(conn, table) == 0

    @pytest.mark.asyncio
    async def test_savepoint_rollback_keeps_outer(self, executor: SqlExecutor) -> None:
        async with executor.transaction() as conn:
            table = await executor.resolve_table(conn, "items")
            await executor.insert_returning(conn, table, {"name": "kept"})
            with pytest.raises(RuntimeError):
                async with executor.savepoint(conn) as handle:
                    assert handle is conn
                    await executor.insert_returning(conn, table, {"name": "dropped"})
                    raise RuntimeError("inner")
        async with executor.connect() as conn:
            table = await executor.resolve_table(conn, "items")
            rows = await executor.select_all(conn, table)
        assert [r["name"] for r in rows] == ["kept"]
