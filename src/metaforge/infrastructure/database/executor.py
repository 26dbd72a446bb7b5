"""Relational query executor.

Repositories talk to storage only through :class:`QueryExecutor`. The
handle it hands out is an :class:`~sqlalchemy.ext.asyncio.AsyncConnection`
inside an open transaction; that is the object the transaction context
carries.

Every driver failure surfaces as :class:`~metaforge.errors.StorageError`.
Nothing is retried here.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Protocol

from sqlalchemy import MetaData, Table, delete, func, insert, inspect, select, update
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from metaforge.errors import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

OrderBy = Sequence[tuple[str, bool]]  # (column, descending)


class QueryExecutor(Protocol):
    """Table-level operations a repository needs."""

    def connect(self) -> Any: ...

    def transaction(self) -> Any: ...

    def savepoint(self, handle: Any) -> Any: ...

    async def resolve_table(self, conn: Any, name: str) -> Any: ...

    async def select_one(
        self, conn: Any, table: Any, criteria: Mapping[str, Any]
    ) -> dict[str, Any] | None: ...

    async def select_all(
        self,
        conn: Any,
        table: Any,
        *,
        criteria: Mapping[str, Any] | None = None,
        order_by: OrderBy = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert_returning(
        self, conn: Any, table: Any, values: Mapping[str, Any]
    ) -> dict[str, Any]: ...

    async def update_returning(
        self, conn: Any, table: Any, criteria: Mapping[str, Any], values: Mapping[str, Any]
    ) -> dict[str, Any] | None: ...

    async def delete(self, conn: Any, table: Any, criteria: Mapping[str, Any]) -> int: ...

    async def count(
        self, conn: Any, table: Any, criteria: Mapping[str, Any] | None = None
    ) -> int: ...


@contextmanager
def _storage_errors(operation: str, table: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        msg = f"{operation} on {table} failed: {exc}"
        raise StorageError(msg) from exc


class SqlExecutor:
    """:class:`QueryExecutor` over SQLAlchemy Core's asyncio extension.

    Tables are looked up in *metadata* first; tables it does not know are
    reflected from the database on first use.
    """

    def __init__(self, engine: AsyncEngine, metadata: MetaData | None = None) -> None:
        self._engine = engine
        self._metadata = metadata if metadata is not None else MetaData()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def metadata(self) -> MetaData:
        return self._metadata

    # ------------------------------------------------------------------
    # Connections and transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Connection for a single operation; commits on exit."""
        async with self.transaction() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """New connection in a transaction: commit on success, rollback on error."""
        try:
            async with self._engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            msg = f"Transaction failed: {exc}"
            raise StorageError(msg) from exc

    @asynccontextmanager
    async def savepoint(self, handle: AsyncConnection) -> AsyncIterator[AsyncConnection]:
        """SAVEPOINT on *handle*: released on success, rolled back on error."""
        try:
            async with handle.begin_nested():
                yield handle
        except SQLAlchemyError as exc:
            msg = f"Savepoint failed: {exc}"
            raise StorageError(msg) from exc

    async def resolve_table(self, conn: AsyncConnection, name: str) -> Table:
        """Known or reflected table called *name*.

        Raises:
            ConfigurationError: The table does not exist in the database.
        """

        def _exists(sync_conn: Any) -> bool:
            return inspect(sync_conn).has_table(name)

        with _storage_errors("inspect", name):
            exists = await conn.run_sync(_exists)
        if not exists:
            msg = f"Table {name!r} does not exist"
            raise ConfigurationError(msg)

        table = self._metadata.tables.get(name)
        if table is not None:
            return table

        def _reflect(sync_conn: Any) -> Table:
            return Table(name, self._metadata, autoload_with=sync_conn)

        try:
            table = await conn.run_sync(_reflect)
        except NoSuchTableError as exc:
            msg = f"Table {name!r} does not exist"
            raise ConfigurationError(msg) from exc
        except SQLAlchemyError as exc:
            msg = f"Reflecting table {name!r} failed: {exc}"
            raise StorageError(msg) from exc
        logger.debug("Reflected table %s: %s", name, [c.name for c in table.columns])
        return table

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    @staticmethod
    def _where(table: Table, criteria: Mapping[str, Any] | None) -> list[Any]:
        clauses = []
        for column_name, value in (criteria or {}).items():
            if column_name not in table.c:
                msg = f"Table {table.name!r} has no column {column_name!r}"
                raise ConfigurationError(msg)
            column = table.c[column_name]
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses

    async def select_one(
        self, conn: AsyncConnection, table: Table, criteria: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        stmt = select(table).where(*self._where(table, criteria)).limit(1)
        with _storage_errors("select", table.name):
            row = (await conn.execute(stmt)).mappings().first()
        return dict(row) if row is not None else None

    async def select_all(
        self,
        conn: AsyncConnection,
        table: Table,
        *,
        criteria: Mapping[str, Any] | None = None,
        order_by: OrderBy = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        stmt = select(table).where(*self._where(table, criteria))
        for column_name, descending in order_by:
            if column_name not in table.c:
                msg = f"Table {table.name!r} has no column {column_name!r}"
                raise ConfigurationError(msg)
            column = table.c[column_name]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        with _storage_errors("select", table.name):
            rows = (await conn.execute(stmt)).mappings().all()
        return [dict(row) for row in rows]

    async def insert_returning(
        self, conn: AsyncConnection, table: Table, values: Mapping[str, Any]
    ) -> dict[str, Any]:
        stmt = insert(table).values(dict(values)).returning(*table.c)
        with _storage_errors("insert", table.name):
            row = (await conn.execute(stmt)).mappings().one()
        return dict(row)

    async def update_returning(
        self,
        conn: AsyncConnection,
        table: Table,
        criteria: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> dict[str, Any] | None:
        """Update matching rows; the first updated row, or None if none matched."""
        if not values:
            return await self.select_one(conn, table, criteria)
        stmt = (
            update(table)
            .where(*self._where(table, criteria))
            .values(dict(values))
            .returning(*table.c)
        )
        with _storage_errors("update", table.name):
            row = (await conn.execute(stmt)).mappings().first()
        return dict(row) if row is not None else None

    async def delete(
        self, conn: AsyncConnection, table: Table, criteria: Mapping[str, Any]
    ) -> int:
        stmt = delete(table).where(*self._where(table, criteria))
        with _storage_errors("delete", table.name):
            result = await conn.execute(stmt)
        return int(result.rowcount or 0)

    async def count(
        self,
        conn: AsyncConnection,
        table: Table,
        criteria: Mapping[str, Any] | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(table).where(*self._where(table, criteria))
        with _storage_errors("count", table.name):
            return int((await conn.execute(stmt)).scalar_one() or 0)
