"""Generic CRUD and paging for any registered entity.

Nothing here is entity specific: the registry supplies the field list and
table, :class:`~metaforge.mapping.FieldMapper` translates names and values,
and every statement runs on the transaction handle active in the calling
task, or on a fresh connection when there is none.

State machine::

    UNINITIALIZED --initialize()--> INITIALIZING --> READY
          ^                              |
          +----------- on failure -------+

Every public operation calls :meth:`initialize` first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from math import ceil
from typing import Any, Generic, TypeVar

from metaforge.errors import ConfigurationError
from metaforge.infrastructure.database.executor import QueryExecutor
from metaforge.infrastructure.transaction import TransactionContext, transaction_context
from metaforge.mapping.mapper import FieldMapper
from metaforge.registry.store import MetadataRegistry, default_registry

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

OrderKeys = str | Sequence[str] | None


class RepositoryState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results plus the total number of matching rows."""

    items: list[T] = field(default_factory=list)
    total: int = 0
    page_no: int = 1
    page_size: int = 20

    @property
    def pages(self) -> int:
        return ceil(self.total / self.page_size) if self.page_size else 0

    @property
    def has_next(self) -> bool:
        return self.page_no < self.pages


class MetadataRepository(Generic[T]):
    """Repository for the entity registered as *entity_name*.

    Args:
        entity_name: Registry name of the entity.
        factory: Zero-argument callable producing a blank domain object.
        executor: Storage operations (see :class:`QueryExecutor`).
        registry: Metadata source; defaults to the process-wide registry.
        context: Ambient transaction stack; defaults to the process-wide one.
        table_name: Fallback table used without field mapping when the
            registry has no metadata for *entity_name*.
    """

    def __init__(
        self,
        entity_name: str,
        factory: Callable[[], T],
        *,
        executor: QueryExecutor,
        registry: MetadataRegistry | None = None,
        context: TransactionContext | None = None,
        table_name: str | None = None,
        default_page_size: int = 20,
    ) -> None:
        self._entity_name = entity_name
        self._factory = factory
        self._executor = executor
        self._registry = registry if registry is not None else default_registry
        self._context = context if context is not None else transaction_context
        self._fallback_table = table_name
        self._default_page_size = default_page_size

        self._state = RepositoryState.UNINITIALIZED
        self._init_lock = asyncio.Lock()
        self._mapper: FieldMapper | None = None
        self._table: Any = None

    @property
    def entity_name(self) -> str:
        return self._entity_name

    @property
    def state(self) -> RepositoryState:
        return self._state

    @property
    def mapper(self) -> FieldMapper:
        if self._mapper is None:
            msg = f"Repository for {self._entity_name} is not initialized"
            raise ConfigurationError(msg)
        return self._mapper

    @property
    def table_name(self) -> str | None:
        return getattr(self._table, "name", None)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Resolve table and field mapping once. Safe to call repeatedly.

        Raises:
            ConfigurationError: No metadata and no fallback table, a mapping
                collision, or a table missing from the database.
        """
        if self._state is RepositoryState.READY:
            return
        async with self._init_lock:
            if self._state is RepositoryState.READY:
                return
            self._state = RepositoryState.INITIALIZING
            try:
                await self._build()
            except BaseException:
                self._state = RepositoryState.UNINITIALIZED
                raise
            self._state = RepositoryState.READY

    async def _build(self) -> None:
        entity = self._registry.get_entity(self._entity_name)
        descriptor = self._registry.table_for(self._entity_name) if entity else None

        if entity is None or descriptor is None:
            if self._fallback_table is None:
                msg = f"No metadata registered for {self._entity_name!r} and no fallback table"
                raise ConfigurationError(msg)
            logger.warning(
                "No metadata for %s; using table %s without field mapping",
                self._entity_name,
                self._fallback_table,
            )
            mapper = FieldMapper.passthrough(self._entity_name)
            table_name = self._fallback_table
        else:
            mapper = FieldMapper.build(entity, descriptor)
            table_name = descriptor.name

        async with self._connection() as conn:
            self._table = await self._executor.resolve_table(conn, table_name)
        self._mapper = mapper
        logger.debug("Repository ready: %s -> %s", self._entity_name, table_name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        active = self._context.get_active()
        if active is not None:
            yield active
            return
        async with self._executor.connect() as conn:
            yield conn

    def _id_criteria(self, entity_id: Any) -> dict[str, Any]:
        mapper = self.mapper
        if mapper.primary_key is None or mapper.primary_key_column is None:
            msg = f"{self._entity_name} has no primary key"
            raise ConfigurationError(msg)
        return {
            mapper.primary_key_column: mapper.to_storage_value(mapper.primary_key, entity_id)
        }

    def _order(self, order_by: OrderKeys, order_direction: str) -> list[tuple[str, bool]]:
        if not order_by:
            return []
        direction = order_direction.lower()
        if direction not in ("asc", "desc"):
            msg = f"order_direction must be 'asc' or 'desc', not {order_direction!r}"
            raise ValueError(msg)
        keys = [order_by] if isinstance(order_by, str) else list(order_by)
        return [(self.mapper.resolve_column(k), direction == "desc") for k in keys]

    def _to_domain(self, row: Mapping[str, Any]) -> T:
        return self.mapper.to_domain(row, self._factory)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, entity_id: Any) -> T | None:
        await self.initialize()
        async with self._connection() as conn:
            row = await self._executor.select_one(conn, self._table, self._id_criteria(entity_id))
        return self._to_domain(row) if row is not None else None

    async def find_all(
        self,
        *,
        limit: int | None = None,
        offset: int | None = None,
        order_by: OrderKeys = None,
        order_direction: str = "asc",
        where: Mapping[str, Any] | None = None,
    ) -> list[T]:
        """Every matching row. No implicit limit."""
        await self.initialize()
        criteria = self.mapper.to_storage_criteria(where or {})
        order = self._order(order_by, order_direction)
        async with self._connection() as conn:
            rows = await self._executor.select_all(
                conn, self._table, criteria=criteria, order_by=order, limit=limit, offset=offset
            )
        return [self._to_domain(row) for row in rows]

    async def find_page(
        self,
        page_no: int = 1,
        page_size: int | None = None,
        *,
        where: Mapping[str, Any] | None = None,
        order_by: OrderKeys = None,
        order_direction: str = "asc",
    ) -> Page[T]:
        """One 1-based page of results with the total count."""
        if page_no < 1:
            msg = f"page_no must be >= 1, not {page_no}"
            raise ValueError(msg)
        size = page_size or self._default_page_size
        await self.initialize()
        criteria = self.mapper.to_storage_criteria(where or {})
        order = self._order(order_by, order_direction)
        async with self._connection() as conn:
            total = await self._executor.count(conn, self._table, criteria)
            rows = await self._executor.select_all(
                conn,
                self._table,
                criteria=criteria,
                order_by=order,
                limit=size,
                offset=(page_no - 1) * size,
            )
        return Page(
            items=[self._to_domain(row) for row in rows],
            total=total,
            page_no=page_no,
            page_size=size,
        )

    async def count(self, where: Mapping[str, Any] | None = None) -> int:
        await self.initialize()
        criteria = self.mapper.to_storage_criteria(where or {})
        async with self._connection() as conn:
            return await self._executor.count(conn, self._table, criteria)

    async def exists(self, entity_id: Any) -> bool:
        await self.initialize()
        async with self._connection() as conn:
            count = await self._executor.count(conn, self._table, self._id_criteria(entity_id))
        return count > 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, partial: Any) -> T:
        """Insert and return the entity rebuilt from the stored row.

        Absent (``None``) values are left out so column defaults apply.
        """
        await self.initialize()
        values = {k: v for k, v in self.mapper.to_storage(partial).items() if v is not None}
        async with self._connection() as conn:
            row = await self._executor.insert_returning(conn, self._table, values)
        logger.debug("Created %s", self._entity_name)
        return self._to_domain(row)

    async def update(self, entity_id: Any, partial: Any) -> T | None:
        """Write only the attributes present in *partial*; None if no row matched."""
        await self.initialize()
        criteria = self._id_criteria(entity_id)
        values = self.mapper.to_storage(partial)
        for column in criteria:
            values.pop(column, None)
        async with self._connection() as conn:
            row = await self._executor.update_returning(conn, self._table, criteria, values)
        return self._to_domain(row) if row is not None else None

    async def delete(self, entity_id: Any) -> bool:
        await self.initialize()
        async with self._connection() as conn:
            removed = await self._executor.delete(conn, self._table, self._id_criteria(entity_id))
        return removed > 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def transaction(self, body: Callable[[Any], Awaitable[R]]) -> R:
        """Run ``body(handle)`` inside a transaction.

        Joins the transaction already active in this task; otherwise opens
        one that commits when *body* returns and rolls back if it raises.
        """
        await self.initialize()
        active = self._context.get_active()
        if active is not None:
            return await self._context.run(active, lambda: body(active))
        async with self._executor.transaction() as conn:
            return await self._context.run(conn, lambda: body(conn))
