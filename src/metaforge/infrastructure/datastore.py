"""The DataStore owns the engine, the executor and the repositories.

Constructed once per application from :class:`MetaforgeSettings`. Services
receive the DataStore via their :class:`~metaforge.services.BaseAppService`
constructor; repositories are obtained from it and cached per entity,
factory and table name.

:meth:`DataStore.transaction` implements propagation on top of the ambient
:class:`~metaforge.infrastructure.transaction.TransactionContext`:

- ``REQUIRED``: join the active transaction, or open one.
- ``REQUIRES_NEW``: always open a new connection and transaction.
- ``NESTED``: SAVEPOINT on the active connection, or a new transaction.
- ``SUPPORTS``: yield the active handle, or None.
- ``NEVER``: yield None; raise if a transaction is active.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import MetaData, Table
from sqlalchemy.ext.asyncio import AsyncEngine

from metaforge.config.settings import MetaforgeSettings
from metaforge.domain.types import BuiltinType
from metaforge.errors import TransactionError
from metaforge.infrastructure.database.engine import create_db_engine
from metaforge.infrastructure.database.executor import SqlExecutor
from metaforge.infrastructure.database.schema import build_table, create_schema
from metaforge.infrastructure.repositories.metadata import MetadataRepository
from metaforge.infrastructure.transaction import (
    Propagation,
    TransactionContext,
    transaction_context,
)
from metaforge.registry.derived import ENTITY_RELATION_TYPE, enable_entity_relation_derivation
from metaforge.registry.serialization import load_registry, read_registry_file
from metaforge.registry.store import MetadataRegistry, default_registry

logger = logging.getLogger(__name__)

RepositoryKey = tuple[str, Callable[[], Any], str | None]


class DataStore:
    """Engine, executor, registry, and transaction context for one database."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        registry: MetadataRegistry | None = None,
        context: TransactionContext | None = None,
        settings: MetaforgeSettings | None = None,
    ) -> None:
        self._engine = engine
        self._registry = registry if registry is not None else default_registry
        self._context = context if context is not None else transaction_context
        self._settings = settings
        self._metadata = MetaData()
        self._executor = SqlExecutor(engine, self._metadata)
        self._repositories: dict[RepositoryKey, MetadataRepository[Any]] = {}

    @classmethod
    def open(
        cls,
        settings: MetaforgeSettings | None = None,
        *,
        registry: MetadataRegistry | None = None,
        context: TransactionContext | None = None,
    ) -> DataStore:
        """Build a DataStore from *settings* (discovered when omitted).

        Loads ``[registry] dump_path`` into the registry when the file
        exists, and enables relation derivation when configured.
        """
        settings = settings if settings is not None else MetaforgeSettings.load()
        registry = registry if registry is not None else default_registry

        dump_path = settings.registry.dump_path
        if dump_path is not None:
            path = dump_path if dump_path.is_absolute() else settings.project_root / dump_path
            if path.is_file():
                load_registry(registry, read_registry_file(path))
            else:
                logger.warning("Registry dump not found: %s", path)

        if settings.registry.derive_relations and not registry.has_type(ENTITY_RELATION_TYPE):
            enable_entity_relation_derivation(registry)

        engine = create_db_engine(settings.database_url, settings.database)
        return cls(engine, registry=registry, context=context, settings=settings)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def executor(self) -> SqlExecutor:
        return self._executor

    @property
    def registry(self) -> MetadataRegistry:
        return self._registry

    @property
    def context(self) -> TransactionContext:
        return self._context

    @property
    def settings(self) -> MetaforgeSettings | None:
        return self._settings

    @property
    def metadata(self) -> MetaData:
        return self._metadata

    # ------------------------------------------------------------------
    # Schema and repositories
    # ------------------------------------------------------------------

    def define_table(self, entity_name: str) -> Table | None:
        """SQLAlchemy table for a registered entity, or None without metadata."""
        descriptor = self._registry.table_for(entity_name)
        if descriptor is None:
            return None
        entity = self._registry.get_entity(entity_name)
        indexes = entity.indexes if entity is not None else ()
        return build_table(descriptor, self._metadata, indexes=indexes)

    def define_tables(self) -> list[Table]:
        tables = []
        for name in self._registry.get_by_type(BuiltinType.ENTITY):
            table = self.define_table(name)
            if table is not None:
                tables.append(table)
        return tables

    async def create_schema(self) -> list[str]:
        """Create the tables of every registered entity. Returns their names."""
        tables = self.define_tables()
        await create_schema(self._engine, self._metadata)
        return [t.name for t in tables]

    def repository(
        self,
        entity_name: str,
        factory: Callable[[], Any] = dict,
        *,
        table_name: str | None = None,
    ) -> MetadataRepository[Any]:
        """Repository for *entity_name*, created on first request and cached.

        Each distinct *factory* and *table_name* gets its own repository, so
        callers never receive instances built by another caller's factory.
        """
        key = (entity_name, factory, table_name)
        cached = self._repositories.get(key)
        if cached is not None:
            return cached

        self.define_table(entity_name)
        page_size = self._settings.repository.default_page_size if self._settings else 20
        repo: MetadataRepository[Any] = MetadataRepository(
            entity_name,
            factory,
            executor=self._executor,
            registry=self._registry,
            context=self._context,
            table_name=table_name,
            default_page_size=page_size,
        )
        self._repositories[key] = repo
        return repo

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(
        self,
        propagation: Propagation | str = Propagation.REQUIRED,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[Any]:
        """Scope a unit of work according to *propagation*.

        Usage::

            async with store.transaction() as conn:
                await orders.create({"total": "19.99"})
                await lines.create({...})
                # Both commit on success, both roll back on failure.

        Args:
            timeout: Seconds before the body is cancelled and
                :class:`TimeoutError` raised; the transaction rolls back.

        Raises:
            TransactionError: ``NEVER`` while a transaction is active.
        """
        propagation = Propagation(propagation)
        active = self._context.get_active()

        if propagation is Propagation.NEVER:
            if active is not None:
                msg = "A transaction is active but propagation is NEVER"
                raise TransactionError(msg)
            async with asyncio.timeout(timeout):
                yield None
            return

        if propagation is Propagation.SUPPORTS or (
            propagation is Propagation.REQUIRED and active is not None
        ):
            async with asyncio.timeout(timeout):
                yield active
            return

        if propagation is Propagation.NESTED and active is not None:
            async with self._executor.savepoint(active) as handle:
                with self._context.scope(handle):
                    async with asyncio.timeout(timeout):
                        yield handle
            return

        async with self._executor.transaction() as handle:
            with self._context.scope(handle):
                async with asyncio.timeout(timeout):
                    yield handle

    async def close(self) -> None:
        """Dispose the engine. Cached repositories are dropped."""
        self._repositories.clear()
        await self._engine.dispose()

    async def __aenter__(self) -> DataStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
