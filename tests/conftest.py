"""Shared pytest fixtures and test helpers for metaforge tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from click.testing import CliRunner

from metaforge.config.models import DatabaseConfig
from metaforge.config.settings import MetaforgeSettings
from metaforge.domain.descriptors import EntityDescriptor, define_entity, field
from metaforge.domain.types import SemanticType
from metaforge.infrastructure.datastore import DataStore
from metaforge.infrastructure.transaction import TransactionContext
from metaforge.registry.store import MetadataRegistry


@dataclass
class Order:
    """Domain object used across repository tests."""

    id: str | None = None
    total: Decimal | None = None
    createdAt: date | None = None  # noqa: N815


def define_order(registry: MetadataRegistry | None = None) -> EntityDescriptor:
    """``Order{id: string PK, total: decimal, createdAt: date}`` on table ``orders``."""
    return define_entity(
        "Order",
        [
            field("id", SemanticType.STRING, primary_key=True),
            field("total", SemanticType.DECIMAL, label="Total", required=True),
            field("createdAt", SemanticType.DATE, label="Created"),
        ],
        table="orders",
        registry=registry,
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def registry() -> MetadataRegistry:
    """Fresh, empty registry (never the process-wide default)."""
    return MetadataRegistry()


@pytest.fixture
def context() -> TransactionContext:
    return TransactionContext("test_transaction")


@pytest.fixture
def order_entity(registry: MetadataRegistry) -> EntityDescriptor:
    return define_order(registry)


@pytest.fixture
def settings(tmp_path: Path) -> MetaforgeSettings:
    """Settings pointing at a file-backed SQLite database under tmp_path."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'metaforge.db'}"
    return MetaforgeSettings(project_root=tmp_path, database=DatabaseConfig(url=url))


@pytest.fixture
async def store(
    settings: MetaforgeSettings,
    registry: MetadataRegistry,
    context: TransactionContext,
) -> AsyncIterator[DataStore]:
    """DataStore over a fresh database. Call ``create_schema()`` after registering."""
    ds = DataStore.open(settings, registry=registry, context=context)
    try:
        yield ds
    finally:
        await ds.close()


@pytest.fixture
async def order_store(store: DataStore, order_entity: EntityDescriptor) -> DataStore:
    """DataStore with the Order table created."""
    await store.create_schema()
    return store


@pytest.fixture
def order_type() -> type[Order]:
    """The Order dataclass, for tests that build domain objects."""
    return Order
