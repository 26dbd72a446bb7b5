"""SQLAlchemy Core tables built from table descriptors.

Decimal columns are Text: the canonical decimal string survives a round
trip on every backend, which SQLite's NUMERIC affinity does not guarantee.
Foreign-key columns are plain columns without a constraint, since their
target tables may live outside this metadata.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.types import TypeEngine

from metaforge.domain.naming import to_snake_case
from metaforge.domain.tables import ColumnDescriptor, TableDescriptor
from metaforge.domain.types import SemanticType

logger = logging.getLogger(__name__)

_COLUMN_TYPES: dict[SemanticType, type[TypeEngine[Any]]] = {
    SemanticType.STRING: Text,
    SemanticType.INTEGER: Integer,
    SemanticType.NUMBER: Float,
    SemanticType.DECIMAL: Text,
    SemanticType.BOOLEAN: Boolean,
    SemanticType.DATE: Date,
    SemanticType.DATETIME: DateTime,
    SemanticType.ENUM: Text,
    SemanticType.RELATION: Text,
}


def new_id() -> str:
    """Default value for string primary keys."""
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _generated_default(column: ColumnDescriptor) -> Callable[[], Any] | None:
    if column.semantic_type == SemanticType.DATE:
        return date.today
    if column.semantic_type == SemanticType.DATETIME:
        return _utcnow
    return None


def build_column(column: ColumnDescriptor) -> Column[Any]:
    column_type = _COLUMN_TYPES.get(column.semantic_type, Text)
    kwargs: dict[str, Any] = {"comment": column.comment}

    if column.primary_key:
        kwargs["primary_key"] = True
        if column.semantic_type == SemanticType.INTEGER:
            kwargs["autoincrement"] = True
        elif column.generated:
            kwargs["default"] = new_id
    else:
        kwargs["nullable"] = column.nullable
        if column.generated:
            default = _generated_default(column)
            if default is not None:
                kwargs["default"] = default
                if column.source_field == "updatedAt":
                    kwargs["onupdate"] = default

    return Column(column.name, column_type, **kwargs)


def build_table(
    descriptor: TableDescriptor,
    metadata: MetaData,
    *,
    indexes: Iterable[Iterable[str]] = (),
) -> Table:
    """Define (or return the already defined) table for *descriptor*.

    Index entries may name columns or attributes.
    """
    existing = metadata.tables.get(descriptor.name)
    if existing is not None:
        return existing

    table = Table(
        descriptor.name,
        metadata,
        *(build_column(c) for c in descriptor.columns),
        comment=descriptor.comment,
    )
    for index in indexes:
        names = [n if n in table.c else to_snake_case(n) for n in index]
        missing = [n for n in names if n not in table.c]
        if missing:
            logger.warning("Skipped index on %s: unknown columns %s", descriptor.name, missing)
            continue
        Index(f"ix_{descriptor.name}_{'_'.join(names)}", *(table.c[n] for n in names))
    return table


async def create_schema(engine: AsyncEngine, metadata: MetaData) -> None:
    """Create every table in *metadata* that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.debug("Schema ensured: %s", sorted(metadata.tables))
