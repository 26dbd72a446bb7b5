"""Async SQLAlchemy Core engine, descriptor-built schema, and query executor."""

from metaforge.infrastructure.database.engine import create_db_engine
from metaforge.infrastructure.database.executor import QueryExecutor, SqlExecutor
from metaforge.infrastructure.database.schema import (
    build_column,
    build_table,
    create_schema,
    new_id,
)

__all__ = [
    "QueryExecutor",
    "SqlExecutor",
    "build_column",
    "build_table",
    "create_db_engine",
    "create_schema",
    "new_id",
]
