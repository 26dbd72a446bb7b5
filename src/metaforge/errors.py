"""Exception hierarchy for metaforge.

Lookup misses are never exceptions: repositories return ``None`` or
``False`` for missing rows and the registry returns ``None`` for unknown
names. Everything here is either surfaced to the immediate caller or,
for :class:`RegistrationError`, only ever logged.
"""

from __future__ import annotations

from typing import Any


class MetaforgeError(Exception):
    """Base class for all metaforge errors."""


class ConfigurationError(MetaforgeError):
    """Metadata or schema is unusable: missing table, key or mapping collision."""


class ConversionError(MetaforgeError):
    """A raw value could not be coerced to its declared semantic type."""

    def __init__(
        self,
        field_name: str | None,
        entity_name: str | None,
        raw_value: Any,
        semantic_type: str | None = None,
    ) -> None:
        self.field_name = field_name
        self.entity_name = entity_name
        self.raw_value = raw_value
        self.semantic_type = semantic_type
        target = f"{entity_name}.{field_name}" if entity_name else (field_name or "<value>")
        expected = f" as {semantic_type}" if semantic_type else ""
        super().__init__(f"Cannot convert {raw_value!r} for {target}{expected}")


class StorageError(MetaforgeError):
    """The relational executor is unreachable or a statement failed.

    Not retried here; retry policy belongs to the executor or its caller.
    """


class RegistrationError(MetaforgeError):
    """Malformed registry item. Logged by the registry, never raised from ``register``."""


class TransactionError(MetaforgeError):
    """A transaction propagation rule was violated."""
