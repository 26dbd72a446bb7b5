"""Attribute/column correspondence for one entity.

A column maps to the non-relation field that either names it as its
``source_field``, declares it as its explicit ``column``, or whose
snake-case name equals it. Columns no field claims are left out of
automatic mapping.

INVARIANT: The mapping is a bijection. Two fields claiming one column, or one
field claiming two columns, is a ConfigurationError.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, MutableMapping
from typing import Any

from metaforge.domain.descriptors import EntityDescriptor, FieldDescriptor
from metaforge.domain.naming import to_snake_case
from metaforge.domain.tables import ColumnDescriptor, TableDescriptor
from metaforge.domain.types import SemanticType
from metaforge.errors import ConfigurationError
from metaforge.mapping.accessors import AttributeAccessors
from metaforge.mapping.converters import to_domain_value, to_storage_value

logger = logging.getLogger(__name__)


def _claims(fld: FieldDescriptor, column: ColumnDescriptor) -> bool:
    if column.source_field is not None and column.source_field == fld.name:
        return True
    if fld.column is not None:
        return fld.column == column.name
    return to_snake_case(fld.name) == column.name


class FieldMapper:
    """Bidirectional name map plus value conversion for one entity."""

    def __init__(
        self,
        entity_name: str,
        attribute_to_column: Mapping[str, str],
        types: Mapping[str, SemanticType] | None = None,
        *,
        primary_key: str | None = None,
        passthrough: bool = False,
    ) -> None:
        self.entity_name = entity_name
        self._to_column = dict(attribute_to_column)
        self._to_attribute = {col: attr for attr, col in self._to_column.items()}
        self._types = dict(types or {})
        self._passthrough = passthrough
        # keyed by access mode: item access for mappings, attributes otherwise
        self._accessors: dict[bool, AttributeAccessors] = {}
        self.primary_key = primary_key
        self.primary_key_column = (
            self._to_column.get(primary_key, primary_key) if primary_key else None
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, entity: EntityDescriptor, table: TableDescriptor) -> FieldMapper:
        """Match *table*'s columns to *entity*'s fields.

        Raises:
            ConfigurationError: On a naming collision, or when the primary key
                field resolves to no column.
        """
        candidates = [f for f in entity.fields if not f.is_relation]
        attribute_to_column: dict[str, str] = {}

        for column in table.columns:
            claimed = [f for f in candidates if _claims(f, column)]
            if not claimed:
                logger.debug("Column %s.%s has no matching field", table.name, column.name)
                continue
            if len(claimed) > 1:
                names = ", ".join(f.name for f in claimed)
                msg = f"Column {table.name}.{column.name} is claimed by several fields: {names}"
                raise ConfigurationError(msg)
            fld = claimed[0]
            if fld.name in attribute_to_column:
                msg = (
                    f"Field {entity.name}.{fld.name} matches both "
                    f"{attribute_to_column[fld.name]!r} and {column.name!r}"
                )
                raise ConfigurationError(msg)
            attribute_to_column[fld.name] = column.name

        primary_key = cls._resolve_primary_key(entity, table, attribute_to_column)
        types = {f.name: f.semantic_type for f in candidates if f.name in attribute_to_column}
        logger.debug(
            "Built field mapping for %s: %d of %d columns",
            entity.name,
            len(attribute_to_column),
            len(table.columns),
        )
        return cls(entity.name, attribute_to_column, types, primary_key=primary_key)

    @staticmethod
    def _resolve_primary_key(
        entity: EntityDescriptor,
        table: TableDescriptor,
        attribute_to_column: Mapping[str, str],
    ) -> str | None:
        declared = entity.primary_key
        if declared is not None:
            if declared.name not in attribute_to_column:
                msg = f"Primary key {entity.name}.{declared.name} matches no column of {table.name}"
                raise ConfigurationError(msg)
            return declared.name

        by_column = {col: attr for attr, col in attribute_to_column.items()}
        for column in table.columns:
            if column.primary_key and column.name in by_column:
                return by_column[column.name]
        return "id" if "id" in attribute_to_column else None

    @classmethod
    def passthrough(cls, entity_name: str, primary_key: str = "id") -> FieldMapper:
        """Identity mapper for entities without metadata."""
        return cls(entity_name, {}, primary_key=primary_key, passthrough=True)

    # ------------------------------------------------------------------
    # Name lookups
    # ------------------------------------------------------------------

    @property
    def is_passthrough(self) -> bool:
        return self._passthrough

    @property
    def attribute_to_column(self) -> dict[str, str]:
        return dict(self._to_column)

    @property
    def column_to_attribute(self) -> dict[str, str]:
        return dict(self._to_attribute)

    def column_for(self, attribute: str) -> str | None:
        if self._passthrough:
            return attribute
        return self._to_column.get(attribute)

    def attribute_for(self, column: str) -> str | None:
        if self._passthrough:
            return column
        return self._to_attribute.get(column)

    def resolve_column(self, key: str) -> str:
        """Column for an attribute or column name.

        Raises:
            ConfigurationError: *key* is neither.
        """
        if self._passthrough or key in self._to_attribute:
            return key
        column = self._to_column.get(key)
        if column is None:
            msg = f"{self.entity_name} has no mapped attribute or column {key!r}"
            raise ConfigurationError(msg)
        return column

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def to_domain_value(self, attribute: str, raw: Any) -> Any:
        semantic_type = self._types.get(attribute, SemanticType.STRING)
        return to_domain_value(
            raw, semantic_type, field_name=attribute, entity_name=self.entity_name
        )

    def to_storage_value(self, attribute: str, value: Any) -> Any:
        semantic_type = self._types.get(attribute, SemanticType.STRING)
        return to_storage_value(
            value, semantic_type, field_name=attribute, entity_name=self.entity_name
        )

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def _accessors_for(self, instance: Any) -> AttributeAccessors:
        item_access = isinstance(instance, MutableMapping)
        accessors = self._accessors.get(item_access)
        if accessors is None:
            accessors = AttributeAccessors(self._to_column, item_access=item_access)
            self._accessors[item_access] = accessors
        return accessors

    def to_domain(self, row: Mapping[str, Any], factory: Callable[[], Any]) -> Any:
        """Build an entity from *row*; only mapped columns are populated."""
        instance = factory()
        if self._passthrough:
            accessors = AttributeAccessors.for_instance(row.keys(), instance)
            for column, raw in row.items():
                accessors.set(instance, column, raw)
            return instance

        accessors = self._accessors_for(instance)
        for column, raw in row.items():
            attribute = self._to_attribute.get(column)
            if attribute is None:
                continue
            accessors.set(instance, attribute, self.to_domain_value(attribute, raw))
        return instance

    def to_storage(self, partial: Any) -> dict[str, Any]:
        """Storage row for a partial entity.

        A mapping writes the keys it holds (``None`` writes NULL). Any other
        object writes its mapped attributes that are not ``None``.
        """
        if isinstance(partial, Mapping):
            values = dict(partial)
        elif self._passthrough:
            values = {k: v for k, v in vars(partial).items() if v is not None}
        else:
            values = self._accessors_for(partial).read_all(partial)

        row: dict[str, Any] = {}
        for attribute, value in values.items():
            column = self.column_for(attribute)
            if column is None:
                continue
            row[column] = self.to_storage_value(attribute, value)
        return row

    def to_storage_criteria(self, where: Mapping[str, Any]) -> dict[str, Any]:
        """Equality criteria keyed by column; keys may be attributes or columns."""
        criteria: dict[str, Any] = {}
        for key, value in where.items():
            column = self.resolve_column(key)
            attribute = self.attribute_for(column) or key
            criteria[column] = self.to_storage_value(attribute, value)
        return criteria
