"""Table descriptors derived from entity descriptors.

Column naming priority: the field's explicit ``column`` override, then the
snake-case field name. Table naming priority: the entity's ``table_name``,
then :func:`~metaforge.domain.naming.default_table_name`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, Field

from metaforge.domain.descriptors import EntityDescriptor, FieldDescriptor
from metaforge.domain.naming import default_table_name, to_snake_case
from metaforge.domain.types import RelationKind, SemanticType

EntityResolver = Callable[[str], EntityDescriptor | None]

# Attribute names whose columns are filled on insert when not supplied.
GENERATED_ATTRIBUTES = frozenset({"createdAt", "updatedAt"})


class ColumnDescriptor(BaseModel):
    """A storage column. ``source_field`` names the attribute it came from."""

    model_config = {"frozen": True, "populate_by_name": True}

    name: str
    semantic_type: SemanticType = Field(default=SemanticType.STRING, alias="type")
    primary_key: bool = Field(default=False, alias="primaryKey")
    nullable: bool = True
    generated: bool = False
    foreign_key: bool = Field(default=False, alias="foreignKey")
    source_field: str | None = Field(default=None, alias="sourceField")
    comment: str | None = None


class TableDescriptor(BaseModel):
    """Storage layout of one entity."""

    model_config = {"frozen": True, "populate_by_name": True}

    name: str
    kind: Literal["table"] = Field(default="table", alias="__type")
    entity_name: str = Field(alias="entityName")
    comment: str | None = None
    columns: tuple[ColumnDescriptor, ...] = ()

    @property
    def type_name(self) -> str:
        return self.kind

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> ColumnDescriptor | None:
        return next((c for c in self.columns if c.name == name), None)


def column_name_for(fld: FieldDescriptor) -> str:
    """Column a scalar field maps to."""
    return fld.column or to_snake_case(fld.name)


def table_name_for(entity: EntityDescriptor) -> str:
    return entity.table_name or default_table_name(entity.name)


def _scalar_column(fld: FieldDescriptor) -> ColumnDescriptor:
    return ColumnDescriptor(
        name=column_name_for(fld),
        semantic_type=fld.semantic_type,
        primary_key=fld.primary_key,
        nullable=not (fld.required or fld.primary_key),
        generated=fld.primary_key or fld.name in GENERATED_ATTRIBUTES,
        source_field=fld.name,
        comment=fld.label,
    )


def _foreign_key_column(fld: FieldDescriptor) -> ColumnDescriptor:
    return ColumnDescriptor(
        name=fld.column or f"{to_snake_case(fld.name)}_id",
        semantic_type=SemanticType.STRING,
        nullable=not fld.required,
        foreign_key=True,
        source_field=fld.name,
        comment=f"{fld.label} (foreign key)" if fld.label else None,
    )


def _embedded_columns(
    fld: FieldDescriptor, resolve: EntityResolver | None
) -> list[ColumnDescriptor]:
    target_name = fld.target_name
    target = resolve(target_name) if resolve is not None and target_name else None
    if target is None:
        return []
    prefix = fld.column or to_snake_case(fld.name)
    columns: list[ColumnDescriptor] = []
    for sub in target.fields:
        if sub.is_relation or sub.name == "id":
            continue
        columns.append(
            ColumnDescriptor(
                name=f"{prefix}_{column_name_for(sub)}",
                semantic_type=sub.semantic_type,
                source_field=f"{fld.name}.{sub.name}",
                comment=sub.label,
            )
        )
    return columns


def table_for_entity(
    entity: EntityDescriptor,
    resolve: EntityResolver | None = None,
) -> TableDescriptor:
    """Derive the table layout for *entity*.

    Scalar fields become columns. Many-to-one and non-embedded one-to-one
    relations become ``<field>_id`` foreign-key columns. Embedded value
    objects are flattened as ``<prefix>_<sub>`` columns when *resolve* can
    find the value object. One-to-many and many-to-many produce no columns
    on the owning table.
    """
    columns: list[ColumnDescriptor] = []
    for fld in entity.fields:
        if not fld.is_relation:
            columns.append(_scalar_column(fld))
            continue
        kind = fld.relation
        if fld.embedded or kind == RelationKind.EMBEDDED:
            columns.extend(_embedded_columns(fld, resolve))
        elif kind in (RelationKind.MANY_TO_ONE, RelationKind.ONE_TO_ONE):
            columns.append(_foreign_key_column(fld))

    return TableDescriptor(
        name=table_name_for(entity),
        entity_name=entity.name,
        comment=entity.comment,
        columns=tuple(columns),
    )
