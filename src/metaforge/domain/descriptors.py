"""Declarative entity and field descriptors.

Descriptors are plain frozen data: declare them with :func:`define_entity`
and :func:`field`, then register them explicitly. The JSON aliases
(``type``, ``primaryKey``, ``__type``, ``table``) match the registry
persistence format consumed and produced by introspection tooling.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from metaforge.domain.types import RelationKind, SemanticType

if TYPE_CHECKING:
    from metaforge.registry.store import MetadataRegistry

logger = logging.getLogger(__name__)

EntityKind = Literal["entity", "valueObject"]


class FieldDescriptor(BaseModel):
    """One entity attribute.

    Attributes:
        name: Attribute identifier, unique within the entity.
        semantic_type: Declared type driving value conversion.
        primary_key: At most one field per entity carries this flag.
        relation: Relation kind for composition/association fields.
        target: Target descriptor, its name, or a zero-argument callable
            returning either (resolved lazily, see :attr:`target_name`).
        embedded: Value object flattened into the owner's table.
        column: Explicit column name overriding the naming transform.
    """

    model_config = {"frozen": True, "populate_by_name": True}

    name: str
    semantic_type: SemanticType = Field(default=SemanticType.STRING, alias="type")
    label: str | None = None
    required: bool = False
    primary_key: bool = Field(default=False, alias="primaryKey")
    default: Any = None
    relation: RelationKind | None = None
    target: Any = None
    embedded: bool = False
    column: str | None = None

    @field_validator("semantic_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return SemanticType(value) if isinstance(value, str) else value

    @field_validator("relation", mode="before")
    @classmethod
    def _normalize_relation(cls, value: Any) -> Any:
        if isinstance(value, str):
            for kind in RelationKind:
                if kind.value.lower() == value.lower():
                    return kind
        return value

    @property
    def is_relation(self) -> bool:
        """Whether persistence of this field is left to the caller."""
        return (
            self.semantic_type == SemanticType.RELATION
            or self.relation is not None
            or self.embedded
        )

    @property
    def target_name(self) -> str | None:
        """Resolve :attr:`target` to an entity name, or None if unresolvable."""
        target = self.target
        if callable(target) and not isinstance(target, BaseModel):
            try:
                target = target()
            except Exception:
                logger.debug("Lazy target for field %s failed to resolve", self.name, exc_info=True)
                return None
        if target is None:
            return None
        if isinstance(target, str):
            return target
        name = getattr(target, "name", None)
        return name if isinstance(name, str) else None


class EntityDescriptor(BaseModel):
    """A persistable type (``entity``) or an embeddable ``valueObject``."""

    model_config = {"frozen": True, "populate_by_name": True}

    name: str
    kind: EntityKind = Field(default="entity", alias="__type")
    table_name: str | None = Field(default=None, alias="table")
    comment: str | None = None
    fields: tuple[FieldDescriptor, ...] = ()
    indexes: tuple[tuple[str, ...], ...] = ()

    @field_validator("fields", mode="before")
    @classmethod
    def _fields_from_mapping(cls, value: Any) -> Any:
        """Accept the ``{name: {...}}`` shape used by registry dumps."""
        if isinstance(value, Mapping):
            return [
                {"name": name, **spec} if isinstance(spec, Mapping) else spec
                for name, spec in value.items()
            ]
        return value

    @model_validator(mode="after")
    def _check_fields(self) -> EntityDescriptor:
        seen: set[str] = set()
        for f in self.fields:
            if f.name in seen:
                msg = f"Duplicate field {f.name!r} in entity {self.name!r}"
                raise ValueError(msg)
            seen.add(f.name)
        keys = [f.name for f in self.fields if f.primary_key]
        if len(keys) > 1:
            msg = f"Entity {self.name!r} declares several primary keys: {', '.join(keys)}"
            raise ValueError(msg)
        return self

    @property
    def type_name(self) -> str:
        """Registry type category for this descriptor."""
        return self.kind

    @property
    def primary_key(self) -> FieldDescriptor | None:
        return next((f for f in self.fields if f.primary_key), None)

    def get_field(self, name: str) -> FieldDescriptor | None:
        return next((f for f in self.fields if f.name == name), None)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


def field(
    name: str,
    semantic_type: SemanticType | str = SemanticType.STRING,
    *,
    label: str | None = None,
    required: bool = False,
    primary_key: bool = False,
    default: Any = None,
    relation: RelationKind | str | None = None,
    target: str | EntityDescriptor | Callable[[], Any] | None = None,
    embedded: bool = False,
    column: str | None = None,
) -> FieldDescriptor:
    """Build a :class:`FieldDescriptor` with keyword-friendly defaults."""
    return FieldDescriptor(
        name=name,
        semantic_type=SemanticType(semantic_type),
        label=label,
        required=required,
        primary_key=primary_key,
        default=default,
        relation=RelationKind(relation) if relation is not None else None,
        target=target,
        embedded=embedded,
        column=column,
    )


def _define(
    kind: EntityKind,
    name: str,
    fields: Iterable[FieldDescriptor],
    *,
    table: str | None,
    comment: str | None,
    indexes: Iterable[Iterable[str]],
    registry: MetadataRegistry | None,
) -> EntityDescriptor:
    descriptor = EntityDescriptor(
        name=name,
        kind=kind,
        table_name=table,
        comment=comment,
        fields=tuple(fields),
        indexes=tuple(tuple(ix) for ix in indexes),
    )
    if registry is not None:
        registry.register(descriptor)
    return descriptor


def define_entity(
    name: str,
    fields: Iterable[FieldDescriptor],
    *,
    table: str | None = None,
    comment: str | None = None,
    indexes: Iterable[Iterable[str]] = (),
    registry: MetadataRegistry | None = None,
) -> EntityDescriptor:
    """Declare an entity; registers it when *registry* is given.

    Usage::

        Order = define_entity(
            "Order",
            [
                field("id", primary_key=True),
                field("total", SemanticType.DECIMAL, required=True),
                field("createdAt", SemanticType.DATETIME),
            ],
            table="orders",
            registry=registry,
        )
    """
    return _define(
        "entity",
        name,
        fields,
        table=table,
        comment=comment,
        indexes=indexes,
        registry=registry,
    )


def define_value_object(
    name: str,
    fields: Iterable[FieldDescriptor],
    *,
    comment: str | None = None,
    registry: MetadataRegistry | None = None,
) -> EntityDescriptor:
    """Declare a value object (embeddable, never given its own table)."""
    return _define(
        "valueObject",
        name,
        fields,
        table=None,
        comment=comment,
        indexes=(),
        registry=registry,
    )
