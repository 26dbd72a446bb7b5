"""Entity-relation derivation.

Every relation or embedding field of a registered entity or value object
yields one ``entityRelation`` record. The records are recomputed whenever an
entity or value object is added, updated or removed, so the relation graph
never holds stale entries.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from metaforge.domain.types import BuiltinType, Layer, RelationKind, SubLayer
from metaforge.registry.store import MetadataRegistry, TypeConfig

logger = logging.getLogger(__name__)

ENTITY_RELATION_TYPE = "entityRelation"


class EntityRelation(BaseModel):
    """One derived edge between two entity-like descriptors."""

    model_config = {"frozen": True, "populate_by_name": True}

    name: str
    source: str
    target: str
    field_name: str = Field(alias="fieldName")
    relation_type: RelationKind = Field(alias="relationType")
    embedded: bool = False


def compute_entity_relations(registry: MetadataRegistry) -> list[dict[str, Any]]:
    """Relation records for every relation field in *registry*.

    Fields whose target cannot be resolved (including lazy targets that
    fail) are skipped.
    """
    records: list[dict[str, Any]] = []
    for type_name in (BuiltinType.ENTITY, BuiltinType.VALUE_OBJECT):
        for name in registry.get_by_type(type_name):
            entity = registry.get_entity(name)
            if entity is None:
                continue
            for fld in entity.fields:
                if not fld.is_relation:
                    continue
                target = fld.target_name
                if target is None:
                    logger.debug("Skipped relation %s.%s: unresolved target", name, fld.name)
                    continue
                if fld.relation is not None:
                    kind = fld.relation
                elif fld.embedded:
                    kind = RelationKind.EMBEDDED
                else:
                    kind = RelationKind.ONE_TO_ONE
                relation = EntityRelation(
                    name=f"{entity.name}_{fld.name}_{target}",
                    source=entity.name,
                    target=target,
                    field_name=fld.name,
                    relation_type=kind,
                    embedded=fld.embedded,
                )
                records.append(
                    {
                        "__type": ENTITY_RELATION_TYPE,
                        **relation.model_dump(mode="json", by_alias=True),
                    }
                )
    return records


def enable_entity_relation_derivation(registry: MetadataRegistry) -> bool:
    """Register the ``entityRelation`` derived type on *registry*."""
    return registry.register_type(
        TypeConfig(
            type=ENTITY_RELATION_TYPE,
            layer=Layer.DOMAIN,
            sub_layer=SubLayer.DERIVED,
            label="Entity Relation",
            description="Relations derived from entity and value-object fields",
            derived_from=(BuiltinType.ENTITY.value, BuiltinType.VALUE_OBJECT.value),
            derive=compute_entity_relations,
        )
    )


def get_entity_relations(registry: MetadataRegistry) -> list[EntityRelation]:
    """Current derived relations, parsed back into models."""
    relations: list[EntityRelation] = []
    for entry in registry.get_by_type(ENTITY_RELATION_TYPE).values():
        definition = entry.definition
        if isinstance(definition, EntityRelation):
            relations.append(definition)
        else:
            relations.append(EntityRelation.model_validate(definition))
    return relations
