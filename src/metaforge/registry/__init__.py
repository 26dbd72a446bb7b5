"""Registry layer — metadata catalog, derived types and persistence format.

May import from domain and errors. Must never import from mapping,
infrastructure, or services.
"""

from metaforge.registry.derived import (
    ENTITY_RELATION_TYPE,
    EntityRelation,
    compute_entity_relations,
    enable_entity_relation_derivation,
    get_entity_relations,
)
from metaforge.registry.store import (
    ChangeListener,
    MetadataRegistry,
    RegistryEntry,
    TypeConfig,
    default_registry,
)

__all__ = [
    "ENTITY_RELATION_TYPE",
    "ChangeListener",
    "EntityRelation",
    "MetadataRegistry",
    "RegistryEntry",
    "TypeConfig",
    "compute_entity_relations",
    "default_registry",
    "enable_entity_relation_derivation",
    "get_entity_relations",
]
