"""metaforge — metadata-driven persistence engine.

Declare entities once as plain descriptors, register them in a
:class:`~metaforge.registry.MetadataRegistry`, and get CRUD repositories
that map rows to domain objects automatically and join whatever
transaction is active in the calling task.
"""

from metaforge.domain.descriptors import (
    EntityDescriptor,
    FieldDescriptor,
    define_entity,
    define_value_object,
    field,
)
from metaforge.domain.types import RelationKind, SemanticType
from metaforge.errors import (
    ConfigurationError,
    ConversionError,
    MetaforgeError,
    StorageError,
    TransactionError,
)
from metaforge.infrastructure.datastore import DataStore
from metaforge.infrastructure.repositories import MetadataRepository
from metaforge.infrastructure.transaction import Propagation, TransactionContext
from metaforge.registry import MetadataRegistry, default_registry

__version__ = "0.4.0"

__all__ = [
    "ConfigurationError",
    "ConversionError",
    "DataStore",
    "EntityDescriptor",
    "FieldDescriptor",
    "MetadataRegistry",
    "MetadataRepository",
    "MetaforgeError",
    "Propagation",
    "RelationKind",
    "SemanticType",
    "StorageError",
    "TransactionContext",
    "TransactionError",
    "__version__",
    "default_registry",
    "define_entity",
    "define_value_object",
    "field",
]
