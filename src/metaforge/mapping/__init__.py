"""Mapping layer — field/column correspondence and value conversion.

May import from domain and errors. Must never import from registry,
infrastructure, or services.
"""

from metaforge.mapping.accessors import Accessor, AttributeAccessors
from metaforge.mapping.converters import to_domain_value, to_storage_value
from metaforge.mapping.mapper import FieldMapper

__all__ = [
    "Accessor",
    "AttributeAccessors",
    "FieldMapper",
    "to_domain_value",
    "to_storage_value",
]
