"""Domain layer — descriptors, semantic types, naming and table layout.

This layer depends only on stdlib and pydantic.
It must never import from registry, mapping, infrastructure, or services.
"""
