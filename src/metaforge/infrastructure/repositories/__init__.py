"""Generic repositories driven by registry metadata."""

from metaforge.infrastructure.repositories.metadata import (
    MetadataRepository,
    Page,
    RepositoryState,
)

__all__ = ["MetadataRepository", "Page", "RepositoryState"]
