"""Service layer — application services and transaction boundaries.

Services depend on the infrastructure layer through :class:`DataStore`.
Infrastructure must never import from here.
"""

from metaforge.services.base import BaseAppService, transactional

__all__ = ["BaseAppService", "transactional"]
