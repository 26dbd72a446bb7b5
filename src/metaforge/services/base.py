"""BaseAppService — foundation for application services.

Every service receives a :class:`DataStore` at construction time and owns
its transaction boundaries, either with ``self.store.transaction()`` or by
decorating methods with :func:`transactional`. Repositories called anywhere
beneath such a method join its transaction without being told about it.
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Concatenate, ParamSpec, TypeVar

from metaforge.infrastructure.transaction import Propagation

if TYPE_CHECKING:
    from metaforge.infrastructure.datastore import DataStore
    from metaforge.infrastructure.repositories import MetadataRepository

logger = logging.getLogger(__name__)

_P = ParamSpec("_P")
_R = TypeVar("_R")
_S = TypeVar("_S", bound="BaseAppService")


class BaseAppService:
    """Base for application-service classes.

    Usage::

        class CheckoutService(BaseAppService):
            @transactional()
            async def place(self, total: str) -> Any:
                order = await self.repository("Order").create({"total": total})
                await self.repository("AuditLog").create({"orderId": order["id"]})
                return order
    """

    def __init__(self, store: DataStore) -> None:
        self._store = store

    @property
    def store(self) -> DataStore:
        return self._store

    def repository(
        self, entity_name: str, factory: Callable[[], Any] = dict
    ) -> MetadataRepository[Any]:
        return self._store.repository(entity_name, factory)


def transactional(
    propagation: Propagation | str = Propagation.REQUIRED,
    *,
    timeout: float | None = None,
) -> Callable[
    [Callable[Concatenate[_S, _P], Awaitable[_R]]],
    Callable[Concatenate[_S, _P], Awaitable[_R]],
]:
    """Decorator: run an async service method inside ``store.transaction``.

    Commit or rollback is logged at debug with the elapsed time.
    """
    mode = Propagation(propagation)

    def decorator(
        func: Callable[Concatenate[_S, _P], Awaitable[_R]],
    ) -> Callable[Concatenate[_S, _P], Awaitable[_R]]:
        @functools.wraps(func)
        async def wrapper(self: _S, *args: _P.args, **kwargs: _P.kwargs) -> _R:
            name = func.__qualname__
            started = time.perf_counter()
            logger.debug("Transaction begin: %s (%s)", name, mode)
            try:
                async with self.store.transaction(mode, timeout=timeout):
                    result = await func(self, *args, **kwargs)
            except BaseException:
                elapsed = (time.perf_counter() - started) * 1000
                logger.debug("Transaction rollback: %s after %.2fms", name, elapsed)
                raise
            elapsed = (time.perf_counter() - started) * 1000
            logger.debug("Transaction commit: %s after %.2fms", name, elapsed)
            return result

        return wrapper

    return decorator
