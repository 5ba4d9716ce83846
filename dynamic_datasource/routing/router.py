"""Resolution of the current routing key to a connection pool."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar, Union

from dynamic_datasource.exceptions import UnknownRoutingKeyError

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine

    from dynamic_datasource.routing.context import RoutingContext
    from dynamic_datasource.routing.registry import PoolRegistry


__all__ = ("ConnectionRouter",)

logger = logging.getLogger("dynamic_datasource")

PoolT = TypeVar("PoolT", bound="Union[Engine, AsyncEngine]")


class ConnectionRouter(Generic[PoolT]):
    """Turn the routing key of the current unit of work into a pool.

    This is called by the persistence layer each time it acquires a
    connection, typically from :meth:`sqlalchemy.orm.Session.get_bind`.
    It takes no locks.
    """

    __slots__ = ("_context", "_registry")

    def __init__(self, registry: PoolRegistry[PoolT], context: RoutingContext) -> None:
        """Initialize the router.

        Args:
            registry: The sealed pool registry.
            context: The routing context to read the current key from.
        """
        self._registry = registry
        self._context = context

    @property
    def registry(self) -> PoolRegistry[PoolT]:
        return self._registry

    @property
    def context(self) -> RoutingContext:
        return self._context

    def current_key(self) -> str:
        """Get the routing key in effect for the calling unit of work.

        Returns:
            The bound key, or the primary key if none is bound.
        """
        return self._context.get()

    def resolve(self) -> PoolT:
        """Resolve the current routing key to its pool.

        Raises:
            UnknownRoutingKeyError: If the bound key is not registered. A stale
                key is never mapped to another pool.

        Returns:
            The engine registered under the current key.
        """
        key = self._context.get()
        if key not in self._registry:
            logger.error("Routing key %r is not registered, known keys: %s", key, list(self._registry.keys()))
            raise UnknownRoutingKeyError(key)
        logger.debug("Resolved routing key %r", key)
        return self._registry.resolve(key)
