"""Registry of named connection pools.

The registry maps routing keys to live pools (SQLAlchemy engines). It is
filled once at startup and sealed; after that it is never mutated, so reads
from concurrent units of work need no locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar, Union

from dynamic_datasource.config.routing import PoolRole
from dynamic_datasource.exceptions import ConfigurationError, UnknownRoutingKeyError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine

    from dynamic_datasource.config.routing import RoutingConfig


__all__ = (
    "PoolEntry",
    "PoolRegistry",
)

logger = logging.getLogger("dynamic_datasource")

PoolT = TypeVar("PoolT", bound="Union[Engine, AsyncEngine]")


@dataclass(frozen=True)
class PoolEntry(Generic[PoolT]):
    """A registered pool and its role."""

    key: str
    pool: PoolT
    role: PoolRole


class PoolRegistry(Generic[PoolT]):
    """Mapping from routing key to connection pool.

    Exactly one pool is registered with :attr:`PoolRole.WRITE`; its key is the
    default key. Pools registered with :attr:`PoolRole.READ` form the replica
    set, in registration order.

    Example:
        Building a registry by hand::

            registry = PoolRegistry()
            registry.register("master", primary_engine, PoolRole.WRITE)
            registry.register("slave_alpha", replica_engine, PoolRole.READ)
            registry.seal()

            registry.resolve("slave_alpha")  # replica_engine
    """

    __slots__ = ("_default_key", "_entries", "_replica_keys", "_sealed")

    def __init__(self) -> None:
        self._entries: dict[str, PoolEntry[PoolT]] = {}
        self._default_key: str | None = None
        self._replica_keys: tuple[str, ...] = ()
        self._sealed = False

    def register(self, key: str, pool: PoolT, role: PoolRole | str = PoolRole.READ) -> None:
        """Register a pool under ``key``.

        Args:
            key: The routing key.
            pool: The engine owning the pool.
            role: Whether the pool takes writes or only reads.

        Raises:
            ConfigurationError: If the registry is sealed, the key is empty or
                already registered, or a second ``WRITE`` pool is registered.
        """
        if self._sealed:
            msg = f"Cannot register pool {key!r}: the registry is sealed"
            raise ConfigurationError(msg)
        if not key:
            msg = "Routing keys must be non-empty"
            raise ConfigurationError(msg)
        if key in self._entries:
            msg = f"Duplicate routing key {key!r}"
            raise ConfigurationError(msg)
        role = PoolRole.parse(role)
        if role is PoolRole.WRITE:
            if self._default_key is not None:
                msg = f"Cannot register {key!r} as WRITE: {self._default_key!r} is already the WRITE pool"
                raise ConfigurationError(msg)
            self._default_key = key
        else:
            self._replica_keys = (*self._replica_keys, key)
        self._entries[key] = PoolEntry(key=key, pool=pool, role=role)

    def seal(self) -> None:
        """Finish initialization.

        Raises:
            ConfigurationError: If no ``WRITE`` pool was registered.
        """
        if self._sealed:
            return
        if self._default_key is None:
            msg = "Pool registry requires exactly one WRITE pool, none registered"
            raise ConfigurationError(msg)
        self._entries = MappingProxyType(self._entries)  # type: ignore[assignment]
        self._sealed = True
        logger.info(
            "Pool registry sealed with primary %r and %d replica(s) %s",
            self._default_key,
            len(self._replica_keys),
            list(self._replica_keys),
        )

    @property
    def sealed(self) -> bool:
        return self._sealed

    def resolve(self, key: str) -> PoolT:
        """Get the pool registered under ``key``.

        Args:
            key: The routing key.

        Raises:
            UnknownRoutingKeyError: If ``key`` is not registered.

        Returns:
            The registered engine.
        """
        try:
            return self._entries[key].pool
        except KeyError:
            raise UnknownRoutingKeyError(key) from None

    def default_key(self) -> str:
        """Get the key of the single ``WRITE`` pool.

        Raises:
            ConfigurationError: If no ``WRITE`` pool is registered yet.

        Returns:
            The default routing key.
        """
        if self._default_key is None:
            msg = "Pool registry has no WRITE pool"
            raise ConfigurationError(msg)
        return self._default_key

    def replica_keys(self) -> tuple[str, ...]:
        """Get the ``READ`` keys in registration order.

        Returns:
            The replica keys, empty when only the primary is registered.
        """
        return self._replica_keys

    def role_of(self, key: str) -> PoolRole:
        try:
            return self._entries[key].role
        except KeyError:
            raise UnknownRoutingKeyError(key) from None

    def keys(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def pools(self) -> list[PoolT]:
        return [entry.pool for entry in self._entries.values()]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(default={self._default_key!r}, "
            f"replicas={list(self._replica_keys)!r}, sealed={self._sealed})"
        )

    @classmethod
    def from_config(
        cls,
        routing_config: RoutingConfig,
        create_engine_callable: Callable[..., PoolT],
        engine_config: Mapping[str, Any] | None = None,
    ) -> PoolRegistry[PoolT]:
        """Create an engine for every configured pool and seal the registry.

        Args:
            routing_config: The pool topology.
            create_engine_callable: Callable to create engines (``create_engine``
                or ``create_async_engine``).
            engine_config: Engine options shared by every pool. Each pool's own
                ``engine_config`` takes precedence.

        Returns:
            A sealed registry.
        """
        registry: PoolRegistry[PoolT] = cls()
        for pool in routing_config.pools:
            options = {**(engine_config or {}), **pool.engine_config}
            registry.register(pool.name, create_engine_callable(pool.connection_string, **options), pool.role)
        registry.seal()
        return registry
