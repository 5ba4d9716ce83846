"""Session maker factories for read/write routing.

This module wires the routing components together: it builds the pool
registry from a :class:`~dynamic_datasource.config.routing.RoutingConfig`,
creates the selector, classifier, context, router and interceptor, and hands
out routing-aware sessions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar, Union

from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from dynamic_datasource.routing.classifier import OperationClassifier
from dynamic_datasource.routing.context import RoutingContext
from dynamic_datasource.routing.interceptor import RoutingInterceptor
from dynamic_datasource.routing.registry import PoolRegistry
from dynamic_datasource.routing.router import ConnectionRouter
from dynamic_datasource.routing.selectors import create_selector
from dynamic_datasource.routing.session import RoutingAsyncSession, RoutingSyncSession

if TYPE_CHECKING:
    from dynamic_datasource.config.routing import RoutingConfig
    from dynamic_datasource.routing.selectors import ReplicaSelector

__all__ = (
    "RoutingAsyncSessionMaker",
    "RoutingSyncSessionMaker",
)

PoolT = TypeVar("PoolT", bound="Union[Engine, AsyncEngine]")


class _RoutingMakerBase(Generic[PoolT]):
    __slots__ = (
        "_classifier",
        "_context",
        "_interceptor",
        "_registry",
        "_router",
        "_routing_config",
        "_selector",
        "_session_config",
    )

    def __init__(
        self,
        routing_config: RoutingConfig,
        engine_config: dict[str, Any] | None,
        session_config: dict[str, Any] | None,
        create_engine_callable: Callable[..., PoolT],
    ) -> None:
        self._routing_config = routing_config
        self._session_config = session_config or {}
        self._registry: PoolRegistry[PoolT] = PoolRegistry.from_config(
            routing_config,
            create_engine_callable,
            engine_config,
        )
        self._context = RoutingContext(self._registry.default_key())
        self._selector = create_selector(routing_config.routing_strategy)
        self._classifier = OperationClassifier(routing_config.read_prefixes)
        self._router: ConnectionRouter[PoolT] = ConnectionRouter(self._registry, self._context)
        self._interceptor = RoutingInterceptor(
            classifier=self._classifier,
            selector=self._selector,
            registry=self._registry,
            context=self._context,
            enabled=routing_config.enabled,
        )

    def _session_kwargs(self) -> dict[str, Any]:
        session_config = self._session_config.copy()
        # Remove bind from session config - routing handles this
        session_config.pop("bind", None)
        session_config.pop("binds", None)
        return session_config

    @property
    def routing_config(self) -> RoutingConfig:
        return self._routing_config

    @property
    def registry(self) -> PoolRegistry[PoolT]:
        return self._registry

    @property
    def router(self) -> ConnectionRouter[PoolT]:
        return self._router

    @property
    def interceptor(self) -> RoutingInterceptor:
        """Get the interceptor used to route operations by name.

        Returns:
            The routing interceptor, usable as a decorator.
        """
        return self._interceptor

    @property
    def classifier(self) -> OperationClassifier:
        return self._classifier

    @property
    def selector(self) -> ReplicaSelector:
        return self._selector

    @property
    def context(self) -> RoutingContext:
        return self._context

    @property
    def primary_engine(self) -> PoolT:
        """Get the primary engine.

        Returns:
            The engine of the ``WRITE`` pool.
        """
        return self._registry.resolve(self._registry.default_key())

    @property
    def replica_engines(self) -> list[PoolT]:
        """Get the replica engines.

        Returns:
            The engines of the ``READ`` pools, in registration order.
        """
        return [self._registry.resolve(key) for key in self._registry.replica_keys()]


class RoutingSyncSessionMaker(_RoutingMakerBase[Engine]):
    """Factory for creating sync routing sessions.

    Example:
        Creating a routing session maker::

            maker = RoutingSyncSessionMaker(
                routing_config=RoutingConfig(
                    pools=[
                        PoolConfig("master", "postgresql://primary/db", role=PoolRole.WRITE),
                        PoolConfig("slave_alpha", "postgresql://replica1/db"),
                    ],
                ),
                engine_config={"pool_size": 10},
            )


            @maker.interceptor
            def get_product(product_id: int) -> Product:
                with maker() as session:
                    return session.get(Product, product_id)
    """

    __slots__ = ()

    def __init__(
        self,
        routing_config: RoutingConfig,
        engine_config: dict[str, Any] | None = None,
        session_config: dict[str, Any] | None = None,
        create_engine_callable: Callable[..., Engine] = create_engine,
    ) -> None:
        """Initialize the session maker.

        Args:
            routing_config: Configuration for read/write routing.
            engine_config: Configuration options for engine creation.
            session_config: Configuration options for session creation.
            create_engine_callable: Callable to create engines (for testing).
        """
        super().__init__(routing_config, engine_config, session_config, create_engine_callable)

    def __call__(self) -> RoutingSyncSession:
        """Create a new routing session.

        Returns:
            A new :class:`RoutingSyncSession` instance.
        """
        return RoutingSyncSession(
            router=self._router,
            pin_transaction=self._routing_config.pin_transaction,
            **self._session_kwargs(),
        )

    def close_all(self) -> None:
        """Close all engines and release connections.

        Call this when shutting down to properly release database connections.
        """
        for engine in self._registry.pools():
            engine.dispose()


class RoutingAsyncSessionMaker(_RoutingMakerBase[AsyncEngine]):
    """Factory for creating async routing sessions.

    Example:
        Creating an async routing session maker::

            maker = RoutingAsyncSessionMaker(
                routing_config=RoutingConfig(
                    pools=[
                        PoolConfig("master", "postgresql+asyncpg://primary/db", role=PoolRole.WRITE),
                        PoolConfig("slave_alpha", "postgresql+asyncpg://replica1/db"),
                    ],
                ),
            )


            @maker.interceptor
            async def list_products() -> list[Product]:
                async with maker() as session:
                    return list(await session.scalars(select(Product)))
    """

    __slots__ = ()

    def __init__(
        self,
        routing_config: RoutingConfig,
        engine_config: dict[str, Any] | None = None,
        session_config: dict[str, Any] | None = None,
        create_engine_callable: Callable[..., AsyncEngine] = create_async_engine,
    ) -> None:
        """Initialize the async session maker.

        Args:
            routing_config: Configuration for read/write routing.
            engine_config: Configuration options for engine creation.
            session_config: Configuration options for session creation.
            create_engine_callable: Callable to create async engines (for testing).
        """
        super().__init__(routing_config, engine_config, session_config, create_engine_callable)

    def __call__(self) -> RoutingAsyncSession:
        """Create a new async routing session.

        Returns:
            A new :class:`RoutingAsyncSession` instance.
        """
        return RoutingAsyncSession(
            router=self._router,
            pin_transaction=self._routing_config.pin_transaction,
            **self._session_kwargs(),
        )

    async def close_all(self) -> None:
        """Close all engines and release connections.

        Call this when shutting down to properly release database connections.
        """
        for engine in self._registry.pools():
            await engine.dispose()
