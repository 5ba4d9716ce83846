"""Pytest configuration for routing unit tests.

The routing subsystem keeps the current routing key in ``ContextVar`` state.
That state is process-local, so it can leak between tests when they share a
thread.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from dynamic_datasource.config.routing import PoolRole
from dynamic_datasource.routing.classifier import OperationClassifier
from dynamic_datasource.routing.context import RoutingContext, reset_routing_context
from dynamic_datasource.routing.interceptor import RoutingInterceptor
from dynamic_datasource.routing.registry import PoolRegistry
from dynamic_datasource.routing.router import ConnectionRouter
from dynamic_datasource.routing.selectors import RoundRobinSelector

if TYPE_CHECKING:
    from sqlalchemy import Engine


@pytest.fixture(autouse=True)
def _reset_routing_context() -> Iterator[None]:
    """Ensure routing ContextVar state never leaks between tests."""
    reset_routing_context()
    try:
        yield
    finally:
        reset_routing_context()


@pytest.fixture
def mock_engines() -> dict[str, Engine]:
    """Create mock engines for a primary and two replicas."""
    return {name: MagicMock(name=f"{name}_engine") for name in ("master", "r1", "r2")}


@pytest.fixture
def registry(mock_engines: dict[str, Engine]) -> PoolRegistry[Engine]:
    """Create a sealed registry with ``master`` as WRITE and ``r1``, ``r2`` as READ."""
    pool_registry: PoolRegistry[Engine] = PoolRegistry()
    pool_registry.register("master", mock_engines["master"], PoolRole.WRITE)
    pool_registry.register("r1", mock_engines["r1"], PoolRole.READ)
    pool_registry.register("r2", mock_engines["r2"], PoolRole.READ)
    pool_registry.seal()
    return pool_registry


@pytest.fixture
def primary_only_registry(mock_engines: dict[str, Engine]) -> PoolRegistry[Engine]:
    """Create a sealed registry with no replicas."""
    pool_registry: PoolRegistry[Engine] = PoolRegistry()
    pool_registry.register("master", mock_engines["master"], PoolRole.WRITE)
    pool_registry.seal()
    return pool_registry


@pytest.fixture
def context() -> RoutingContext:
    return RoutingContext(default_key="master")


@pytest.fixture
def router(registry: PoolRegistry[Engine], context: RoutingContext) -> ConnectionRouter[Engine]:
    return ConnectionRouter(registry, context)


@pytest.fixture
def interceptor(registry: PoolRegistry[Engine], context: RoutingContext) -> RoutingInterceptor:
    return RoutingInterceptor(
        classifier=OperationClassifier(),
        selector=RoundRobinSelector(),
        registry=registry,
        context=context,
    )
