"""Read/Write routing support for Dynamic Datasource.

This module routes each intercepted data-access operation to the primary
database or to a read replica, based on the operation's name.

Example:
    Basic usage with routing configuration::

        from dynamic_datasource.config import PoolConfig, PoolRole, RoutingConfig
        from dynamic_datasource.routing import RoutingSyncSessionMaker

        maker = RoutingSyncSessionMaker(
            routing_config=RoutingConfig(
                pools=[
                    PoolConfig("master", "mysql+pymysql://primary/product", role=PoolRole.WRITE),
                    PoolConfig("slave_alpha", "mysql+pymysql://replica1/product"),
                    PoolConfig("slave_beta", "mysql+pymysql://replica2/product"),
                ],
            ),
        )


        class ProductService:
            @maker.interceptor
            def get_product(self, product_id: int) -> Product:
                with maker() as session:
                    return session.get(Product, product_id)

            @maker.interceptor
            def add_product(self, product: Product) -> Product:
                with maker() as session:
                    session.add(product)
                    session.commit()
                    return product

    Forcing a read to the primary::

        from dynamic_datasource.routing import primary_context

        with primary_context():
            product = service.get_product(product_id)
"""

from dynamic_datasource.routing.classifier import OperationClassifier, OperationIntent
from dynamic_datasource.routing.context import (
    RoutingContext,
    force_primary_var,
    primary_context,
    reset_routing_context,
)
from dynamic_datasource.routing.interceptor import RoutingInterceptor
from dynamic_datasource.routing.maker import RoutingAsyncSessionMaker, RoutingSyncSessionMaker
from dynamic_datasource.routing.registry import PoolEntry, PoolRegistry
from dynamic_datasource.routing.router import ConnectionRouter
from dynamic_datasource.routing.selectors import RandomSelector, ReplicaSelector, RoundRobinSelector, create_selector
from dynamic_datasource.routing.session import RoutingAsyncSession, RoutingSyncSession

__all__ = (
    "ConnectionRouter",
    "OperationClassifier",
    "OperationIntent",
    "PoolEntry",
    "PoolRegistry",
    "RandomSelector",
    "ReplicaSelector",
    "RoundRobinSelector",
    "RoutingAsyncSession",
    "RoutingAsyncSessionMaker",
    "RoutingContext",
    "RoutingInterceptor",
    "RoutingSyncSession",
    "RoutingSyncSessionMaker",
    "create_selector",
    "force_primary_var",
    "primary_context",
    "reset_routing_context",
)
