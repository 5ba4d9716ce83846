from dynamic_datasource.config.routing import (
    DEFAULT_READ_PREFIXES,
    PoolConfig,
    PoolRole,
    RoutingConfig,
    RoutingStrategy,
)

__all__ = (
    "DEFAULT_READ_PREFIXES",
    "PoolConfig",
    "PoolRole",
    "RoutingConfig",
    "RoutingStrategy",
)
