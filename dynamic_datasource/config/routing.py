"""Read/Write routing configuration for Dynamic Datasource.

This module provides the configuration classes describing the pools a router
can send operations to: exactly one writable primary and any number of
read-only replicas.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Union

from dynamic_datasource.exceptions import ConfigurationError

__all__ = (
    "DEFAULT_READ_PREFIXES",
    "PoolConfig",
    "PoolRole",
    "RoutingConfig",
    "RoutingStrategy",
)


DEFAULT_READ_PREFIXES: tuple[str, ...] = ("get", "select", "find", "list", "query")
"""Operation name prefixes classified as reads unless configured otherwise."""


class PoolRole(str, Enum):
    """Role of a connection pool in the routing topology."""

    WRITE = "WRITE"
    """The writable primary. Exactly one pool has this role and it is the default."""

    READ = "READ"
    """A read-only replica."""

    @classmethod
    def parse(cls, value: Union[str, "PoolRole"]) -> "PoolRole":
        """Parse a role name, ignoring case.

        Args:
            value: A role or role name such as ``"write"``.

        Raises:
            ConfigurationError: If the name is not a known role.

        Returns:
            The matching role.
        """
        if isinstance(value, PoolRole):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            msg = f"Unknown pool role {value!r}, expected one of {[role.value for role in cls]}"
            raise ConfigurationError(msg) from exc


class RoutingStrategy(Enum):
    """Strategy for selecting read replicas.

    Determines how the routing layer chooses which replica to use
    for read operations when multiple replicas are configured.
    """

    ROUND_ROBIN = auto()
    """Cycle through replicas in order."""

    RANDOM = auto()
    """Select replicas randomly."""

    @classmethod
    def parse(cls, value: Union[str, "RoutingStrategy"]) -> "RoutingStrategy":
        if isinstance(value, RoutingStrategy):
            return value
        try:
            return cls[str(value).upper().replace("-", "_")]
        except KeyError as exc:
            msg = f"Unknown routing strategy {value!r}, expected one of {[strategy.name for strategy in cls]}"
            raise ConfigurationError(msg) from exc


TRUE_VALUES = {"True", "true", "1", "yes", "Y", "T"}
FALSE_VALUES = {"False", "false", "0", "no", "N", "F"}


def _parse_flag(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in TRUE_VALUES:
            return True
        if value in FALSE_VALUES:
            return False
    msg = f"Routing option {name!r} must be a boolean, got {value!r}"
    raise ConfigurationError(msg)


def _default_engine_config() -> dict[str, Any]:
    """Return an empty engine configuration."""
    return {}


def _default_read_prefixes() -> list[str]:
    """Return a fresh copy of the default read prefixes."""
    return list(DEFAULT_READ_PREFIXES)


@dataclass
class PoolConfig:
    """Configuration for a single connection pool.

    Attributes:
        name: Routing key of the pool, for example ``"master"`` or ``"slave_alpha"``.
        connection_string: Database connection string for the pool.
        role: Whether the pool takes writes or only reads.
        engine_config: Extra keyword arguments for this pool's engine.
    """

    name: str
    """Routing key of the pool."""

    connection_string: str
    """Connection string for the pool."""

    role: PoolRole = PoolRole.READ
    """Role of the pool. Defaults to a read replica."""

    engine_config: dict[str, Any] = field(default_factory=_default_engine_config)
    """Per-pool engine options, merged over the shared engine configuration."""

    def __post_init__(self) -> None:
        if not self.name:
            msg = "Pool names must be non-empty"
            raise ConfigurationError(msg)
        self.role = PoolRole.parse(self.role)


@dataclass
class RoutingConfig:
    """Read/Write routing configuration.

    Attributes:
        pools: Every pool the router may send operations to.
        read_prefixes: Operation name prefixes classified as reads.
        routing_strategy: Strategy for selecting read replicas.
        enabled: Enable/disable routing (all to primary when False).
        pin_transaction: Keep the bind chosen at the start of a transaction until it ends.

    Example:
        A primary with two replicas::

            config = RoutingConfig(
                pools=[
                    PoolConfig("master", "postgresql://primary/db", role=PoolRole.WRITE),
                    PoolConfig("slave_alpha", "postgresql://replica1/db"),
                    PoolConfig("slave_beta", "postgresql://replica2/db"),
                ],
            )

    Raises:
        ConfigurationError: If there is not exactly one ``WRITE`` pool or two pools share a name.
    """

    pools: list[PoolConfig]
    """Pool configurations, in the order replicas are cycled through."""

    read_prefixes: list[str] = field(default_factory=_default_read_prefixes)
    """Operation name prefixes that mark an operation as a read."""

    routing_strategy: RoutingStrategy = RoutingStrategy.ROUND_ROBIN
    """Strategy for selecting read replicas.

    Defaults to round-robin for even distribution.
    """

    enabled: bool = True
    """Enable/disable routing.

    When ``False``, all traffic goes to the primary database.
    """

    pin_transaction: bool = True
    """Bind a session transaction to the pool in effect when it started.

    Routing decisions made after the first connection acquisition of a
    transaction have no effect until the transaction commits or rolls back.
    """

    def __post_init__(self) -> None:
        self.routing_strategy = RoutingStrategy.parse(self.routing_strategy)
        self.read_prefixes = list(self.read_prefixes)
        seen: set[str] = set()
        for pool in self.pools:
            if pool.name in seen:
                msg = f"Duplicate pool name {pool.name!r}"
                raise ConfigurationError(msg)
            seen.add(pool.name)
        writers = [pool.name for pool in self.pools if pool.role is PoolRole.WRITE]
        if not writers:
            msg = "Routing configuration requires exactly one WRITE pool, none declared"
            raise ConfigurationError(msg)
        if len(writers) > 1:
            msg = f"Routing configuration requires exactly one WRITE pool, got {writers}"
            raise ConfigurationError(msg)

    @property
    def primary(self) -> PoolConfig:
        """Get the single writable pool.

        Returns:
            The ``WRITE`` pool configuration.
        """
        return next(pool for pool in self.pools if pool.role is PoolRole.WRITE)

    @property
    def replicas(self) -> list[PoolConfig]:
        """Get the read replica pools in declaration order.

        Returns:
            List of ``READ`` pool configurations.
        """
        return [pool for pool in self.pools if pool.role is PoolRole.READ]

    def get_replica_names(self) -> list[str]:
        return [pool.name for pool in self.replicas]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RoutingConfig":
        """Build a configuration from a plain mapping.

        The mapping is typically the parsed content of an application settings file::

            {
                "pools": {
                    "master": {"url": "mysql://primary/product", "role": "write"},
                    "slave_alpha": {"url": "mysql://replica1/product", "role": "read"},
                },
                "read_prefixes": ["get", "select"],
                "routing_strategy": "round_robin",
            }

        ``pools`` may also be a list of mappings carrying a ``name`` key.

        Args:
            data: The configuration mapping.

        Raises:
            ConfigurationError: If a pool entry is missing its name or connection string.

        Returns:
            The validated configuration.
        """
        raw_pools = data.get("pools")
        if not raw_pools:
            msg = "Routing configuration declares no pools"
            raise ConfigurationError(msg)
        if isinstance(raw_pools, Mapping):
            entries = [{"name": name, **dict(options)} for name, options in raw_pools.items()]
        else:
            entries = [dict(options) for options in raw_pools]

        pools: list[PoolConfig] = []
        for entry in entries:
            name = entry.get("name")
            connection_string = entry.get("connection_string", entry.get("url"))
            if not name or not connection_string:
                msg = f"Pool entry {entry!r} requires a name and a connection string"
                raise ConfigurationError(msg)
            pools.append(
                PoolConfig(
                    name=str(name),
                    connection_string=str(connection_string),
                    role=PoolRole.parse(entry.get("role", PoolRole.READ)),
                    engine_config=dict(entry.get("engine_config", {})),
                )
            )

        options: dict[str, Any] = {}
        if "read_prefixes" in data:
            options["read_prefixes"] = list(data["read_prefixes"])
        if "routing_strategy" in data:
            options["routing_strategy"] = RoutingStrategy.parse(data["routing_strategy"])
        for flag in ("enabled", "pin_transaction"):
            if flag in data:
                options[flag] = _parse_flag(flag, data[flag])
        return cls(pools=pools, **options)
