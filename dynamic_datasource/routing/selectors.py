"""Replica selectors for read/write routing.

This module provides different strategies for selecting which read replica
key to bind for a read operation.
"""

from __future__ import annotations

import random
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from dynamic_datasource.config.routing import RoutingStrategy
from dynamic_datasource.exceptions import NoReplicasAvailableError

if TYPE_CHECKING:
    from collections.abc import Sequence


__all__ = (
    "RandomSelector",
    "ReplicaSelector",
    "RoundRobinSelector",
    "create_selector",
)


class ReplicaSelector(ABC):
    """Abstract base class for replica selection strategies.

    Subclasses implement different algorithms for choosing which
    replica key to use for read operations. Selectors are shared by every
    unit of work and must be safe to call from concurrent threads.
    """

    __slots__ = ()

    @abstractmethod
    def next(self, replica_keys: Sequence[str]) -> str:
        """Select the next replica key to use.

        Args:
            replica_keys: The registered replica keys, in registration order.

        Returns:
            The selected replica key.

        Raises:
            NoReplicasAvailableError: If ``replica_keys`` is empty.
        """
        ...


class RoundRobinSelector(ReplicaSelector):
    """Round-robin replica selection.

    Keeps one monotonically increasing counter and picks
    ``replica_keys[counter % len(replica_keys)]``, distributing load evenly
    across all available replicas.

    This selector is thread-safe: reading and advancing the counter happen
    under one lock, so no two callers get the same slot.

    Example:
        Creating a round-robin selector::

            selector = RoundRobinSelector()
            selector.next(["r1", "r2"])  # "r1"
            selector.next(["r1", "r2"])  # "r2"
            selector.next(["r1", "r2"])  # "r1"
    """

    __slots__ = ("_counter", "_lock")

    def __init__(self, start: int = 0) -> None:
        """Initialize the round-robin selector.

        Args:
            start: Initial counter value.
        """
        self._counter = start
        self._lock = threading.Lock()

    @property
    def counter(self) -> int:
        """Get the number of selections made so far (plus ``start``).

        Returns:
            The current counter value.
        """
        return self._counter

    def next(self, replica_keys: Sequence[str]) -> str:
        """Select the next replica in round-robin order.

        Args:
            replica_keys: The registered replica keys.

        Returns:
            The next replica key in the cycle.

        Raises:
            NoReplicasAvailableError: If no replicas are configured.
        """
        if not replica_keys:
            msg = "No replicas configured for round-robin selection"
            raise NoReplicasAvailableError(msg)
        with self._lock:
            index = self._counter % len(replica_keys)
            self._counter += 1
        return replica_keys[index]


class RandomSelector(ReplicaSelector):
    """Random replica selection.

    Selects replicas randomly, which can help with load distribution
    when you want to avoid predictable patterns.

    Example:
        Creating a random selector::

            selector = RandomSelector()
            key = selector.next(["r1", "r2"])  # Returns a random replica key
    """

    __slots__ = ()

    def next(self, replica_keys: Sequence[str]) -> str:
        """Select a random replica.

        Args:
            replica_keys: The registered replica keys.

        Returns:
            A randomly selected replica key.

        Raises:
            NoReplicasAvailableError: If no replicas are configured.
        """
        if not replica_keys:
            msg = "No replicas configured for random selection"
            raise NoReplicasAvailableError(msg)
        return random.choice(replica_keys)  # noqa: S311


def create_selector(strategy: RoutingStrategy) -> ReplicaSelector:
    """Create a replica selector for the given strategy.

    Args:
        strategy: The routing strategy to use.

    Returns:
        The appropriate selector instance.
    """
    if strategy == RoutingStrategy.RANDOM:
        return RandomSelector()
    return RoundRobinSelector()
