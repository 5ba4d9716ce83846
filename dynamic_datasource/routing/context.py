"""Context variables and context managers for read/write routing.

This module holds the routing key selected for the current unit of work. Each
:class:`RoutingContext` owns its own :class:`~contextvars.ContextVar`, so each
thread and each asyncio task sees only the value it set itself, and two
routing setups in one process never see each other's keys.
"""

import weakref
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Optional

__all__ = (
    "RoutingContext",
    "force_primary_var",
    "primary_context",
    "reset_routing_context",
)


force_primary_var: ContextVar[bool] = ContextVar("force_primary", default=False)
"""Context variable for explicitly forcing all operations to primary.

When ``True``, intercepted operations bind the primary key regardless
of how their names classify.
"""

_live_contexts: "weakref.WeakSet[RoutingContext]" = weakref.WeakSet()


class RoutingContext:
    """Per unit-of-work holder for the current routing key.

    Example:
        Binding a key for the duration of a block::

            context = RoutingContext(default_key="master")
            token = context.set("slave_alpha")
            try:
                assert context.get() == "slave_alpha"
            finally:
                context.reset(token)
            assert context.get() == "master"
    """

    __slots__ = ("__weakref__", "_default_key", "_key_var")

    def __init__(self, default_key: str) -> None:
        """Initialize the context.

        Args:
            default_key: Key returned by :meth:`get` when nothing is bound.
        """
        self._default_key = default_key
        # ``None`` means no decision has been made and the default key applies.
        self._key_var: ContextVar[Optional[str]] = ContextVar(f"routing_key_{id(self)}", default=None)
        _live_contexts.add(self)

    @property
    def default_key(self) -> str:
        return self._default_key

    def set(self, key: str) -> "Token[Optional[str]]":
        """Bind ``key`` for the calling unit of work.

        Args:
            key: The routing key to bind.

        Returns:
            A token restoring the previous binding when passed to :meth:`reset`.
        """
        return self._key_var.set(key)

    def get(self) -> str:
        """Get the key bound for the calling unit of work.

        Returns:
            The bound key, or the default key if none is bound.
        """
        key = self._key_var.get()
        return self._default_key if key is None else key

    def is_set(self) -> bool:
        return self._key_var.get() is not None

    def clear(self) -> None:
        """Unbind the key so that :meth:`get` yields the default again."""
        self._key_var.set(None)

    def reset(self, token: "Token[Optional[str]]") -> None:
        """Restore the binding that was in effect before the matching :meth:`set`.

        Args:
            token: The token returned by :meth:`set`.
        """
        self._key_var.reset(token)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(default_key={self._default_key!r}, current={self.get()!r})"


@contextmanager
def primary_context() -> Generator[None, None, None]:
    """Force all intercepted operations to use primary within this context.

    Use this context manager when a read must observe a write made moments
    earlier and cannot tolerate replica lag.

    Example:
        Force a read to use the primary database::

            from dynamic_datasource.routing import primary_context

            with primary_context():
                product = service.get_product(product_id)

    Yields:
        None
    """
    token: Token[bool] = force_primary_var.set(True)
    try:
        yield
    finally:
        force_primary_var.reset(token)


def reset_routing_context() -> None:
    """Reset the routing state of every live context to its defaults.

    Example:
        Clean up a worker thread before reusing it::

            from dynamic_datasource.routing import reset_routing_context

            reset_routing_context()
    """
    for context in list(_live_contexts):
        context.clear()
    force_primary_var.set(False)


def should_use_primary() -> bool:
    """Check if routing is forced to the primary database.

    Returns:
        ``True`` inside :func:`primary_context`.
    """
    return force_primary_var.get()
