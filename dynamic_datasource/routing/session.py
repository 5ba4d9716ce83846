"""Routing-aware session classes for read/write routing.

This module provides custom SQLAlchemy session classes that ask a
:class:`~dynamic_datasource.routing.router.ConnectionRouter` for their bind
in ``get_bind()``, which SQLAlchemy calls each time it needs a connection.
"""

from typing import TYPE_CHECKING, Any, Optional, Union

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlalchemy.orm import Mapper, SessionTransaction

    from dynamic_datasource.routing.router import ConnectionRouter


__all__ = (
    "RoutingAsyncSession",
    "RoutingSyncSession",
)


class RoutingSyncSession(Session):
    """Synchronous session with read/write routing via ``get_bind()``.

    The bind is whatever pool the router resolves for the routing key bound
    in the current unit of work, usually by a
    :class:`~dynamic_datasource.routing.interceptor.RoutingInterceptor`.

    With ``pin_transaction`` enabled, the first bind of a transaction is kept
    until that transaction ends. A routing decision taken mid-transaction
    therefore has no effect; decide routing before the transaction starts.

    Attributes:
        _router: Resolves the current routing key to an engine.
        _pin_transaction: Whether a transaction keeps its first bind.
        _pinned_bind: The bind of the current transaction, if pinned.
    """

    _router: "ConnectionRouter[Engine]"
    _pin_transaction: bool
    _pinned_bind: "Optional[Engine]"

    def __init__(
        self,
        router: "ConnectionRouter[Engine]",
        pin_transaction: bool = True,
        **kwargs: Any,
    ) -> None:
        """Initialize the routing session.

        Args:
            router: Resolves the current routing key to an engine.
            pin_transaction: Keep the first bind of a transaction until it ends.
            **kwargs: Additional arguments passed to the parent Session.
        """
        kwargs.pop("bind", None)
        kwargs.pop("binds", None)
        super().__init__(**kwargs)
        self._router = router
        self._pin_transaction = pin_transaction
        self._pinned_bind = None
        event.listen(self, "after_transaction_end", self._release_pinned_bind)

    def get_bind(
        self,
        mapper: Optional[Union["Mapper[Any]", type[Any]]] = None,
        clause: Optional[Any] = None,
        **kwargs: Any,
    ) -> "Engine":
        """Route to the pool selected for the current unit of work.

        Args:
            mapper: Optional mapper for the operation.
            clause: The SQL clause being executed.
            **kwargs: Additional keyword arguments.

        Raises:
            UnknownRoutingKeyError: If the bound routing key is not registered.

        Returns:
            The pinned engine of the open transaction, or the engine the
            router resolves.
        """
        if self._pinned_bind is not None:
            return self._pinned_bind
        engine = self._router.resolve()
        if self._pin_transaction:
            self._pinned_bind = engine
        return engine

    def _release_pinned_bind(self, session: Session, transaction: "SessionTransaction") -> None:
        # savepoints end inside the outer transaction
        if transaction.parent is None:
            self._pinned_bind = None


class RoutingAsyncSession(AsyncSession):
    """Async session with read/write routing support.

    This session class wraps :class:`RoutingSyncSession` to provide
    async routing capabilities. The actual routing logic is handled
    by the underlying sync session class.

    Example:
        Creating a routing async session::

            session = RoutingAsyncSession(router=router)
    """

    sync_session_class: "type[Session]" = RoutingSyncSession

    def __init__(
        self,
        router: "ConnectionRouter[AsyncEngine]",
        pin_transaction: bool = True,
        **kwargs: Any,
    ) -> None:
        """Initialize the async routing session.

        Args:
            router: Resolves the current routing key to an async engine.
            pin_transaction: Keep the first bind of a transaction until it ends.
            **kwargs: Additional arguments passed to the parent AsyncSession.
        """
        kwargs.pop("bind", None)
        kwargs.pop("binds", None)
        super().__init__(
            sync_session_class=RoutingSyncSession,
            router=_SyncConnectionRouterWrapper(router),
            pin_transaction=pin_transaction,
            **kwargs,
        )
        self._router = router

    @property
    def router(self) -> "ConnectionRouter[AsyncEngine]":
        """Get the connection router.

        Returns:
            The router resolving async engines.
        """
        return self._router


class _SyncConnectionRouterWrapper:
    """Wrapper to adapt an async connection router for the sync session.

    This wrapper extracts the sync engine from the resolved async engine.
    """

    __slots__ = ("_async_router",)

    def __init__(self, async_router: "ConnectionRouter[AsyncEngine]") -> None:
        """Initialize the wrapper.

        Args:
            async_router: The async connection router to wrap.
        """
        self._async_router = async_router

    def current_key(self) -> str:
        return self._async_router.current_key()

    def resolve(self) -> "Engine":
        """Resolve the current routing key to a sync engine.

        Returns:
            The sync engine behind the resolved async engine.
        """
        return self._async_router.resolve().sync_engine
