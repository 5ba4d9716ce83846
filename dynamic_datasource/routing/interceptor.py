"""Interception of data-access calls for read/write routing.

The interceptor wraps each data-access call. Before the call it classifies the
operation by name and binds a routing key; after the call, whether it returned,
raised or was cancelled, it restores the binding that was in effect before.

Routing must be decided at or above the transaction boundary. When a session
transaction is already open, its connection is bound to the key in effect when
it started, and a decision made below that point has no effect.
"""

from __future__ import annotations

import functools
import inspect
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Optional, TypeVar, Union, cast, overload

from typing_extensions import ParamSpec

from dynamic_datasource.exceptions import NoReplicasAvailableError
from dynamic_datasource.routing.classifier import OperationIntent
from dynamic_datasource.routing.context import should_use_primary

if TYPE_CHECKING:
    from collections.abc import Generator
    from contextvars import Token

    from dynamic_datasource.routing.classifier import OperationClassifier
    from dynamic_datasource.routing.context import RoutingContext
    from dynamic_datasource.routing.registry import PoolRegistry
    from dynamic_datasource.routing.selectors import ReplicaSelector


__all__ = ("RoutingInterceptor",)

logger = logging.getLogger("dynamic_datasource")

P = ParamSpec("P")
R = TypeVar("R")


class RoutingInterceptor:
    """Bind a routing key around each intercepted operation.

    Read operations are spread over the replicas by the selector; writes are
    bound to the primary. When no replica is registered, reads fall back to the
    primary and a warning is logged.

    Example:
        Routing service methods by name::

            interceptor = RoutingInterceptor(
                classifier=OperationClassifier(),
                selector=RoundRobinSelector(),
                registry=registry,
                context=RoutingContext(registry.default_key()),
            )


            class ProductService:
                @interceptor
                def get_product(self, product_id: int) -> Product: ...

                @interceptor
                def add_product(self, product: Product) -> Product: ...

        Or around an arbitrary block::

            with interceptor.operation("list_products"):
                ...
    """

    __slots__ = ("_classifier", "_context", "_enabled", "_registry", "_selector")

    def __init__(
        self,
        classifier: OperationClassifier,
        selector: ReplicaSelector,
        registry: PoolRegistry[Any],
        context: RoutingContext,
        enabled: bool = True,
    ) -> None:
        """Initialize the interceptor.

        Args:
            classifier: Maps operation names to read or write.
            selector: Chooses a replica for each read.
            registry: The sealed pool registry.
            context: The routing context keys are bound in.
            enabled: When ``False`` every operation is bound to the primary.
        """
        self._classifier = classifier
        self._selector = selector
        self._registry = registry
        self._context = context
        self._enabled = enabled

    @property
    def classifier(self) -> OperationClassifier:
        return self._classifier

    @property
    def selector(self) -> ReplicaSelector:
        return self._selector

    @property
    def context(self) -> RoutingContext:
        return self._context

    def choose_key(self, operation_name: str) -> str:
        """Decide which routing key an operation should use.

        Args:
            operation_name: Name of the intercepted operation.

        Returns:
            A replica key for reads, or the primary key for writes, when
            routing is disabled, inside :func:`primary_context`, or when no
            replica is registered.
        """
        default_key = self._registry.default_key()
        if not self._enabled or should_use_primary():
            return default_key
        if self._classifier.classify(operation_name) is OperationIntent.WRITE:
            return default_key
        try:
            return self._selector.next(self._registry.replica_keys())
        except NoReplicasAvailableError:
            logger.warning(
                "No read replicas registered, routing read operation %r to primary %r",
                operation_name,
                default_key,
            )
            return default_key

    def before(self, operation_name: str) -> Token[Optional[str]]:
        """Classify the operation and bind its routing key.

        Args:
            operation_name: Name of the intercepted operation.

        Returns:
            A token that must be passed to :meth:`after`.
        """
        key = self.choose_key(operation_name)
        logger.debug("Routing operation %r to %r", operation_name, key)
        return self._context.set(key)

    def after(self, token: Token[Optional[str]]) -> None:
        """Restore the binding that was in effect before :meth:`before`.

        For a top-level operation this leaves the context unset, so the next
        operation of the same unit of work starts from the primary again.

        Args:
            token: The token returned by :meth:`before`.
        """
        self._context.reset(token)

    @contextmanager
    def operation(self, operation_name: str) -> Generator[str, None, None]:
        """Run a block as one intercepted operation.

        Args:
            operation_name: Name used to classify the block.

        Yields:
            The routing key bound for the block.
        """
        token = self.before(operation_name)
        try:
            yield self._context.get()
        finally:
            self.after(token)

    @overload
    def __call__(self, func: Callable[P, R], *, name: Optional[str] = None) -> Callable[P, R]: ...

    @overload
    def __call__(
        self, func: None = None, *, name: Optional[str] = None
    ) -> Callable[[Callable[P, R]], Callable[P, R]]: ...

    def __call__(
        self,
        func: Optional[Callable[P, R]] = None,
        *,
        name: Optional[str] = None,
    ) -> Union[Callable[P, R], Callable[[Callable[P, R]], Callable[P, R]]]:
        """Decorate a function so that each call is an intercepted operation.

        Works with plain functions, methods, coroutine functions and generator
        functions. A generator keeps its key bound until it is exhausted or
        closed, so code consuming it between items sees the same key.

        Args:
            func: The function to wrap.
            name: Operation name used for classification. Defaults to the
                function's ``__name__``.

        Returns:
            The wrapped function, or a decorator when called with only ``name``.
        """
        if func is None:
            return functools.partial(self.__call__, name=name)  # type: ignore[return-value]

        operation_name = name or func.__name__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                with self.operation(operation_name):
                    return await func(*args, **kwargs)  # type: ignore[misc]

            return cast("Callable[P, R]", async_wrapper)

        if inspect.isasyncgenfunction(func):

            @functools.wraps(func)
            async def async_gen_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                with self.operation(operation_name):
                    async for item in func(*args, **kwargs):  # type: ignore[attr-defined]
                        yield item

            return cast("Callable[P, R]", async_gen_wrapper)

        if inspect.isgeneratorfunction(func):

            @functools.wraps(func)
            def gen_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                with self.operation(operation_name):
                    return (yield from func(*args, **kwargs))  # type: ignore[misc]

            return cast("Callable[P, R]", gen_wrapper)

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with self.operation(operation_name):
                return func(*args, **kwargs)

        return wrapper
