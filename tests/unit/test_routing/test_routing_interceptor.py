"""Unit tests for the routing interceptor.

Tests classification, replica selection, fallback and the guaranteed cleanup
around intercepted operations.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import Counter
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from dynamic_datasource.config.routing import PoolRole
from dynamic_datasource.exceptions import UnknownRoutingKeyError
from dynamic_datasource.routing.classifier import OperationClassifier
from dynamic_datasource.routing.context import primary_context
from dynamic_datasource.routing.interceptor import RoutingInterceptor
from dynamic_datasource.routing.registry import PoolRegistry
from dynamic_datasource.routing.router import ConnectionRouter
from dynamic_datasource.routing.selectors import RoundRobinSelector

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from sqlalchemy import Engine

    from dynamic_datasource.routing.context import RoutingContext


def test_reads_follow_round_robin(interceptor: RoutingInterceptor) -> None:
    keys: list[str] = []
    for _ in range(4):
        with interceptor.operation("get_product") as key:
            keys.append(key)

    assert keys == ["r1", "r2", "r1", "r2"]


def test_reads_follow_round_robin_over_three_replicas(mock_engines: dict[str, Engine], context: RoutingContext) -> None:
    pool_registry: PoolRegistry[Engine] = PoolRegistry()
    pool_registry.register("master", mock_engines["master"], PoolRole.WRITE)
    for name in ("A", "B", "C"):
        pool_registry.register(name, MagicMock(name=name), PoolRole.READ)
    pool_registry.seal()
    interceptor = RoutingInterceptor(OperationClassifier(), RoundRobinSelector(), pool_registry, context)

    keys = [interceptor.choose_key("select_orders") for _ in range(4)]

    assert keys == ["A", "B", "C", "A"]


@pytest.mark.parametrize("operation_name", ["add_product", "update_product", "delete_product", "save"])
def test_writes_bind_primary(interceptor: RoutingInterceptor, operation_name: str) -> None:
    with interceptor.operation(operation_name) as key:
        assert key == "master"
        assert interceptor.context.get() == "master"


def test_writes_do_not_advance_selector(interceptor: RoutingInterceptor) -> None:
    selector = interceptor.selector
    assert isinstance(selector, RoundRobinSelector)

    with interceptor.operation("add_product"):
        pass

    assert selector.counter == 0


def test_context_is_cleared_after_success(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    with interceptor.operation("get_product"):
        assert context.get() == "r1"

    assert context.get() == "master"
    assert context.is_set() is False


def test_context_is_cleared_after_error(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    with pytest.raises(RuntimeError, match="boom"):
        with interceptor.operation("get_product"):
            raise RuntimeError("boom")

    assert context.get() == "master"
    assert context.is_set() is False


def test_nested_write_inside_read_uses_primary(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    with interceptor.operation("get_product") as outer:
        assert outer == "r1"
        with interceptor.operation("add_audit_entry") as inner:
            assert inner == "master"
        assert context.get() == "r1"

    assert context.get() == "master"


def test_no_replicas_falls_back_to_primary(
    primary_only_registry: PoolRegistry[Engine],
    context: RoutingContext,
    caplog: pytest.LogCaptureFixture,
) -> None:
    interceptor = RoutingInterceptor(OperationClassifier(), RoundRobinSelector(), primary_only_registry, context)

    with caplog.at_level(logging.WARNING, logger="dynamic_datasource"):
        with interceptor.operation("get_product") as key:
            assert key == "master"

    assert "No read replicas registered" in caplog.text
    assert context.get() == "master"


def test_primary_context_forces_primary_for_reads(interceptor: RoutingInterceptor) -> None:
    with primary_context():
        with interceptor.operation("get_product") as key:
            assert key == "master"

    with interceptor.operation("get_product") as key:
        assert key == "r1"


def test_disabled_routing_binds_primary(registry: PoolRegistry[Engine], context: RoutingContext) -> None:
    interceptor = RoutingInterceptor(OperationClassifier(), RoundRobinSelector(), registry, context, enabled=False)

    assert interceptor.choose_key("get_product") == "master"


def test_before_and_after(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    token = interceptor.before("find_by_sku")
    assert context.get() == "r1"

    interceptor.after(token)

    assert context.get() == "master"


def test_decorator_uses_function_name(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    @interceptor
    def getProduct(product_id: int) -> tuple[int, str]:
        return product_id, context.get()

    @interceptor
    def addProduct() -> str:
        return context.get()

    assert getProduct(1) == (1, "r1")
    assert getProduct(2) == (2, "r2")
    assert getProduct(3) == (3, "r1")
    assert addProduct() == "master"
    assert getProduct.__name__ == "getProduct"
    assert context.is_set() is False


def test_decorator_with_explicit_name(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    @interceptor(name="list_products")
    def handler() -> str:
        return context.get()

    assert handler() == "r1"


def test_decorator_on_methods(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    class ProductService:
        @interceptor
        def select_product(self) -> str:
            return context.get()

        @interceptor
        def update_product(self) -> str:
            return context.get()

    service = ProductService()

    assert service.select_product() == "r1"
    assert service.update_product() == "master"
    assert service.select_product() == "r2"


def test_decorator_clears_context_on_error(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    @interceptor
    def get_missing() -> None:
        raise LookupError("missing")

    with pytest.raises(LookupError):
        get_missing()

    assert context.is_set() is False


def test_end_to_end_resolution(
    interceptor: RoutingInterceptor,
    router: ConnectionRouter[Engine],
    mock_engines: dict[str, Engine],
) -> None:
    @interceptor
    def getProduct() -> Engine:
        return router.resolve()

    @interceptor
    def addProduct() -> Engine:
        return router.resolve()

    assert getProduct() is mock_engines["r1"]
    assert getProduct() is mock_engines["r2"]
    assert getProduct() is mock_engines["r1"]
    assert addProduct() is mock_engines["master"]


def test_stale_key_surfaces_as_operation_failure(
    interceptor: RoutingInterceptor,
    router: ConnectionRouter[Engine],
    context: RoutingContext,
) -> None:
    @interceptor
    def add_product() -> Engine:
        context.set("slave_gamma")
        return router.resolve()

    with pytest.raises(UnknownRoutingKeyError):
        add_product()

    assert context.is_set() is False


def test_concurrent_reads_reserve_distinct_slots(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    selector = interceptor.selector
    assert isinstance(selector, RoundRobinSelector)
    with interceptor.operation("get_warmup"):
        pass
    start = selector.counter
    workers = 24
    barrier = threading.Barrier(workers)
    chosen: list[str] = []
    leaked: list[str] = []
    lock = threading.Lock()

    @interceptor
    def get_product() -> str:
        return context.get()

    def worker() -> None:
        barrier.wait()
        key = get_product()
        with lock:
            chosen.append(key)
            if context.is_set():
                leaked.append(context.get())

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    replicas = ("r1", "r2")
    expected = Counter(replicas[(start + offset) % len(replicas)] for offset in range(workers))
    assert Counter(chosen) == expected
    assert selector.counter == start + workers
    assert leaked == []


@pytest.mark.asyncio
async def test_async_decorator(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    @interceptor
    async def get_product() -> str:
        await asyncio.sleep(0)
        return context.get()

    @interceptor
    async def add_product() -> str:
        await asyncio.sleep(0)
        return context.get()

    assert await get_product() == "r1"
    assert await add_product() == "master"
    assert await get_product() == "r2"
    assert context.is_set() is False


@pytest.mark.asyncio
async def test_async_tasks_do_not_observe_each_other(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    release = asyncio.Event()

    @interceptor
    async def get_product() -> tuple[str, str]:
        before = context.get()
        await release.wait()
        return before, context.get()

    @interceptor
    async def add_product() -> tuple[str, str]:
        before = context.get()
        await release.wait()
        return before, context.get()

    tasks = [asyncio.ensure_future(get_product()), asyncio.ensure_future(add_product())]
    await asyncio.sleep(0)
    release.set()
    read_result, write_result = await asyncio.gather(*tasks)

    assert read_result == ("r1", "r1")
    assert write_result == ("master", "master")


@pytest.mark.asyncio
async def test_cancelled_read_clears_context(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    started = asyncio.Event()
    observed: list[str] = []

    @interceptor
    async def get_slow_report() -> None:
        started.set()
        await asyncio.Event().wait()

    async def unit_of_work() -> None:
        try:
            await get_slow_report()
        except asyncio.CancelledError:
            observed.append(context.get())
            observed.append(str(context.is_set()))
            raise

    task = asyncio.ensure_future(unit_of_work())
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert observed == ["master", "False"]


def test_decorator_on_generator_keeps_key_while_iterating(
    interceptor: RoutingInterceptor, context: RoutingContext
) -> None:
    @interceptor
    def list_products() -> Iterator[str]:
        yield context.get()
        yield context.get()

    assert list(list_products()) == ["r1", "r1"]
    assert context.is_set() is False
    assert list(list_products()) == ["r2", "r2"]


def test_decorator_on_generator_clears_context_when_closed_early(
    interceptor: RoutingInterceptor, context: RoutingContext
) -> None:
    @interceptor
    def list_products() -> Iterator[str]:
        while True:
            yield context.get()

    products = list_products()
    assert next(products) == "r1"

    products.close()

    assert context.is_set() is False


@pytest.mark.asyncio
async def test_decorator_on_async_generator(interceptor: RoutingInterceptor, context: RoutingContext) -> None:
    @interceptor
    async def find_products() -> AsyncIterator[str]:
        for _ in range(2):
            await asyncio.sleep(0)
            yield context.get()

    @interceptor
    async def add_products() -> AsyncIterator[str]:
        yield context.get()

    assert [key async for key in find_products()] == ["r1", "r1"]
    assert [key async for key in add_products()] == ["master"]
    assert context.is_set() is False
