"""Name-based classification of intercepted operations.

An operation is a read when its name starts with one of the configured read
prefixes, and a write otherwise. The SQL an operation actually runs is never
inspected: a write named like a read (``select_and_lock``) is routed to a
replica, so operation names must match their effect.
"""

from collections.abc import Iterable
from enum import Enum
from typing import Optional

from dynamic_datasource.config.routing import DEFAULT_READ_PREFIXES

__all__ = (
    "OperationClassifier",
    "OperationIntent",
)


class OperationIntent(str, Enum):
    """What an operation does to the data it touches."""

    READ = "READ"
    WRITE = "WRITE"


class OperationClassifier:
    """Map operation names to :class:`OperationIntent`.

    ``read_prefixes`` is a plain list so the host application can extend it
    after construction.

    Example:
        Classifying service methods::

            classifier = OperationClassifier()
            classifier.classify("get_product")  # OperationIntent.READ
            classifier.classify("getProduct")  # OperationIntent.READ
            classifier.classify("add_product")  # OperationIntent.WRITE
    """

    __slots__ = ("read_prefixes",)

    def __init__(self, read_prefixes: Optional[Iterable[str]] = None) -> None:
        """Initialize the classifier.

        Args:
            read_prefixes: Name prefixes marking a read. Defaults to
                :data:`~dynamic_datasource.config.routing.DEFAULT_READ_PREFIXES`.
        """
        self.read_prefixes: list[str] = list(DEFAULT_READ_PREFIXES if read_prefixes is None else read_prefixes)

    def add_read_prefix(self, prefix: str) -> None:
        if prefix and prefix not in self.read_prefixes:
            self.read_prefixes.append(prefix)

    def classify(self, operation_name: str) -> OperationIntent:
        """Classify an operation by name.

        Args:
            operation_name: Name of the intercepted operation, e.g. a method name.

        Returns:
            :attr:`OperationIntent.READ` if the name starts with a read prefix,
            :attr:`OperationIntent.WRITE` otherwise.
        """
        # empty prefixes would match every name
        prefixes = tuple(prefix for prefix in self.read_prefixes if prefix)
        if prefixes and operation_name.startswith(prefixes):
            return OperationIntent.READ
        return OperationIntent.WRITE

    def is_read(self, operation_name: str) -> bool:
        return self.classify(operation_name) is OperationIntent.READ
