from typing import Any, Optional

__all__ = (
    "ConfigurationError",
    "DynamicDatasourceError",
    "NoReplicasAvailableError",
    "RoutingError",
    "UnknownRoutingKeyError",
)


class DynamicDatasourceError(Exception):
    """Base exception class from which all Dynamic Datasource exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``DynamicDatasourceError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class ConfigurationError(DynamicDatasourceError):
    """Improper configuration error.

    This exception is raised when the pool configuration is malformed, for example
    when no ``WRITE`` pool is declared or two pools share a name.

    Args:
        *args: Variable length argument list passed to parent class.
        detail: Detailed error message.
    """


class RoutingError(DynamicDatasourceError):
    """Base routing exception type.

    Args:
        *args: Variable length argument list passed to parent class.
        detail: Detailed error message.
    """


class UnknownRoutingKeyError(RoutingError):
    """A routing key is not registered.

    Raised when resolution is attempted for a key absent from the pool registry.
    The operation fails rather than being sent to some other pool.

    Args:
        key: The unknown routing key.
        detail: Detailed error message.
    """

    def __init__(self, key: Optional[str] = None, *, detail: str = "") -> None:
        self.key = key
        if not detail:
            detail = f"Routing key {key!r} is not registered"
        super().__init__(detail=detail)


class NoReplicasAvailableError(RoutingError):
    """No read replica is registered.

    Raised by replica selectors when asked to choose from an empty replica set.
    The routing interceptor recovers from it by falling back to the primary pool.

    Args:
        *args: Variable length argument list passed to parent class.
        detail: Detailed error message.
    """
