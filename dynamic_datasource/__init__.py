from dynamic_datasource import (
    config,
    exceptions,
    routing,
)

__all__ = (
    "config",
    "exceptions",
    "routing",
)
