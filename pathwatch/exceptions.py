"""
Pathwatch Exceptions
====================

Error types raised by the observable graph.
"""


class PathwatchError(Exception):
    """Base class for all pathwatch errors."""

    pass


class NotObservableError(PathwatchError, TypeError):
    """Raised when instrumentation is requested for a value that is not a container."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(
            f"cannot observe value of type {type(value).__name__!r}; "
            f"only dict and list values can be observed"
        )
