"""
Pathwatch Events - Access Records and Path Strings
==================================================

This module defines the immutable record emitted for every observed property
access, together with the canonical string form of a path that the dependency
monitor uses for set membership and prefix tests.

A path is a tuple of key segments, most significant first and relative to the
node whose channel emitted the event. Reading ``root["b"]["c"]`` through a
wrapped root produces a ``READ`` event for ``("b",)`` followed by whatever the
caller does with ``c``; writing ``root["b"]["c"] = 1`` produces
``WRITE ("b", "c")`` on the root channel.

Example:
    ```python
    event = AccessEvent(AccessKind.WRITE, ("b", "c"))
    event.path_string()          # 'b\\x1fc'
    event.prefixed("root").path  # ('root', 'b', 'c')
    ```
"""

from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Tuple

# Joins path segments in canonical strings. Keys are not expected to contain it.
PATH_SEPARATOR = "\x1f"

# Canonical form of the ``ITERATE`` segment.
ITERATE_SEGMENT = "\x1e"

Path = Tuple[Hashable, ...]


class _IterateKey:
    """
    Path segment recorded when a container's entries are enumerated.

    A read ending in ``ITERATE`` depends on which entries exist, not on one
    entry, so a write to any direct entry of that container invalidates it.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "ITERATE"

    def __str__(self) -> str:
        return ITERATE_SEGMENT

    def __reduce__(self) -> str:
        return "ITERATE"


ITERATE = _IterateKey()


class AccessKind(Enum):
    """Kind of observed access."""

    READ = "get"
    WRITE = "set"


def join_path(path: Path) -> str:
    """Render a path as its canonical string."""
    return PATH_SEPARATOR.join(str(segment) for segment in path)


def covers(write_path: str, read_path: str) -> bool:
    """
    Whether a write at ``write_path`` invalidates a read at ``read_path``.

    Both arguments are canonical path strings. A write covers a read when it
    touched the same location or any ancestor of it. Matching is aligned on
    segment boundaries, so ``b`` covers ``b.c`` but not ``bc``.

    A read ending in the ``ITERATE`` segment is also covered by a write to any
    direct entry of the iterated container, so adding ``items.3`` invalidates
    an earlier ``for x in items``.
    """
    if read_path == write_path:
        return True
    if read_path.startswith(write_path + PATH_SEPARATOR):
        return True
    if read_path == ITERATE_SEGMENT:
        container = ""
    elif read_path.endswith(PATH_SEPARATOR + ITERATE_SEGMENT):
        container = read_path[: -len(ITERATE_SEGMENT)]
    else:
        return False
    return (
        write_path.startswith(container)
        and PATH_SEPARATOR not in write_path[len(container):]
    )


@dataclass(frozen=True)
class AccessEvent:
    """
    One observed read or write.

    Attributes:
        kind: Whether the access was a read or a write.
        path: Key segments from the emitting node down to the touched entry.
    """

    kind: AccessKind
    path: Path

    def __post_init__(self) -> None:
        if not isinstance(self.path, tuple):
            object.__setattr__(self, "path", tuple(self.path))
        if not self.path:
            raise ValueError("AccessEvent path must not be empty")

    @property
    def is_read(self) -> bool:
        return self.kind is AccessKind.READ

    @property
    def is_write(self) -> bool:
        return self.kind is AccessKind.WRITE

    def path_string(self) -> str:
        """Canonical string form of the path."""
        return join_path(self.path)

    def prefixed(self, key: Hashable) -> "AccessEvent":
        """Return the same access seen one level up, through entry ``key``."""
        return AccessEvent(self.kind, (key,) + self.path)

    def __repr__(self) -> str:
        return f"{self.kind.name.title()}({list(self.path)!r})"


def read(*path: Hashable) -> AccessEvent:
    """Shorthand for a ``READ`` event."""
    return AccessEvent(AccessKind.READ, path)


def write(*path: Hashable) -> AccessEvent:
    """Shorthand for a ``WRITE`` event."""
    return AccessEvent(AccessKind.WRITE, path)
