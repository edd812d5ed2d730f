"""
Pathwatch Monitor - Dependency-Gated Invalidation
=================================================

This module records which paths a function reads from an observed graph and
turns the graph's raw event stream into a channel that only carries the writes
that could change what the function saw.

```python
state, channel = observe({"a": 1, "b": {"c": 2}})

def render():
    return f"c is {state['b']['c']}"

html, changes = run_and_monitor(channel, render)
changes.subscribe(lambda event: print("re-render:", event))

state["a"] = 5           # nothing: 'a' was never read
state["b"]["c"] = 3      # re-render: Write(['b', 'c'])
state["b"] = {"c": 4}    # re-render: Write(['b'])
```

A write is forwarded when its path is a prefix of (or equal to) some path
read during the monitored call. Writing ``b`` replaces the whole subtree that
held ``b.c``, so it invalidates that read as well. Prefixes are matched on
whole segments.

Recording only covers the synchronous call. The recording listener is removed
as soon as the call returns or raises; the filtering listener installed for
the derived channel stays on the source channel until the derived channel is
disposed or garbage collected.
"""

import logging
import weakref
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Tuple

from cachetools import LRUCache

from .channel import ACCESS, EventChannel
from .events import AccessEvent, covers

logger = logging.getLogger(__name__)


class DerivedChannel(EventChannel):
    """
    Channel re-emitting the source writes that cover a fixed read-set.

    Attributes:
        source: Channel the writes are taken from.
        read_paths: Canonical paths read during the monitored call.
    """

    def __init__(
        self,
        source: EventChannel,
        read_paths: Iterable[str],
        cache_size: int = 1024,
    ) -> None:
        super().__init__()
        self.source = source
        self.read_paths: FrozenSet[str] = frozenset(read_paths)
        # The read-set never changes, so a decision per write path is final.
        self._matches: LRUCache = LRUCache(maxsize=cache_size)
        self._listener: Optional[Callable[[AccessEvent], None]] = _filter_listener(
            weakref.ref(self), source
        )
        source.on(ACCESS, self._listener)

    @property
    def disposed(self) -> bool:
        return self._listener is None

    def matches(self, event: AccessEvent) -> bool:
        """Whether ``event`` is a write that invalidates a recorded read."""
        if not event.is_write:
            return False
        path = event.path_string()
        matched = self._matches.get(path)
        if matched is None:
            matched = any(covers(path, read_path) for read_path in self.read_paths)
            self._matches[path] = matched
        return matched

    def _forward(self, event: AccessEvent) -> None:
        if self.matches(event):
            self.emit(ACCESS, event)

    def dispose(self) -> None:
        """Stop filtering the source and drop this channel's listeners."""
        if self._listener is None:
            return
        self.source.off(ACCESS, self._listener)
        self._listener = None
        self.remove_all_listeners()
        logger.debug("Disposed derived channel over %d read paths", len(self.read_paths))


def _filter_listener(
    ref: "weakref.ReferenceType[DerivedChannel]", source: EventChannel
) -> Callable[[AccessEvent], None]:
    def listener(event: AccessEvent) -> None:
        derived = ref()
        if derived is None:
            source.off(ACCESS, listener)
            return
        derived._forward(event)

    return listener


class MonitorSession:
    """
    Records every event on a channel while the session is entered.

    Sessions are single use: enter once, run the code to monitor, then call
    ``derive()`` for the filtered channel.

    Example:
        ```python
        with MonitorSession(channel) as session:
            total = state["cart"]["total"]
        changes = session.derive()
        ```
    """

    def __init__(self, channel: EventChannel, cache_size: int = 1024) -> None:
        self.channel = channel
        self.cache_size = cache_size
        self.events: List[AccessEvent] = []
        self._recording = False
        self._finished = False

    def _log(self, event: AccessEvent) -> None:
        self.events.append(event)

    def __enter__(self) -> "MonitorSession":
        if self._recording or self._finished:
            raise RuntimeError("MonitorSession can only be entered once")
        self.channel.on(ACCESS, self._log)
        self._recording = True
        logger.debug("Monitoring reads on %r", self.channel)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.channel.off(ACCESS, self._log)
        self._recording = False
        self._finished = True
        logger.debug(
            "Monitor session recorded %d events (%d distinct reads)%s",
            len(self.events),
            len(self.read_paths),
            " before an exception" if exc_type is not None else "",
        )
        return False

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def read_paths(self) -> FrozenSet[str]:
        return frozenset(event.path_string() for event in self.events if event.is_read)

    def derive(self) -> DerivedChannel:
        if self._recording:
            raise RuntimeError("cannot derive a channel while still recording")
        return DerivedChannel(self.channel, self.read_paths, self.cache_size)


def run_and_monitor(
    channel: EventChannel, fn: Callable[..., Any], *args: Any, **kwargs: Any
) -> Tuple[Any, DerivedChannel]:
    """
    Call ``fn`` and derive a channel of the writes that invalidate its reads.

    A write is forwarded when its path equals a read path or is an ancestor of
    one, compared segment by segment: a write to ``b`` invalidates a read of
    ``b.c`` but never a read of ``bc``. A write directly under a container
    that ``fn`` iterated is forwarded too.

    Args:
        channel: Root channel of an observed graph.
        fn: Function to call synchronously with ``args`` and ``kwargs``.

    Returns:
        Tuple of ``fn``'s return value and the derived channel.

    Raises:
        Whatever ``fn`` raises, after the recording listener is removed.
    """
    with MonitorSession(channel) as session:
        result = fn(*args, **kwargs)
    return result, session.derive()
