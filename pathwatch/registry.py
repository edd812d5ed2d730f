"""
Pathwatch Registry - Side Table of Node Instrumentation
=======================================================

Instrumentation state is not stored on the observed containers themselves.
Every wrapped node gets a ``NodeRecord`` in a ``NodeRegistry``, keyed by the
node's identity. The record owns the node's private ``EventChannel`` and the
forwarding links that connect the node's container-valued entries to it.

Records are created lazily when a container is first wrapped and are dropped
by a ``weakref.finalize`` hook when the node is garbage collected, so the
table only ever holds live nodes. Callers never see records: the graph hands
out channels, and the registry is the only owner of the link bookkeeping.

Forwarding links
----------------

A ``ForwardingLink`` is one listener on a child's channel that re-emits every
event on the parent's channel with the connecting key prepended:

    child emits   Write(["c"])
    parent emits  Write(["b", "c"])     # link key "b"

Links are disposed when the entry is replaced, deleted or re-keyed. Disposal
is idempotent: a link whose listener was already removed (for example because
the child's channel was cleared) disposes as a no-op.
"""

import logging
import weakref
from typing import Any, Dict, Hashable, Iterator, Optional

from .channel import ACCESS, EventChannel
from .events import AccessEvent

logger = logging.getLogger(__name__)


class ForwardingLink:
    """Listener forwarding child events to a parent channel under ``key``."""

    def __init__(
        self, key: Hashable, child: EventChannel, parent: EventChannel
    ) -> None:
        self.key = key
        self.child = child
        self.parent = parent
        self._active = True
        child.on(ACCESS, self._forward)

    @property
    def active(self) -> bool:
        return self._active

    def _forward(self, event: AccessEvent) -> None:
        self.parent.emit(ACCESS, event.prefixed(self.key))

    def dispose(self) -> None:
        if not self._active:
            return
        self._active = False
        self.child.off(ACCESS, self._forward)

    def __repr__(self) -> str:
        state = "active" if self._active else "disposed"
        return f"ForwardingLink({self.key!r}, {state})"


class NodeRecord:
    """Instrumentation state owned by the registry for one wrapped node."""

    __slots__ = ("node_ref", "channel", "links")

    def __init__(self, node: Any) -> None:
        self.node_ref = weakref.ref(node)
        self.channel = EventChannel()
        self.links: Dict[Hashable, ForwardingLink] = {}

    def link(self, key: Hashable, child: EventChannel) -> ForwardingLink:
        """Install the forwarding link for ``key``, replacing any existing one."""
        self.unlink(key)
        link = ForwardingLink(key, child, self.channel)
        self.links[key] = link
        return link

    def unlink(self, key: Hashable) -> None:
        link = self.links.pop(key, None)
        if link is not None:
            link.dispose()


class NodeRegistry:
    """
    Identity-keyed table of ``NodeRecord`` objects.

    A single process-wide registry (``default_registry``) backs ``observe()``
    unless a caller supplies its own, which keeps independent graphs and tests
    isolated from each other.
    """

    def __init__(self) -> None:
        self._records: Dict[int, NodeRecord] = {}

    def register(self, node: Any) -> NodeRecord:
        """Create the record for ``node``, or return the existing one."""
        record = self.lookup(node)
        if record is not None:
            return record
        record = NodeRecord(node)
        node_id = id(node)
        self._records[node_id] = record
        weakref.finalize(node, self._discard, node_id, record)
        logger.debug("Registered %s node %#x", type(node).__name__, node_id)
        return record

    def lookup(self, node: Any) -> Optional[NodeRecord]:
        record = self._records.get(id(node))
        if record is None or record.node_ref() is not node:
            return None
        return record

    def channel_of(self, node: Any) -> Optional[EventChannel]:
        record = self.lookup(node)
        return record.channel if record is not None else None

    def detach(self, node: Any) -> bool:
        """
        Remove every listener on ``node``'s channel.

        This severs the node from whichever parents were forwarding its
        events. Links between the node and its own descendants are kept.

        Returns:
            True if ``node`` is registered here.
        """
        record = self.lookup(node)
        if record is None:
            return False
        record.channel.remove_all_listeners()
        logger.debug("Detached %s node %#x", type(node).__name__, id(node))
        return True

    def _discard(self, node_id: int, record: NodeRecord) -> None:
        if self._records.get(node_id) is record:
            del self._records[node_id]
        for link in list(record.links.values()):
            link.dispose()
        record.links.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, node: Any) -> bool:
        return self.lookup(node) is not None

    def __iter__(self) -> Iterator[NodeRecord]:
        return iter(list(self._records.values()))


default_registry = NodeRegistry()
