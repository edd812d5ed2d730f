"""
Pathwatch Graph - Path-Aware Observable Containers
==================================================

This module wraps nested ``dict``/``list`` data so that every entry read and
write, at any depth, is published as an ``AccessEvent`` on the root's channel
with the full path from the root to the entry that was touched.

Wrapped views are real ``dict`` and ``list`` subclasses. They compare equal to
the plain data, pass ``isinstance`` checks and serialise with ``json.dumps``
exactly like the data they were built from.

How It Works
------------

Every wrapped container is a *node*. Each node owns a private channel (kept in
a ``NodeRegistry`` side table), and each container-valued entry of a node is
wrapped as well and connected by a forwarding link that re-emits the child's
events with the entry key prepended. Events therefore accumulate their path
as they bubble up:

```python
root, channel = observe({"a": 1, "b": {"c": 2}})
channel.subscribe(print)

root["a"] = 10        # Write(['a'])
root["b"]["c"] = 20   # Read(['b']), then Write(['b', 'c'])
```

Writes follow one rule set for every container:

1. Assigning the identical object that is already stored does nothing.
2. A replaced node is detached: every listener on its channel is removed, so
   it no longer feeds this parent even if it is still referenced elsewhere.
3. A container value is wrapped (or reused if it already is a node) and
   linked under its key; any other value is stored as-is.
4. One ``WRITE`` event for the key is emitted on the node's own channel.

Reads emit a ``READ`` event unless the stored value is callable.

Lists
-----

Lists are instrumented like dicts with integer index segments. Operations that
shift elements (``insert``, ``pop``, ``remove``, ``del``, slice assignment,
``sort``, ``reverse``) re-key the forwarding links of the moved elements and
emit a ``WRITE`` for every index whose occupant changed, lowest index first.

Iteration
---------

Enumerating a container emits a ``READ`` whose last segment is ``ITERATE``.
Iterating a list, or a dict's ``values()`` or ``items()``, then emits one
``READ`` per value handed out, so ``sum(lst)`` depends on every element and on
the list's length. Iterating a dict's keys emits only the ``ITERATE`` read.
``len``, ``in`` and the remaining container methods emit nothing.

Reading a missing key emits a ``READ`` for that key before ``KeyError`` is
raised or ``get`` returns its default.
"""

import logging
import operator
from collections.abc import ItemsView, KeysView, ValuesView
from typing import (
    Any,
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
)

from .channel import ACCESS, EventChannel
from .events import ITERATE, AccessEvent, AccessKind
from .exceptions import NotObservableError
from .registry import NodeRecord, NodeRegistry, default_registry

logger = logging.getLogger(__name__)

_MISSING = object()


# ============================================================================
# ELIGIBILITY AND LOOKUP
# ============================================================================


def can_observe(value: Any) -> bool:
    """Whether ``value`` is a container that can carry instrumentation."""
    return isinstance(value, (dict, list))


def is_observed(value: Any) -> bool:
    """Whether ``value`` is a live wrapped node."""
    if not isinstance(value, ObservedNode):
        return False
    registry = getattr(value, "_registry", None)
    return registry is not None and registry.lookup(value) is not None


def get_channel(
    value: Any, registry: Optional[NodeRegistry] = None
) -> Optional[EventChannel]:
    """
    Return the channel attached to ``value``.

    Args:
        value: Any value.
        registry: Registry to look ``value`` up in. Defaults to the registry
            the node was created with.

    Returns:
        The node's channel, or None for plain containers, non-containers and
        nodes that ``registry`` does not own.
    """
    if not isinstance(value, ObservedNode):
        return None
    if registry is None:
        registry = getattr(value, "_registry", None)
        if registry is None:
            return None
    return registry.channel_of(value)


def observe(
    target: Any, registry: Optional[NodeRegistry] = None
) -> Tuple[Any, EventChannel]:
    """
    Wrap ``target`` and every container reachable from it.

    The returned view holds its own storage; ``target`` is left unchanged.
    Containers shared between several places in ``target`` map to a single
    node, so the sharing survives in the view.

    Args:
        target: A ``dict`` or ``list``. An already wrapped node is returned
            as-is together with its channel.
        registry: Registry that owns the instrumentation records. Defaults to
            the process-wide registry.

    Returns:
        Tuple of the wrapped view and its channel.

    Raises:
        NotObservableError: If ``target`` is not a dict or list.
        ValueError: If ``target`` contains a reference cycle.
    """
    if not can_observe(target):
        raise NotObservableError(target)
    if is_observed(target):
        return target, target._channel
    if registry is None:
        registry = default_registry
    node = _wrap(target, registry, {}, set())
    return node, node._channel


def to_plain(value: Any) -> Any:
    """Deep copy a view into plain dicts and lists without emitting events."""
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in dict.items(value)}
    if isinstance(value, list):
        return [to_plain(item) for item in list.__iter__(value)]
    return value


def _wrap(
    source: Any, registry: NodeRegistry, memo: Dict[int, Any], pending: Set[int]
) -> "ObservedNode":
    source_id = id(source)
    if source_id in pending:
        raise ValueError("Circular reference detected")
    if source_id in memo:
        return memo[source_id]

    pending.add(source_id)
    try:
        if isinstance(source, dict):
            node = ObservableDict(registry=registry)
            memo[source_id] = node
            for key, value in dict.items(source):
                dict.__setitem__(
                    node, key, node._adopt(key, value, registry, memo, pending)
                )
        else:
            node = ObservableList(registry=registry)
            memo[source_id] = node
            for index, value in enumerate(list.__iter__(source)):
                list.append(
                    node, node._adopt(index, value, registry, memo, pending)
                )
    finally:
        pending.discard(source_id)

    logger.debug("Observing %s with %d entries", type(source).__name__, len(node))
    return node


def _check_acyclic(value: Any, pending: Set[int], done: Set[int]) -> None:
    """Raise ``ValueError`` if the plain containers under ``value`` loop."""
    if not can_observe(value) or is_observed(value):
        return
    value_id = id(value)
    if value_id in done:
        return
    if value_id in pending:
        raise ValueError("Circular reference detected")
    pending.add(value_id)
    try:
        if isinstance(value, dict):
            children = dict.values(value)
        else:
            children = list.__iter__(value)
        for child in children:
            _check_acyclic(child, pending, done)
    finally:
        pending.discard(value_id)
    done.add(value_id)


# ============================================================================
# SHARED NODE BEHAVIOUR
# ============================================================================


class ObservedNode:
    """
    Instrumentation shared by ``ObservableDict`` and ``ObservableList``.

    Subclasses keep their data in the builtin container storage and call the
    builtin methods directly (``dict.__getitem__(self, key)`` and so on) for
    internal access that must not emit events.
    """

    _registry: NodeRegistry

    @property
    def _record(self) -> NodeRecord:
        record = self._registry.lookup(self)
        if record is None:
            raise RuntimeError(f"{type(self).__name__} is not registered")
        return record

    @property
    def _channel(self) -> EventChannel:
        return self._record.channel

    def _emit(self, kind: AccessKind, key: Hashable) -> None:
        self._record.channel.emit(ACCESS, AccessEvent(kind, (key,)))

    def _emit_read(self, key: Hashable, value: Any) -> None:
        # Methods and other callables are invoked, not read as data.
        if not callable(value):
            self._emit(AccessKind.READ, key)

    def _prepare(
        self,
        value: Any,
        registry: Optional[NodeRegistry] = None,
        memo: Optional[Dict[int, Any]] = None,
        pending: Optional[Set[int]] = None,
    ) -> Any:
        """Return the stored form of ``value`` without linking it."""
        if not can_observe(value) or is_observed(value):
            return value
        return _wrap(
            value,
            registry if registry is not None else self._registry,
            memo if memo is not None else {},
            pending if pending is not None else set(),
        )

    def _adopt(
        self,
        key: Hashable,
        value: Any,
        registry: Optional[NodeRegistry] = None,
        memo: Optional[Dict[int, Any]] = None,
        pending: Optional[Set[int]] = None,
    ) -> Any:
        """Return the stored form of ``value`` and link it under ``key``."""
        stored = self._prepare(value, registry, memo, pending)
        if is_observed(stored):
            self._record.link(key, stored._channel)
        else:
            self._record.unlink(key)
        return stored

    def _release(self, key: Hashable, current: Any) -> None:
        """
        Drop the link for ``key`` and detach the node stored there.

        Detaching clears every listener on the old node. If this node still
        holds the old node under other keys, those links are reinstalled.
        """
        record = self._record
        record.unlink(key)
        if not is_observed(current):
            return
        current._registry.detach(current)
        channel = current._channel
        for other_key, link in list(record.links.items()):
            if link.child is channel:
                record.link(other_key, channel)

    def __reduce_ex__(self, protocol):
        # Copies and pickles of a view are plain data.
        return (to_plain, (to_plain(self),))


# ============================================================================
# DICT
# ============================================================================


class ObservableDict(ObservedNode, dict):
    """
    A ``dict`` whose entry reads and writes are published as access events.

    Attribute access is an alias for item access for names that are not
    real attributes, so ``root.b.c`` and ``root["b"]["c"]`` are equivalent.
    Names starting with an underscore are always plain attributes.

    Example:
        ```python
        state, channel = observe({"user": {"name": "Ada"}})
        channel.subscribe(events.append)
        state.user.name = "Grace"
        # events == [Read(['user']), Write(['user', 'name'])]
        ```
    """

    def __init__(
        self, data: Any = None, *, registry: Optional[NodeRegistry] = None
    ) -> None:
        super().__init__()
        self._registry = registry if registry is not None else default_registry
        self._registry.register(self)
        if data is not None:
            memo = {id(data): self}
            pending = {id(data)}
            if isinstance(data, dict):
                entries = dict.items(data)
            else:
                entries = dict(data).items()
            for key, value in entries:
                dict.__setitem__(
                    self, key, self._adopt(key, value, None, memo, pending)
                )

    # -- reads ---------------------------------------------------------------

    def __getitem__(self, key: Hashable) -> Any:
        try:
            value = dict.__getitem__(self, key)
        except KeyError:
            self._emit(AccessKind.READ, key)
            raise
        self._emit_read(key, value)
        return value

    def get(self, key: Hashable, default: Any = None) -> Any:
        if not dict.__contains__(self, key):
            self._emit(AccessKind.READ, key)
            return default
        return self[key]

    def __iter__(self) -> Iterator[Hashable]:
        self._emit(AccessKind.READ, ITERATE)
        return dict.__iter__(self)

    def __reversed__(self) -> Iterator[Hashable]:
        self._emit(AccessKind.READ, ITERATE)
        return reversed(dict.keys(self))

    # The views look values up through __getitem__, one READ per entry.
    def keys(self) -> KeysView:
        return KeysView(self)

    def values(self) -> ValuesView:
        return ValuesView(self)

    def items(self) -> ItemsView:
        return ItemsView(self)

    def setdefault(self, key: Hashable, default: Any = None) -> Any:
        if dict.__contains__(self, key):
            return self[key]
        self[key] = default
        return dict.__getitem__(self, key)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(
                f"{type(self).__name__!r} object has no attribute {name!r}"
            ) from None

    # -- writes --------------------------------------------------------------

    def __setitem__(self, key: Hashable, value: Any) -> None:
        current = dict.get(self, key, _MISSING)
        if value is current:
            return
        _check_acyclic(value, set(), set())
        self._release(key, current)
        dict.__setitem__(self, key, self._adopt(key, value))
        self._emit(AccessKind.WRITE, key)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self[name] = value

    def __delitem__(self, key: Hashable) -> None:
        current = dict.__getitem__(self, key)
        dict.__delitem__(self, key)
        self._release(key, current)
        self._emit(AccessKind.WRITE, key)

    def __delattr__(self, name: str) -> None:
        if name.startswith("_"):
            object.__delattr__(self, name)
            return
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None

    def pop(self, key: Hashable, *default: Any) -> Any:
        if not dict.__contains__(self, key):
            if default:
                return default[0]
            raise KeyError(key)
        value = dict.__getitem__(self, key)
        del self[key]
        return value

    def popitem(self) -> Tuple[Hashable, Any]:
        if not dict.__len__(self):
            raise KeyError("popitem(): dictionary is empty")
        key = next(reversed(dict.keys(self)))
        value = dict.__getitem__(self, key)
        del self[key]
        return key, value

    def clear(self) -> None:
        for key in list(dict.keys(self)):
            del self[key]

    def update(self, *args: Any, **kwargs: Any) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def __ior__(self, other: Any) -> "ObservableDict":
        self.update(other)
        return self


# ============================================================================
# LIST
# ============================================================================


class ObservableList(ObservedNode, list):
    """
    A ``list`` whose index reads and writes are published as access events.

    Index segments are non-negative ints; negative indices are normalised
    before they reach an event path.
    """

    def __init__(
        self, data: Iterable[Any] = (), *, registry: Optional[NodeRegistry] = None
    ) -> None:
        super().__init__()
        self._registry = registry if registry is not None else default_registry
        self._registry.register(self)
        memo = {id(data): self}
        pending = {id(data)}
        values = list.__iter__(data) if isinstance(data, list) else data
        for index, value in enumerate(list(values)):
            list.append(self, self._adopt(index, value, None, memo, pending))

    def _index(self, index: Any) -> int:
        index = operator.index(index)
        size = list.__len__(self)
        if index < 0:
            index += size
        if not 0 <= index < size:
            raise IndexError("list index out of range")
        return index

    def _raw(self) -> List[Any]:
        return list(list.__iter__(self))

    def _rewrite(self, start: int, tail: List[Any]) -> None:
        """
        Replace everything from ``start`` onwards with ``tail``.

        Elements that are no longer in the list are detached, elements that
        moved are re-linked under their new index and one ``WRITE`` per
        changed index is emitted in ascending order.
        """
        old_tail = list.__getitem__(self, slice(start, None))
        memo: Dict[int, Any] = {}
        new_tail = [self._prepare(value, None, memo) for value in tail]

        kept = {id(value) for value in list.__getitem__(self, slice(0, start))}
        kept.update(id(value) for value in new_tail)
        for value in old_tail:
            if id(value) not in kept and is_observed(value):
                value._registry.detach(value)

        list.__delitem__(self, slice(start, None))
        list.extend(self, new_tail)

        changed = [
            start + offset
            for offset in range(max(len(old_tail), len(new_tail)))
            if offset >= len(old_tail)
            or offset >= len(new_tail)
            or old_tail[offset] is not new_tail[offset]
        ]
        record = self._record
        for index in changed:
            record.unlink(index)
            if index < list.__len__(self):
                value = list.__getitem__(self, index)
                if is_observed(value):
                    record.link(index, value._channel)
        if changed:
            logger.debug("Re-keyed list indices %d..%d", changed[0], changed[-1])
        for index in changed:
            self._emit(AccessKind.WRITE, index)

    def _replace_all(self, new: List[Any]) -> None:
        old = self._raw()
        start = 0
        limit = min(len(old), len(new))
        while start < limit and old[start] is new[start]:
            start += 1
        if start == len(old) == len(new):
            return
        self._rewrite(start, new[start:])

    # -- reads ---------------------------------------------------------------

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            for position in range(*index.indices(list.__len__(self))):
                self._emit_read(position, list.__getitem__(self, position))
            return list.__getitem__(self, index)
        position = self._index(index)
        value = list.__getitem__(self, position)
        self._emit_read(position, value)
        return value

    def __iter__(self) -> Iterator[Any]:
        self._emit(AccessKind.READ, ITERATE)
        position = 0
        # Length is re-checked each step, like the builtin list iterator.
        while position < list.__len__(self):
            value = list.__getitem__(self, position)
            self._emit_read(position, value)
            yield value
            position += 1

    def __reversed__(self) -> Iterator[Any]:
        self._emit(AccessKind.READ, ITERATE)
        position = list.__len__(self) - 1
        while position >= 0:
            if position < list.__len__(self):
                value = list.__getitem__(self, position)
                self._emit_read(position, value)
                yield value
            position -= 1

    # -- writes --------------------------------------------------------------

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            new = self._raw()
            new[index] = list(value)
            self._replace_all(new)
            return
        position = self._index(index)
        current = list.__getitem__(self, position)
        if value is current:
            return
        _check_acyclic(value, set(), set())
        self._release(position, current)
        list.__setitem__(self, position, self._adopt(position, value))
        self._emit(AccessKind.WRITE, position)

    def __delitem__(self, index: Any) -> None:
        if isinstance(index, slice):
            new = self._raw()
            del new[index]
            self._replace_all(new)
            return
        position = self._index(index)
        self._rewrite(position, list.__getitem__(self, slice(position + 1, None)))

    def append(self, value: Any) -> None:
        self._rewrite(list.__len__(self), [value])

    def extend(self, values: Iterable[Any]) -> None:
        self._rewrite(list.__len__(self), list(values))

    def __iadd__(self, values: Iterable[Any]) -> "ObservableList":
        self.extend(values)
        return self

    def __imul__(self, count: int) -> "ObservableList":
        self._replace_all(self._raw() * count)
        return self

    def insert(self, index: Any, value: Any) -> None:
        size = list.__len__(self)
        position = operator.index(index)
        if position < 0:
            position = max(0, position + size)
        position = min(position, size)
        tail = list.__getitem__(self, slice(position, None))
        self._rewrite(position, [value] + tail)

    def pop(self, index: Any = -1) -> Any:
        if not list.__len__(self):
            raise IndexError("pop from empty list")
        position = self._index(index)
        value = list.__getitem__(self, position)
        self._rewrite(position, list.__getitem__(self, slice(position + 1, None)))
        return value

    def remove(self, value: Any) -> None:
        position = list.index(self, value)
        self._rewrite(position, list.__getitem__(self, slice(position + 1, None)))

    def clear(self) -> None:
        self._rewrite(0, [])

    def sort(self, *, key: Any = None, reverse: bool = False) -> None:
        self._replace_all(sorted(self._raw(), key=key, reverse=reverse))

    def reverse(self) -> None:
        self._replace_all(self._raw()[::-1])
