"""
Pathwatch Channel - Synchronous Named-Event Fan-Out
===================================================

``EventChannel`` is the publish/subscribe primitive every observed node owns.
Listeners are registered per event name and called synchronously, in
registration order, inside ``emit``. There is no queue and no suspension
point: when ``emit`` returns, every listener has run.

The graph publishes ``AccessEvent`` records under the ``ACCESS`` name, and
``subscribe``/``unsubscribe`` are shortcuts for that name.
"""

from typing import Any, Callable, Dict, List, Optional

ACCESS = "event"

Listener = Callable[..., Any]


class EventChannel:
    """
    Named-event emitter with strict FIFO, synchronous delivery.

    The same listener may be registered more than once; it is then called once
    per registration and ``off`` removes one registration at a time.

    Example:
        ```python
        channel = EventChannel()
        channel.on("event", print)
        channel.emit("event", "hello")  # prints "hello"
        channel.off("event", print)
        ```
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, name: str, listener: Listener) -> "EventChannel":
        self._listeners.setdefault(name, []).append(listener)
        return self

    def off(self, name: str, listener: Listener) -> "EventChannel":
        """Remove the most recent registration of ``listener`` for ``name``."""
        listeners = self._listeners.get(name)
        if not listeners:
            return self
        for index in range(len(listeners) - 1, -1, -1):
            if listeners[index] == listener:
                del listeners[index]
                break
        if not listeners:
            del self._listeners[name]
        return self

    def emit(self, name: str, *args: Any) -> bool:
        """
        Call every listener registered for ``name`` with ``args``.

        Listeners see a snapshot of the registrations taken when the emission
        starts, so a listener may add or remove listeners (itself included)
        without affecting the current emission. Exceptions raised by a
        listener propagate to the caller.

        Returns:
            True if at least one listener was registered.
        """
        listeners = self._listeners.get(name)
        if not listeners:
            return False
        for listener in list(listeners):
            listener(*args)
        return True

    def remove_all_listeners(self, name: Optional[str] = None) -> "EventChannel":
        if name is None:
            self._listeners.clear()
        else:
            self._listeners.pop(name, None)
        return self

    def listeners(self, name: str) -> List[Listener]:
        return list(self._listeners.get(name, ()))

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, ()))

    def subscribe(self, listener: Listener) -> "EventChannel":
        """Register ``listener`` for access events."""
        return self.on(ACCESS, listener)

    def unsubscribe(self, listener: Listener) -> "EventChannel":
        return self.off(ACCESS, listener)

    def __repr__(self) -> str:
        counts = {name: len(items) for name, items in self._listeners.items()}
        return f"{type(self).__name__}({counts})"
