"""
Pathwatch - Path-Aware Observation of Nested Data
=================================================

Wrap nested dicts and lists so that every read and write, at any depth, is
published with its full path from the root, then find out which writes matter
to a piece of code by recording what it read.
"""

from .channel import ACCESS, EventChannel
from .events import (
    ITERATE,
    PATH_SEPARATOR,
    AccessEvent,
    AccessKind,
    covers,
    join_path,
)
from .exceptions import NotObservableError, PathwatchError
from .graph import (
    ObservableDict,
    ObservableList,
    ObservedNode,
    can_observe,
    get_channel,
    is_observed,
    observe,
    to_plain,
)
from .monitor import DerivedChannel, MonitorSession, run_and_monitor
from .registry import ForwardingLink, NodeRegistry, default_registry

__all__ = [
    # Events
    "AccessEvent",
    "AccessKind",
    "ITERATE",
    "PATH_SEPARATOR",
    "covers",
    "join_path",
    # Channels
    "ACCESS",
    "EventChannel",
    "DerivedChannel",
    # Graph
    "observe",
    "can_observe",
    "get_channel",
    "is_observed",
    "to_plain",
    "ObservableDict",
    "ObservableList",
    "ObservedNode",
    # Registry
    "NodeRegistry",
    "ForwardingLink",
    "default_registry",
    # Monitoring
    "MonitorSession",
    "run_and_monitor",
    # Exceptions
    "PathwatchError",
    "NotObservableError",
]

__version__ = "0.1.0"
