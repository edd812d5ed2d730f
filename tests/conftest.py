"""
Shared pytest fixtures for pathwatch tests.
"""

import pytest

from pathwatch import NodeRegistry


@pytest.fixture
def registry():
    """Provide an isolated registry so tests never share instrumentation."""
    return NodeRegistry()


@pytest.fixture
def record():
    """Subscribe a list to a channel's access events and return the list."""

    def _record(channel):
        events = []
        channel.subscribe(events.append)
        return events

    return _record
