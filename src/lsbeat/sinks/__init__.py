"""
Event sinks for the lsbeat package.
"""

from .base import BaseSink
from .http import HttpSink
from .outbox import EventOutbox, OutboxSink

__all__ = [
    "BaseSink",
    "EventOutbox",
    "HttpSink",
    "OutboxSink",
    "create_sink",
]


def create_sink(kind: str = "outbox", **kwargs) -> BaseSink:
    """
    Create a sink instance.

    Args:
        kind: Sink name ("outbox" or "http")
        **kwargs: Sink-specific arguments

    Returns:
        Sink instance

    Raises:
        ValueError: If the sink is not supported
    """
    if kind == "outbox":
        return OutboxSink(**kwargs)
    elif kind == "http":
        return HttpSink(**kwargs)
    else:
        raise ValueError(f"Unsupported sink: {kind}")
