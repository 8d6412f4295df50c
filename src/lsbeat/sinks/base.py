"""
Base sink class.
"""

from abc import ABC, abstractmethod

from ..models import OutboundEvent


class BaseSink(ABC):
    """Abstract base class for event sinks."""

    @abstractmethod
    def publish(self, event: OutboundEvent) -> None:
        """
        Hand an event to the sink.

        Args:
            event: Event to deliver

        Raises:
            SinkError: If the sink cannot accept the event
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the sink's connection."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
