"""Reads selected files and hands them to the sink."""

import logging

from .exceptions import CollectError, SinkError
from .models import CollectibleFile, MarkerKind, OutboundEvent, utcnow
from .registrar import Registrar
from .sinks.base import BaseSink

logger = logging.getLogger(__name__)

STAMP_MODTIME = "modtime"
STAMP_COLLECTED = "collected"


class Collector:
    """
    Turns a selected file into an event.

    The registrar entry is written only after the file content has been
    read, so a failed read leaves the file eligible on the next cycle.
    The collector publishes once and only logs sink failures. Retrying
    delivery is left to the sink.
    """

    def __init__(self, sink: BaseSink, stamp: str = STAMP_MODTIME):
        if stamp not in (STAMP_MODTIME, STAMP_COLLECTED):
            raise ValueError(f"Unsupported registrar stamp: {stamp}")
        self.sink = sink
        self.stamp = stamp

    def collect(
        self,
        candidate: CollectibleFile,
        registrar: Registrar,
        kind: MarkerKind,
    ) -> OutboundEvent:
        """
        Read a file, record it and publish it.

        Args:
            candidate: File selected by the change detector
            registrar: Registrar of the candidate's marker kind
            kind: Event kind to tag the event with

        Returns:
            The published event

        Raises:
            CollectError: If the file cannot be read
        """
        path = candidate.full_path
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            logger.error(f"Cannot read file {path}: {e}")
            raise CollectError(f"Cannot read file {path}: {e}") from e

        now = utcnow()
        stamp = candidate.modification_time if self.stamp == STAMP_MODTIME else now
        registrar.record(candidate.directory_path, candidate.filename, stamp)

        event = OutboundEvent(
            kind=kind,
            filename=candidate.filename,
            path=path,
            modtime=candidate.modification_time,
            content=content,
            timestamp=now,
        )

        try:
            self.sink.publish(event)
        except SinkError as e:
            logger.error(f"Sink rejected {path}: {e}")
        else:
            logger.debug(f"Published {kind.value} file {path} ({len(content)} bytes)")
        return event
