"""
lsbeat Package

A polling collector that finds ``list`` and ``LOG`` marker directories
under a set of roots and ships new or modified ``.list`` / ``.log`` files
to an event sink.

Features:
- Periodic full rescan with a cheap existence-pruned cache in between
- Per-file change detection against a persisted registrar
- Crash-safe registrar writes (temp file + atomic replace)
- At-least-once delivery through pluggable sinks (SQLite outbox, HTTP)
"""

from .models import (
    MarkerKind,
    ScanTarget,
    CollectibleFile,
    OutboundEvent,
)

from .config import BeatConfig

from .exceptions import (
    BeatError,
    ConfigError,
    RegistrarError,
    DetectionError,
    CollectError,
    SinkError,
    OutboxError,
    BeatAlreadyRunningError,
    BeatStoppedError,
)

from .registrar import (
    Registrar,
    load_registrar,
    save_registrar,
    resolve_registrar_path,
)
from .locator import DirectoryLocator, full_scan, prune
from .detector import find_new_or_changed, needs_collection
from .collector import Collector
from .sinks import BaseSink, EventOutbox, HttpSink, OutboxSink, create_sink
from .scheduler import BeatScheduler, CycleResult, SchedulerState


__all__ = [
    # Models
    "MarkerKind",
    "ScanTarget",
    "CollectibleFile",
    "OutboundEvent",
    # Config
    "BeatConfig",
    # Exceptions
    "BeatError",
    "ConfigError",
    "RegistrarError",
    "DetectionError",
    "CollectError",
    "SinkError",
    "OutboxError",
    "BeatAlreadyRunningError",
    "BeatStoppedError",
    # Registrar
    "Registrar",
    "load_registrar",
    "save_registrar",
    "resolve_registrar_path",
    # Components
    "DirectoryLocator",
    "full_scan",
    "prune",
    "find_new_or_changed",
    "needs_collection",
    "Collector",
    # Sinks
    "BaseSink",
    "EventOutbox",
    "HttpSink",
    "OutboxSink",
    "create_sink",
    # Main loop
    "BeatScheduler",
    "CycleResult",
    "SchedulerState",
]

__version__ = "0.1.0"
