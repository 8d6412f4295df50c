"""Configuration for the lsbeat package."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from .exceptions import ConfigError
from .registrar import LIST_REGISTRAR_FILENAME, LOG_REGISTRAR_FILENAME, resolve_registrar_path

ENV_PREFIX = "LSBEAT_"

SUPPORTED_SINKS = ("outbox", "http")
SUPPORTED_STAMPS = ("modtime", "collected")


@dataclass
class BeatConfig:
    """
    Configuration options for the collector.

    Attributes:
        period: Seconds between two collection cycles
        full_rescan_every: Number of cycles between full directory walks
        registrar_list_path: Registrar file (or directory) for list files
        registrar_log_path: Registrar file (or directory) for log files
        scan_roots: Directories searched for marker directories
        follow_symlinks: Whether full scans descend into symlinked directories
        collect_on_start: Run a cycle immediately instead of after one period
        max_files_per_cycle: Cap on files collected per cycle (None = no cap)
        registrar_stamp: Time recorded per file ("modtime" or "collected")
        sink: Sink to publish events to ("outbox" or "http")
        outbox_path: SQLite file used by the outbox sink
        http_url: Endpoint used by the http sink
        http_timeout: Request timeout for the http sink
        http_spool_path: SQLite file holding records the http sink has not delivered yet
    """
    period: float = 10.0
    full_rescan_every: int = 6
    registrar_list_path: Path = field(default_factory=lambda: Path("./data/registrar"))
    registrar_log_path: Path = field(default_factory=lambda: Path("./data/registrar"))
    scan_roots: List[Path] = field(default_factory=list)
    follow_symlinks: bool = False
    collect_on_start: bool = False
    max_files_per_cycle: Optional[int] = None
    registrar_stamp: str = "modtime"
    sink: str = "outbox"
    outbox_path: Path = field(default_factory=lambda: Path("./data/outbox.db"))
    http_url: Optional[str] = None
    http_timeout: float = 10.0
    http_spool_path: Path = field(default_factory=lambda: Path("./data/http-spool.db"))

    def __post_init__(self):
        self.registrar_list_path = resolve_registrar_path(self.registrar_list_path, LIST_REGISTRAR_FILENAME)
        self.registrar_log_path = resolve_registrar_path(self.registrar_log_path, LOG_REGISTRAR_FILENAME)
        self.scan_roots = [Path(p) for p in self.scan_roots]
        self.outbox_path = Path(self.outbox_path)
        self.http_spool_path = Path(self.http_spool_path)
        self.validate()

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: If a value is out of range
        """
        if self.period <= 0:
            raise ConfigError(f"period must be positive: {self.period}")
        if self.full_rescan_every < 1:
            raise ConfigError(f"full_rescan_every must be >= 1: {self.full_rescan_every}")
        if self.max_files_per_cycle is not None and self.max_files_per_cycle < 1:
            raise ConfigError(f"max_files_per_cycle must be >= 1: {self.max_files_per_cycle}")
        if self.registrar_stamp not in SUPPORTED_STAMPS:
            raise ConfigError(f"Unsupported registrar_stamp: {self.registrar_stamp}")
        if self.sink not in SUPPORTED_SINKS:
            raise ConfigError(f"Unsupported sink: {self.sink}")
        if self.sink == "http" and not self.http_url:
            raise ConfigError("http sink requires http_url")

    def sink_kwargs(self) -> dict:
        """Arguments for ``create_sink`` matching the configured sink."""
        if self.sink == "http":
            return {"url": self.http_url, "timeout": self.http_timeout, "spool_path": self.http_spool_path}
        return {"db_path": self.outbox_path}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "BeatConfig":
        """
        Build a configuration from ``LSBEAT_*`` environment variables.

        ``LSBEAT_PATHS`` holds the scan roots separated by ``os.pathsep``.
        Keyword overrides that are not None take precedence over the
        environment.

        Raises:
            ConfigError: If a variable cannot be converted
        """
        env = os.environ if environ is None else environ
        values = {}

        def get(name):
            value = env.get(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        def convert(name, key, fn):
            raw = get(name)
            if raw is None:
                return
            try:
                values[key] = fn(raw)
            except ValueError:
                raise ConfigError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}")

        convert("PERIOD", "period", float)
        convert("FULL_RESCAN_EVERY", "full_rescan_every", int)
        convert("REGISTRAR_LIST_PATH", "registrar_list_path", Path)
        convert("REGISTRAR_LOG_PATH", "registrar_log_path", Path)
        convert("PATHS", "scan_roots", lambda v: [Path(p) for p in v.split(os.pathsep) if p])
        convert("FOLLOW_SYMLINKS", "follow_symlinks", _parse_bool)
        convert("COLLECT_ON_START", "collect_on_start", _parse_bool)
        convert("MAX_FILES_PER_CYCLE", "max_files_per_cycle", int)
        convert("REGISTRAR_STAMP", "registrar_stamp", str)
        convert("SINK", "sink", str)
        convert("OUTBOX_PATH", "outbox_path", Path)
        convert("HTTP_URL", "http_url", str)
        convert("HTTP_TIMEOUT", "http_timeout", float)
        convert("HTTP_SPOOL_PATH", "http_spool_path", Path)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(value)
