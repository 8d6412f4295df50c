"""Data models for the lsbeat package."""

import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Go's RFC3339Nano output carries up to nine fractional digits
_FRACTION_RE = re.compile(r"\.(\d+)")


class MarkerKind(Enum):
    """Kinds of marker directories and the files collected from them."""
    LIST = "list"
    LOG = "log"

    @property
    def marker(self) -> str:
        """Directory name that marks a collectible directory."""
        return "list" if self is MarkerKind.LIST else "LOG"

    @property
    def extension(self) -> str:
        """File extension collected from the marker directory."""
        return f".{self.value}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mtime_from_stat(st: os.stat_result) -> datetime:
    """
    Convert a stat result's modification time to an aware UTC datetime.

    Integer nanoseconds are truncated to microseconds so that the same file
    always maps to the same datetime, before and after a registrar round trip.
    """
    return EPOCH + timedelta(microseconds=st.st_mtime_ns // 1000)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Accepts a trailing ``Z`` and fractions longer than microseconds.
    Naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ScanTarget:
    """
    A marker directory known to contain collectible files.

    Attributes:
        directory_path: Absolute path of the marker directory
        kind: Which marker the directory matched
    """
    directory_path: str
    kind: MarkerKind


@dataclass(frozen=True)
class CollectibleFile:
    """
    A file selected for collection.

    Attributes:
        directory_path: Marker directory the file lives in
        filename: Base name of the file
        modification_time: Modification time observed when selected
        content: Raw bytes once the file has been read
    """
    directory_path: str
    filename: str
    modification_time: datetime
    content: Optional[bytes] = None

    @property
    def full_path(self) -> str:
        return os.path.join(self.directory_path, self.filename)


@dataclass(frozen=True)
class OutboundEvent:
    """
    The record handed to a sink for one collected file.

    Attributes:
        kind: ``list`` or ``log``
        filename: Base name of the collected file
        path: Full path of the collected file
        modtime: Modification time of the file when it was selected
        content: Raw file content
        timestamp: When the event was emitted
    """
    kind: MarkerKind
    filename: str
    path: str
    modtime: datetime
    content: bytes
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "@timestamp": format_timestamp(self.timestamp),
            "type": self.kind.value,
            "filename": self.filename,
            "path": self.path,
            "modtime": format_timestamp(self.modtime),
            "content": self.content.decode("utf-8", errors="replace"),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OutboundEvent":
        """Create from dictionary."""
        return cls(
            kind=MarkerKind(data["type"]),
            filename=data["filename"],
            path=data["path"],
            modtime=parse_timestamp(data["modtime"]),
            content=data.get("content", "").encode("utf-8"),
            timestamp=parse_timestamp(data["@timestamp"]) if data.get("@timestamp") else utcnow(),
        )
