"""Persistent record of which files have been collected and when."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .exceptions import RegistrarError
from .models import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

LIST_REGISTRAR_FILENAME = "registrar-list.json"
LOG_REGISTRAR_FILENAME = "registrar-log.json"

RegistrarKey = Tuple[str, str]


class Registrar:
    """
    In-memory registrar keyed by ``(directory_path, filename)``.

    The registrar is owned by a single scheduler loop and is not
    thread-safe. ``dirty`` is set by :meth:`record` and cleared once the
    registrar has been written to disk.
    """

    def __init__(self, entries: Optional[Dict[RegistrarKey, datetime]] = None):
        self._entries: Dict[RegistrarKey, datetime] = dict(entries or {})
        self.dirty = False

    def lookup(self, directory_path: str, filename: str) -> Optional[datetime]:
        """Return the last collected time for a file, or None if never collected."""
        return self._entries.get((directory_path, filename))

    def record(self, directory_path: str, filename: str, timestamp: datetime) -> None:
        """Insert or overwrite the entry for a file."""
        self._entries[(directory_path, filename)] = timestamp
        self.dirty = True

    def as_mapping(self) -> Dict[str, Dict[str, datetime]]:
        """Nested ``directory -> filename -> timestamp`` view of the entries."""
        mapping: Dict[str, Dict[str, datetime]] = {}
        for (directory_path, filename), timestamp in self._entries.items():
            mapping.setdefault(directory_path, {})[filename] = timestamp
        return mapping

    def directories(self) -> List[str]:
        return sorted({directory for directory, _ in self._entries})

    def items(self) -> Iterator[Tuple[RegistrarKey, datetime]]:
        return iter(sorted(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: RegistrarKey) -> bool:
        return key in self._entries

    def __eq__(self, other) -> bool:
        if not isinstance(other, Registrar):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"Registrar({len(self._entries)} entries)"


def resolve_registrar_path(path: Union[str, Path], default_filename: str) -> Path:
    """
    Return the registrar file path for a configured location.

    A configured path that does not name a ``.json`` file is treated as a
    directory and the default filename is appended to it.
    """
    path = Path(path)
    if path.suffix != ".json":
        path = path / default_filename
    return path


def _parse_items(items) -> Dict[RegistrarKey, datetime]:
    if not isinstance(items, list):
        raise RegistrarError("registrar must contain a JSON array")

    entries: Dict[RegistrarKey, datetime] = {}
    try:
        for item in items:
            directory_path = item["path"]
            if not isinstance(directory_path, str):
                raise RegistrarError(f"invalid path: {directory_path!r}")
            # The Go agent wrote `null` for a directory without files
            for child in item.get("files") or []:
                filename = child["filename"]
                if not isinstance(filename, str):
                    raise RegistrarError(f"invalid filename: {filename!r}")
                entries[(directory_path, filename)] = parse_timestamp(child["collected_time"])
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise RegistrarError(f"malformed registrar entry: {e}") from e
    return entries


def load_registrar(path: Union[str, Path]) -> Registrar:
    """
    Load a registrar file.

    A missing, unreadable or malformed file yields an empty registrar so
    that first runs and corrupted state start clean.

    Args:
        path: Path to the registrar JSON file

    Returns:
        The loaded registrar
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            items = json.load(f)
    except FileNotFoundError:
        logger.debug(f"No registrar at {path}, starting empty")
        return Registrar()
    except (OSError, ValueError) as e:
        logger.warning(f"Cannot read registrar {path}, starting empty: {e}")
        return Registrar()

    try:
        entries = _parse_items(items)
    except RegistrarError as e:
        logger.warning(f"Ignoring malformed registrar {path}: {e}")
        return Registrar()

    logger.info(f"Loaded {len(entries)} registrar entries from {path}")
    return Registrar(entries)


def _serialize(registrar: Registrar) -> list:
    return [
        {
            "path": directory_path,
            "files": [
                {"filename": filename, "collected_time": format_timestamp(timestamp)}
                for filename, timestamp in sorted(files.items())
            ],
        }
        for directory_path, files in sorted(registrar.as_mapping().items())
    ]


def save_registrar(path: Union[str, Path], registrar: Registrar) -> bool:
    """
    Write the whole registrar to disk.

    The file is written to a temporary sibling and moved into place, so a
    crash leaves either the previous or the new registrar. Failures are
    logged and swallowed; the in-memory registrar stays authoritative.

    Args:
        path: Path to the registrar JSON file
        registrar: Registrar to persist

    Returns:
        True if the registrar was written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create registrar directory {path.parent}: {e}")
        return False

    tmp = path.with_name(path.name + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(_serialize(registrar), f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        logger.error(f"Failed to write registrar {path}: {e}")
        try:
            tmp.unlink()
        except OSError:
            pass
        return False

    registrar.dirty = False
    logger.debug(f"Saved {len(registrar)} registrar entries to {path}")
    return True
