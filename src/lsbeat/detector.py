"""Selection of new or modified files inside a marker directory."""

import logging
import os
from datetime import datetime
from typing import List, Optional

from .exceptions import DetectionError
from .models import CollectibleFile, ScanTarget, mtime_from_stat
from .registrar import Registrar

logger = logging.getLogger(__name__)


def needs_collection(modification_time: datetime, last_collected: Optional[datetime]) -> bool:
    """
    Decide whether a file must be collected.

    A file is selected when it has never been collected or when its
    modification time is strictly after the recorded time. Equal times
    count as already collected.
    """
    return last_collected is None or modification_time > last_collected


def find_new_or_changed(
    target: ScanTarget,
    registrar: Registrar,
    extension: Optional[str] = None,
) -> List[CollectibleFile]:
    """
    List the files directly inside a marker directory that need collection.

    Only immediate regular-file children with an exact extension match are
    considered. The registrar is not modified.

    Args:
        target: Marker directory to inspect
        registrar: Registrar holding last collected times
        extension: Extension to match (defaults to the target kind's)

    Returns:
        Selected files sorted by filename

    Raises:
        DetectionError: If the directory cannot be listed
    """
    extension = extension or target.kind.extension
    selected = []

    try:
        with os.scandir(target.directory_path) as it:
            entries = list(it)
    except OSError as e:
        raise DetectionError(f"Cannot list {target.directory_path}: {e}") from e

    for entry in entries:
        if not entry.name.endswith(extension):
            continue
        try:
            if not entry.is_file():
                continue
            modification_time = mtime_from_stat(entry.stat())
        except OSError as e:
            logger.warning(f"Cannot stat {entry.path}: {e}")
            continue

        last = registrar.lookup(target.directory_path, entry.name)
        if needs_collection(modification_time, last):
            selected.append(CollectibleFile(target.directory_path, entry.name, modification_time))

    selected.sort(key=lambda f: f.filename)
    return selected
